"""Response envelope shared by every router and the exception handlers."""

from typing import Any, Dict, Optional

from evcenter.models.base import utcnow


def success(data: Any = None, message: Optional[str] = None, count: Optional[int] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    if count is not None:
        body["count"] = count
    return body


def error_body(message: str, error_code: str, errors: Any = None) -> Dict[str, Any]:
    body = {
        "success": False,
        "message": message,
        "error_code": error_code,
        "timestamp": utcnow().isoformat() + "Z",
    }
    if errors:
        body["errors"] = errors
    return body
