"""Domain exceptions raised by the service layer.

Routes never translate these one by one; a single exception handler in
``evcenter.main`` renders them as the standard error envelope.
"""

from typing import Any, Optional


class ServiceError(Exception):
    """Business rule violation. Rendered as HTTP 400."""

    status_code = 400
    default_error_code = "BUSINESS_RULE_VIOLATION"

    def __init__(self, message: str, error_code: Optional[str] = None, errors: Any = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.errors = errors


class NotFoundError(ServiceError):
    status_code = 404
    default_error_code = "NOT_FOUND"


class PermissionDeniedError(ServiceError):
    status_code = 403
    default_error_code = "FORBIDDEN"


class InvalidTransitionError(ServiceError):
    default_error_code = "INVALID_STATUS_TRANSITION"


class InsufficientStockError(ServiceError):
    default_error_code = "INSUFFICIENT_STOCK"
