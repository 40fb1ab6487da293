"""
Defensive accessors for loosely shaped payloads.

Report and export code reads nested dicts that come from JSON columns and
from older API clients, so every helper here returns a fallback instead of
raising on missing keys or wrong types.
"""

import logging
import math
from typing import Any, Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


def safe_get(obj: Any, path: str, default: Any = None) -> Any:
    """Read ``a.b.c`` from nested mappings or attributes.

    Returns ``default`` as soon as any step is None or missing.
    """
    current = obj
    for key in path.split("."):
        if current is None:
            return default
        if isinstance(current, dict):
            current = current.get(key, _MISSING)
        elif isinstance(current, (list, tuple)) and key.isdigit():
            index = int(key)
            current = current[index] if index < len(current) else _MISSING
        else:
            current = getattr(current, key, _MISSING)
        if current is _MISSING:
            return default
    return default if current is None else current


def safe_join(items: Optional[Iterable[Any]], separator: str = ", ", fallback: str = "No items") -> str:
    if not items or isinstance(items, (str, bytes)):
        return fallback
    try:
        joined = separator.join(str(item) for item in items if item)
    except TypeError:
        logger.warning(f"safe_join could not iterate {items!r}")
        return fallback
    return joined or fallback


def _service_name(service: Any) -> str:
    for path in ("serviceId.name", "service_id.name", "service.name", "serviceName", "service_name"):
        name = safe_get(service, path)
        if isinstance(name, str) and name:
            return name
    return "Unknown Service"


def safe_get_service_names(services: Optional[Iterable[Any]], fallback: str = "No services") -> str:
    """Comma-separated service names of an appointment or reception.

    >>> safe_get_service_names([])
    'No services'
    """
    if not services or isinstance(services, (str, bytes, dict)):
        return fallback
    return safe_join([_service_name(service) for service in services], ", ", fallback)


def safe_number_format(
    value: Any, formatter: Callable[[Any], str], fallback: str = "0"
) -> str:
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    if isinstance(value, float) and math.isnan(value):
        return fallback
    try:
        return formatter(value)
    except (TypeError, ValueError) as e:
        logger.warning(f"safe_number_format failed for {value!r}: {e}")
        return fallback


def safe_date_format(
    value: Any, formatter: Callable[[Any], str], fallback: str = "Invalid date"
) -> str:
    if not value:
        return fallback
    try:
        return formatter(value)
    except (TypeError, ValueError) as e:
        logger.warning(f"safe_date_format failed for {value!r}: {e}")
        return fallback


def safe_get_vehicle_info(vehicle: Any) -> Dict[str, Any]:
    return {
        "make": safe_get(vehicle, "make", "Unknown"),
        "model": safe_get(vehicle, "model", "Vehicle"),
        "year": safe_get(vehicle, "year", "N/A"),
        "license_plate": safe_get(
            vehicle, "license_plate", safe_get(vehicle, "licensePlate", "N/A")
        ),
    }


def safe_get_customer_info(customer: Any) -> Dict[str, str]:
    first_name = safe_get(customer, "first_name", safe_get(customer, "firstName", ""))
    last_name = safe_get(customer, "last_name", safe_get(customer, "lastName", ""))
    full_name = f"{first_name} {last_name}".strip()
    return {
        "first_name": first_name,
        "last_name": last_name,
        "full_name": full_name or "Unknown Customer",
        "email": safe_get(customer, "email", "No email"),
        "phone": safe_get(customer, "phone", "No phone"),
    }
