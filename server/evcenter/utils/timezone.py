"""Conversions between UTC storage and Vietnam local time."""

from datetime import datetime, timezone
from typing import Dict
from zoneinfo import ZoneInfo

from evcenter.config import settings


def _local_zone() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def vietnam_datetime_to_utc(date_str: str, time_str: str) -> datetime:
    """``("2024-12-18", "08:00")`` in Vietnam -> naive UTC ``2024-12-18 01:00``."""
    local = datetime.fromisoformat(f"{date_str}T{time_str}").replace(tzinfo=_local_zone())
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def utc_to_vietnam_datetime(value: datetime) -> Dict[str, object]:
    """Split a UTC timestamp (naive values are taken as UTC) into local parts."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(_local_zone())
    return {
        "date": local.strftime("%Y-%m-%d"),
        "time": local.strftime("%H:%M"),
        "datetime": local,
        "formatted": local.strftime("%d/%m/%Y %H:%M"),
    }


def vietnam_now() -> datetime:
    return datetime.now(_local_zone())
