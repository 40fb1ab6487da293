"""Warranty expiry calculations for completed services and installed parts."""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from evcenter.config import settings

WARRANTY_TYPE_LABELS = {
    "manufacturer": "Bảo hành nhà sản xuất",
    "dealer": "Bảo hành đại lý",
    "extended": "Bảo hành mở rộng",
    "limited": "Bảo hành có điều kiện",
    "parts": "Bảo hành phụ tùng",
    "service": "Bảo hành dịch vụ",
}


@dataclass
class Warranty:
    duration_days: int
    type: str = "service"
    description: str = ""

    @classmethod
    def from_months(cls, months: int, type: str = "parts", description: str = "") -> "Warranty":
        return cls(duration_days=(months or 0) * 30, type=type, description=description)


@dataclass
class WarrantyStatus:
    is_active: bool
    is_expiring: bool
    is_expired: bool
    expiry_date: datetime
    days_remaining: int

    def to_dict(self) -> dict:
        return {
            "is_active": self.is_active,
            "is_expiring": self.is_expiring,
            "is_expired": self.is_expired,
            "expiry_date": self.expiry_date.isoformat(),
            "days_remaining": self.days_remaining,
            "status_text": get_warranty_status_text(self),
        }


def _as_datetime(value: Union[str, date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    return datetime.fromisoformat(value)


def calculate_warranty_expiry(service_date: Union[str, date, datetime], warranty: Warranty) -> datetime:
    return _as_datetime(service_date) + timedelta(days=warranty.duration_days)


def get_warranty_status(
    service_date: Union[str, date, datetime],
    warranty: Warranty,
    now: Optional[datetime] = None,
) -> WarrantyStatus:
    """Expiry date and remaining days (rounded up) of a warranty."""
    expiry_date = calculate_warranty_expiry(service_date, warranty)
    now = now or datetime.now()
    days_remaining = math.ceil((expiry_date - now).total_seconds() / 86400)

    return WarrantyStatus(
        is_active=days_remaining > 0,
        is_expiring=0 < days_remaining <= settings.WARRANTY_EXPIRING_DAYS,
        is_expired=days_remaining <= 0,
        expiry_date=expiry_date,
        days_remaining=max(0, days_remaining),
    )


def format_warranty_duration(days: int) -> str:
    if days >= 365:
        return f"{days // 365} năm"
    if days >= 30:
        return f"{days // 30} tháng"
    return f"{days} ngày"


def get_warranty_type_label(warranty_type: str) -> str:
    return WARRANTY_TYPE_LABELS.get(warranty_type, warranty_type)


def get_warranty_status_text(status: WarrantyStatus) -> str:
    if status.is_expired:
        return "Hết hạn"
    return f"Còn {status.days_remaining} ngày"
