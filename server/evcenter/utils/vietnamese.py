"""
Vietnamese locale helpers.

Currency, phone, date and ID formatting used by API payloads, invoices and
reports. Every formatter is total: invalid input yields a fixed Vietnamese
placeholder instead of raising.
"""

import logging
import math
import random
import re
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

DateLike = Union[str, date, datetime]

INVALID_DATE = "Ngày không hợp lệ"
INVALID_DATETIME = "Ngày giờ không hợp lệ"
INVALID_TIME = "Giờ không hợp lệ"
INVALID_TIME_AGO = "Thời gian không hợp lệ"

MOBILE_PATTERN = re.compile(r"^(09|08|07|05|03)\d{8}$")
LANDLINE_PATTERN = re.compile(r"^(02[2-9])\d{7,8}$")

VALIDATION_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    "phone": re.compile(r"^(09|08|07|05|03)\d{8}$|^(02[2-9])\d{7,8}$"),
    "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    "vin": re.compile(r"^[A-HJ-NPR-Z0-9]{17}$"),
    "license_plate": re.compile(r"^\d{2}[A-Z]{1,2}-\d{4,5}$"),
    "tax_code": re.compile(r"^\d{10,13}$"),
    "cccd": re.compile(r"^\d{12}$"),
    "cmnd": re.compile(r"^\d{9}$"),
}


# ============================================================================
# Currency
# ============================================================================


def _round_half_up(value: Any) -> Optional[int]:
    """Round a number to whole đồng, or None when it is not a usable number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if not isinstance(value, (int, float, Decimal)):
        return None
    try:
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return None


def _group_thousands(amount: int) -> str:
    sign = "-" if amount < 0 else ""
    return sign + f"{abs(amount):,}".replace(",", ".")


def format_vnd(amount: Any) -> str:
    """Format an amount as Vietnamese đồng, e.g. ``1.500.000 ₫``.

    >>> format_vnd(0)
    '0 ₫'
    """
    rounded = _round_half_up(amount)
    if rounded is None:
        return "0 ₫"
    return f"{_group_thousands(rounded)} ₫"


def format_vnd_number(amount: Any) -> str:
    """Same grouping as :func:`format_vnd` without the currency symbol."""
    rounded = _round_half_up(amount)
    if rounded is None:
        return "0"
    return _group_thousands(rounded)


def calculate_vat(amount: Union[int, float], rate: Union[int, float] = 10) -> int:
    """VAT on an amount, rounded half-up to whole đồng."""
    return int(
        (Decimal(str(amount)) * Decimal(str(rate)) / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )


# ============================================================================
# Phone, ID, tax code, address
# ============================================================================


def _digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def is_valid_vietnamese_phone(phone: Optional[str]) -> bool:
    cleaned = _digits(phone)
    return bool(MOBILE_PATTERN.match(cleaned) or LANDLINE_PATTERN.match(cleaned))


def format_vietnamese_phone(phone: str) -> str:
    """``0912345678`` -> ``0912 345 678``; landlines -> ``024 3825 1234``."""
    cleaned = _digits(phone)

    if len(cleaned) == 10 and re.match(r"^(09|08|07|05|03)", cleaned):
        return f"{cleaned[:4]} {cleaned[4:7]} {cleaned[7:]}"
    if len(cleaned) >= 10 and cleaned.startswith("02"):
        return f"{cleaned[:3]} {cleaned[3:7]} {cleaned[7:]}"

    return phone


def is_valid_vietnamese_id(id_number: Optional[str]) -> bool:
    """CCCD (12 digits) or legacy CMND (9 digits)."""
    return len(_digits(id_number)) in (9, 12)


def format_vietnamese_id(id_number: str) -> str:
    cleaned = _digits(id_number)

    if len(cleaned) == 12:
        return f"{cleaned[:3]} {cleaned[3:6]} {cleaned[6:9]} {cleaned[9:]}"
    if len(cleaned) == 9:
        return f"{cleaned[:3]} {cleaned[3:6]} {cleaned[6:]}"

    return id_number


def is_valid_vietnamese_tax_code(tax_code: Optional[str]) -> bool:
    return 10 <= len(_digits(tax_code)) <= 13


def format_vietnamese_address(address: Optional[Mapping[str, Any]]) -> str:
    if not address:
        return ""
    parts = [address.get(key) for key in ("street", "ward", "district", "city")]
    return ", ".join(str(part) for part in parts if part)


# ============================================================================
# Dates and times
# ============================================================================


def _to_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise TypeError(f"Unsupported date value: {value!r}")


def format_vietnamese_date(value: DateLike, fmt: str = "%d/%m/%Y") -> str:
    try:
        return _to_datetime(value).strftime(fmt)
    except (TypeError, ValueError) as e:
        logger.warning(f"Date formatting error for {value!r}: {e}")
        return INVALID_DATE


def format_vietnamese_datetime(value: DateLike) -> str:
    try:
        return _to_datetime(value).strftime("%d/%m/%Y %H:%M")
    except (TypeError, ValueError) as e:
        logger.warning(f"DateTime formatting error for {value!r}: {e}")
        return INVALID_DATETIME


def format_vietnamese_time(value: DateLike) -> str:
    try:
        return _to_datetime(value).strftime("%H:%M")
    except (TypeError, ValueError) as e:
        logger.warning(f"Time formatting error for {value!r}: {e}")
        return INVALID_TIME


def _distance_words(minutes: int) -> str:
    if minutes < 1:
        return "dưới 1 phút"
    if minutes < 45:
        return f"{minutes} phút"
    if minutes < 90:
        return "khoảng 1 giờ"
    if minutes < 1440:
        return f"khoảng {round(minutes / 60)} giờ"
    if minutes < 2520:
        return "1 ngày"
    if minutes < 43200:
        return f"{round(minutes / 1440)} ngày"
    if minutes < 86400:
        return f"khoảng {round(minutes / 43200)} tháng"

    months = round(minutes / 43200)
    if months < 12:
        return f"{months} tháng"

    years, remainder = divmod(months, 12)
    if remainder < 3:
        return f"khoảng {years} năm"
    if remainder < 9:
        return f"hơn {years} năm"
    return f"gần {years + 1} năm"


def format_vietnamese_time_ago(value: DateLike, now: Optional[datetime] = None) -> str:
    """Relative time such as ``khoảng 2 giờ trước`` or ``3 ngày nữa``."""
    try:
        moment = _to_datetime(value)
        now = now or datetime.now(moment.tzinfo)
        seconds = (now - moment).total_seconds()
    except (TypeError, ValueError) as e:
        logger.warning(f"Time ago formatting error for {value!r}: {e}")
        return INVALID_TIME_AGO

    words = _distance_words(round(abs(seconds) / 60))
    return f"{words} trước" if seconds >= 0 else f"{words} nữa"


def _normalize_date_string(date_str: str) -> Optional[str]:
    if "T" in date_str or date_str.endswith("Z"):
        return date_str.split("T")[0]

    if "/" in date_str:
        parts = date_str.split("/")
        if len(parts) != 3:
            return None
        first, second, third = parts
        if len(third) == 4:
            # DD/MM/YYYY
            return f"{third}-{second.zfill(2)}-{first.zfill(2)}"
        # MM/DD/YY
        return f"{third}-{first.zfill(2)}-{second.zfill(2)}"

    if "-" in date_str and len(date_str) == 10:
        return date_str

    return None


def _normalize_time_string(time_str: str) -> str:
    if ":" in time_str:
        hours, minutes = time_str.split(":")[:2]
        return f"{hours.zfill(2)}:{minutes.zfill(2)}"

    try:
        hour = int(time_str)
    except ValueError:
        hour = -1
    if not 0 <= hour <= 23:
        logger.warning(f"Invalid hour: {time_str!r}, defaulting to 09:00")
        return "09:00"
    return f"{hour:02d}:00"


def combine_date_time(date_str: Optional[str], time_str: Optional[str]) -> datetime:
    """Combine appointment date and time inputs into a local datetime.

    Accepts ISO dates, ``DD/MM/YYYY`` and ``MM/DD/YY``. Times may be
    ``H:M[:S]`` or a bare hour. Anything unparseable falls back to now.
    """
    if not date_str or not time_str:
        logger.warning(f"Missing date or time: date={date_str!r}, time={time_str!r}")
        return datetime.now()

    iso_date = _normalize_date_string(date_str.strip())
    if iso_date is None or not re.match(r"^\d{4}-\d{2}-\d{2}$", iso_date):
        logger.warning(f"Unrecognized date format: {date_str!r}")
        return datetime.now()

    formatted_time = _normalize_time_string(time_str.strip())

    try:
        return datetime.fromisoformat(f"{iso_date}T{formatted_time}:00")
    except ValueError:
        logger.warning(f"Invalid date/time combination: {date_str!r} {time_str!r}")
        return datetime.now()


# ============================================================================
# Numbers to words
# ============================================================================

_ONES = ["", "một", "hai", "ba", "bốn", "năm", "sáu", "bảy", "tám", "chín"]
_SCALES = ["", "nghìn", "triệu", "tỷ", "nghìn tỷ"]


def _read_hundreds(number: int, full: bool) -> str:
    """Read a 0-999 group. ``full`` forces ``không trăm`` for inner groups."""
    hundred, remainder = divmod(number, 100)
    ten, one = divmod(remainder, 10)
    words = []

    if hundred > 0 or full:
        words.append(f"{_ONES[hundred] or 'không'} trăm")

    if ten == 0:
        if one > 0:
            if words:
                words.append("lẻ")
            words.append(_ONES[one])
    elif ten == 1:
        words.append("mười")
        if one == 5:
            words.append("lăm")
        elif one > 0:
            words.append(_ONES[one])
    else:
        words.append(f"{_ONES[ten]} mươi")
        if one == 1:
            words.append("mốt")
        elif one == 5:
            words.append("lăm")
        elif one > 0:
            words.append(_ONES[one])

    return " ".join(words)


def number_to_vietnamese_words(amount: int) -> str:
    """Spell an amount in Vietnamese for invoices.

    >>> number_to_vietnamese_words(1500000)
    'Một triệu năm trăm nghìn đồng'
    """
    amount = int(amount)
    if amount == 0:
        return "Không đồng"

    negative = amount < 0
    amount = abs(amount)

    groups = []
    while amount > 0:
        amount, chunk = divmod(amount, 1000)
        groups.append(chunk)

    words = []
    for index in range(len(groups) - 1, -1, -1):
        chunk = groups[index]
        if chunk == 0:
            continue
        is_leading = index == len(groups) - 1
        text = _read_hundreds(chunk, full=not is_leading)
        scale = _SCALES[index] if index < len(_SCALES) else ""
        words.append(f"{text} {scale}".strip())

    result = " ".join(words)
    if negative:
        result = f"âm {result}"
    return result[0].upper() + result[1:] + " đồng"


# ============================================================================
# Translations
# ============================================================================

APPOINTMENT_STATUS_TRANSLATIONS = {
    "pending": "Chờ xác nhận",
    "confirmed": "Đã xác nhận",
    "customer_arrived": "Khách hàng đã đến",
    "reception_created": "Đã tạo phiếu tiếp nhận",
    "reception_approved": "Phiếu tiếp nhận đã duyệt",
    "parts_insufficient": "Thiếu phụ tùng",
    "waiting_for_parts": "Chờ phụ tùng",
    "rescheduled": "Đã đổi lịch",
    "in_progress": "Đang thực hiện",
    "parts_requested": "Đã yêu cầu phụ tùng",
    "completed": "Hoàn thành",
    "invoiced": "Đã xuất hóa đơn",
    "cancelled": "Đã hủy",
    "no_show": "Không đến",
    "Scheduled": "Đã lên lịch",
    "CheckedIn": "Đã check-in",
    "InService": "Đang bảo dưỡng",
    "OnHold": "Tạm dừng",
    "ReadyForPickup": "Sẵn sàng nhận xe",
    "Closed": "Đã đóng",
}

SERVICE_TYPE_TRANSLATIONS = {
    "battery": "Pin/Ắc quy",
    "motor": "Động cơ điện",
    "charging": "Hệ thống sạc",
    "electronics": "Hệ thống điện tử",
    "body": "Thân vỏ",
    "general": "Bảo dưỡng tổng quát",
    "diagnostic": "Chẩn đoán",
}

PRIORITY_TRANSLATIONS = {
    "low": "Thấp",
    "normal": "Bình thường",
    "high": "Cao",
    "urgent": "Khẩn cấp",
}

ROLE_TRANSLATIONS = {
    "customer": "Khách hàng",
    "staff": "Nhân viên",
    "technician": "Kỹ thuật viên",
    "admin": "Quản trị viên",
}

PAYMENT_METHOD_TRANSLATIONS = {
    "cash": "Tiền mặt",
    "card": "Thẻ ngân hàng",
    "bank_transfer": "Chuyển khoản",
    "e_wallet": "Ví điện tử",
    "cheque": "Séc",
    "installment": "Trả góp",
}

PAYMENT_STATUS_TRANSLATIONS = {
    "unpaid": "Chưa thanh toán",
    "partially_paid": "Thanh toán một phần",
    "paid": "Đã thanh toán",
    "overdue": "Quá hạn",
    "refunded": "Đã hoàn tiền",
}


def translate(table: Mapping[str, str], key: Any) -> str:
    """Look up a label, falling back to the raw key."""
    raw = getattr(key, "value", key)
    return table.get(raw, raw)


# ============================================================================
# Document numbers
# ============================================================================


def format_invoice_number(invoice_number: str) -> str:
    """``INV241218001`` -> ``INV-24/12/18-001``."""
    if invoice_number and re.match(r"^INV\d{9,10}$", invoice_number):
        year, month, day = invoice_number[3:5], invoice_number[5:7], invoice_number[7:9]
        sequence = invoice_number[9:]
        return f"INV-{year}/{month}/{day}-{sequence}"
    return invoice_number


def generate_appointment_number(now: Optional[datetime] = None) -> str:
    """``APT`` + yymmdd + three random digits."""
    now = now or datetime.now()
    return f"APT{now:%y%m%d}{random.randint(0, 999):03d}"
