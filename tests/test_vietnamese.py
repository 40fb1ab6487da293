"""
Unit tests for Vietnamese locale helpers.
"""

from datetime import date, datetime

import pytest
from evcenter.utils.vietnamese import (
    APPOINTMENT_STATUS_TRANSLATIONS,
    INVALID_DATE,
    INVALID_TIME_AGO,
    calculate_vat,
    combine_date_time,
    format_invoice_number,
    format_vietnamese_address,
    format_vietnamese_date,
    format_vietnamese_datetime,
    format_vietnamese_id,
    format_vietnamese_phone,
    format_vietnamese_time,
    format_vietnamese_time_ago,
    format_vnd,
    format_vnd_number,
    generate_appointment_number,
    is_valid_vietnamese_id,
    is_valid_vietnamese_phone,
    is_valid_vietnamese_tax_code,
    number_to_vietnamese_words,
    translate,
)


# Currency

@pytest.mark.parametrize(
    "amount,expected",
    [
        (0, "0 ₫"),
        (1500000, "1.500.000 ₫"),
        (999, "999 ₫"),
        (1234.5, "1.235 ₫"),
        (-2000, "-2.000 ₫"),
    ],
)
def test_format_vnd(amount, expected):
    assert format_vnd(amount) == expected


@pytest.mark.parametrize("amount", [None, "abc", float("nan"), float("inf"), True])
def test_format_vnd_invalid_input_is_zero(amount):
    assert format_vnd(amount) == "0 ₫"


def test_format_vnd_number_has_no_symbol():
    assert format_vnd_number(25000000) == "25.000.000"
    assert format_vnd_number(None) == "0"


def test_calculate_vat_rounds_half_up():
    assert calculate_vat(1000000) == 100000
    assert calculate_vat(15, 10) == 2
    assert calculate_vat(1440000, 8) == 115200


# Phone, ID, tax code, address

def test_phone_validation():
    assert is_valid_vietnamese_phone("0912345678")
    assert is_valid_vietnamese_phone("0912-345-678")
    assert is_valid_vietnamese_phone("02438251234")
    assert not is_valid_vietnamese_phone("0112345678")
    assert not is_valid_vietnamese_phone(None)


def test_phone_formatting():
    assert format_vietnamese_phone("0912345678") == "0912 345 678"
    assert format_vietnamese_phone("02438251234") == "024 3825 1234"
    assert format_vietnamese_phone("12345") == "12345"


def test_id_validation_and_formatting():
    assert is_valid_vietnamese_id("001099012345")
    assert is_valid_vietnamese_id("123456789")
    assert not is_valid_vietnamese_id("1234")
    assert format_vietnamese_id("001099012345") == "001 099 012 345"
    assert format_vietnamese_id("123456789") == "123 456 789"


def test_tax_code_validation():
    assert is_valid_vietnamese_tax_code("0101234567")
    assert is_valid_vietnamese_tax_code("0101234567-001")
    assert not is_valid_vietnamese_tax_code("12345")


def test_address_skips_empty_parts():
    address = {"street": "12 Nguyễn Huệ", "ward": None, "district": "Quận 1", "city": "TP. Hồ Chí Minh"}
    assert format_vietnamese_address(address) == "12 Nguyễn Huệ, Quận 1, TP. Hồ Chí Minh"
    assert format_vietnamese_address(None) == ""


# Dates and times

def test_date_formatting():
    assert format_vietnamese_date("2024-12-18") == "18/12/2024"
    assert format_vietnamese_date(date(2024, 1, 5)) == "05/01/2024"
    assert format_vietnamese_date("not-a-date") == INVALID_DATE
    assert format_vietnamese_datetime(datetime(2024, 12, 18, 14, 30)) == "18/12/2024 14:30"
    assert format_vietnamese_time("2024-12-18T08:05:00") == "08:05"


def test_time_ago():
    now = datetime(2024, 1, 1, 12, 0)
    assert format_vietnamese_time_ago(datetime(2024, 1, 1, 10, 0), now=now) == "khoảng 2 giờ trước"
    assert format_vietnamese_time_ago(datetime(2024, 1, 4, 12, 0), now=now) == "3 ngày nữa"
    assert format_vietnamese_time_ago(datetime(2024, 1, 1, 11, 59, 50), now=now) == "dưới 1 phút trước"
    assert format_vietnamese_time_ago("garbage", now=now) == INVALID_TIME_AGO


def test_combine_date_time_formats():
    assert combine_date_time("2024-12-18", "14:30") == datetime(2024, 12, 18, 14, 30)
    assert combine_date_time("18/12/2024", "9") == datetime(2024, 12, 18, 9, 0)
    assert combine_date_time("2024-12-18T00:00:00Z", "8:5") == datetime(2024, 12, 18, 8, 5)


def test_combine_date_time_invalid_hour_defaults_to_nine():
    assert combine_date_time("2024-12-18", "25") == datetime(2024, 12, 18, 9, 0)


def test_combine_date_time_missing_input_falls_back_to_now():
    before = datetime.now()
    result = combine_date_time(None, "10:00")
    assert before <= result <= datetime.now()


# Numbers to words

@pytest.mark.parametrize(
    "amount,expected",
    [
        (0, "Không đồng"),
        (15, "Mười lăm đồng"),
        (21, "Hai mươi mốt đồng"),
        (1005, "Một nghìn không trăm lẻ năm đồng"),
        (1500000, "Một triệu năm trăm nghìn đồng"),
    ],
)
def test_number_to_words(amount, expected):
    assert number_to_vietnamese_words(amount) == expected


# Translations and document numbers

def test_translate_falls_back_to_key():
    assert translate(APPOINTMENT_STATUS_TRANSLATIONS, "pending") == "Chờ xác nhận"
    assert translate(APPOINTMENT_STATUS_TRANSLATIONS, "mystery") == "mystery"


def test_invoice_number_display():
    assert format_invoice_number("INV241218001") == "INV-24/12/18-001"
    assert format_invoice_number("OTHER") == "OTHER"


def test_appointment_number_shape():
    number = generate_appointment_number(datetime(2024, 12, 18, 9, 0))
    assert number.startswith("APT241218")
    assert len(number) == 12
    assert number[9:].isdigit()
