"""
Unit tests for UTC / Vietnam time conversion.
"""

from datetime import datetime, timezone

from evcenter.utils.timezone import utc_to_vietnam_datetime, vietnam_datetime_to_utc, vietnam_now


def test_vietnam_to_utc():
    assert vietnam_datetime_to_utc("2024-12-18", "08:00") == datetime(2024, 12, 18, 1, 0)
    assert vietnam_datetime_to_utc("2024-12-18", "03:30") == datetime(2024, 12, 17, 20, 30)


def test_utc_to_vietnam_naive_is_utc():
    parts = utc_to_vietnam_datetime(datetime(2024, 12, 17, 20, 30))
    assert parts["date"] == "2024-12-18"
    assert parts["time"] == "03:30"
    assert parts["formatted"] == "18/12/2024 03:30"


def test_utc_to_vietnam_aware():
    parts = utc_to_vietnam_datetime(datetime(2024, 12, 18, 1, 0, tzinfo=timezone.utc))
    assert parts["time"] == "08:00"


def test_vietnam_now_is_utc_plus_seven():
    assert vietnam_now().utcoffset().total_seconds() == 7 * 3600
