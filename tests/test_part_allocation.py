"""
Unit tests for conflict prioritization, allocation and review diffing.
"""

from datetime import date, datetime
from types import SimpleNamespace

from evcenter.services.part_conflict_service import allocate, prioritize_requests, priority_weight
from evcenter.services.reception_service import compute_item_changes, item_change_status


def req(name, quantity=1, day=18, at=None, priority="normal", requested_minute=0):
    return SimpleNamespace(
        name=name,
        requested_quantity=quantity,
        scheduled_date=date(2024, 12, day) if day else None,
        scheduled_time=at,
        priority=priority,
        requested_at=datetime(2024, 12, 1, 8, requested_minute),
    )


def names(requests):
    return [r.name for r in requests]


def test_priority_weights():
    assert priority_weight("urgent") == 4
    assert priority_weight("low") == 1
    assert priority_weight("unknown") == 2
    assert priority_weight(None, default=0) == 0


def test_earliest_date_first():
    ordered = prioritize_requests([req("late", day=20, priority="urgent"), req("early", day=18)])
    assert names(ordered) == ["early", "late"]


def test_time_then_priority_then_fifo():
    ordered = prioritize_requests(
        [
            req("afternoon", at="14:00", priority="urgent"),
            req("morning-normal", at="09:00", requested_minute=1),
            req("morning-high", at="09:00", priority="high", requested_minute=5),
            req("morning-normal-first", at="09:00", requested_minute=0),
        ]
    )
    assert names(ordered) == ["morning-high", "morning-normal-first", "morning-normal", "afternoon"]


def test_missing_date_sorts_last():
    ordered = prioritize_requests([req("undated", day=None), req("dated", day=25)])
    assert names(ordered) == ["dated", "undated"]


def test_time_ignored_unless_both_present():
    ordered = prioritize_requests([req("timed", at="08:00"), req("untimed", priority="high")])
    assert names(ordered) == ["untimed", "timed"]


def test_allocate_is_greedy_and_skips_oversized():
    requests = [req("a", 3), req("b", 5), req("c", 2)]
    assert names(allocate(requests, 6)) == ["a", "c"]
    assert allocate(requests, 0) == []


def test_item_changes():
    original = [{"part_id": 1, "quantity": 2}, {"part_id": 2, "quantity": 1}]
    edited = [{"part_id": 1, "quantity": 3}, {"part_id": 3, "quantity": 1}]

    changes = compute_item_changes(original, edited, "part_id")
    assert changes["added"] == [{"part_id": 3, "quantity": 1}]
    assert changes["removed"] == [{"part_id": 2, "quantity": 1}]
    assert changes["modified"] == [{"before": original[0], "after": edited[0]}]

    assert compute_item_changes(original, list(original), "part_id") is None


def test_item_change_status():
    original = [{"service_id": 1, "quantity": 1}]
    assert item_change_status({"service_id": 1, "quantity": 1}, original, "service_id") == "unchanged"
    assert item_change_status({"service_id": 1, "quantity": 2}, original, "service_id") == "modified"
    assert item_change_status({"service_id": 2, "quantity": 1}, original, "service_id") == "added"
