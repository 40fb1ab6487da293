"""Additional part requests raised during service and their staff review."""

import pytest
from conftest import auth
from evcenter.models import Appointment, Part, PartRequest
from evcenter.models.appointment import AppointmentStatus
from evcenter.models.part_conflict import ConflictRequestStatus, ConflictStatus
from evcenter.models.part_request import PartRequestStatus
from evcenter.services import part_conflict_service
from evcenter.services.errors import ServiceError
from evcenter.services.part_request_service import create_part_request, review_part_request


@pytest.fixture
def requested(part_factory, appointment_factory, technician, db_session):
    """Part request for ``quantity`` units of a part holding ``stock``, on an in-progress appointment."""

    async def build(stock=10, quantity=2, part=None):
        part = part or await part_factory(current_stock=stock)
        appointment = await appointment_factory(status=AppointmentStatus.IN_PROGRESS, technician=technician)
        result = await create_part_request(
            db_session, technician, appointment.id, [{"part_id": part.id, "quantity": quantity}], "Má phanh mòn"
        )
        return part, appointment, result

    return build


async def test_approval_takes_stock_and_resumes_work(requested, staff, db_session):
    part, appointment, result = await requested(stock=10, quantity=2)
    assert result["conflicts"] == []
    assert appointment.status == AppointmentStatus.PARTS_REQUESTED

    reviewed = await review_part_request(db_session, result["part_request"].id, staff, True, "Lấy ở kệ B2")

    assert reviewed.status == PartRequestStatus.APPROVED
    assert reviewed.reviewed_by == staff.id
    assert reviewed.review_notes == "Lấy ở kệ B2"
    assert all(item.is_approved for item in reviewed.items)

    stock = await db_session.get(Part, part.id)
    assert stock.current_stock == 8
    assert stock.used_stock == 2

    resumed = await db_session.get(Appointment, appointment.id)
    assert resumed.status == AppointmentStatus.IN_PROGRESS

    with pytest.raises(ServiceError) as exc_info:
        await review_part_request(db_session, reviewed.id, staff, False)
    assert exc_info.value.error_code == "REQUEST_NOT_PENDING"


async def test_rejection_resumes_work_without_parts(requested, staff, db_session):
    part, appointment, result = await requested(stock=10, quantity=2)

    reviewed = await review_part_request(db_session, result["part_request"].id, staff, False, "Không cần thay")

    assert reviewed.status == PartRequestStatus.REJECTED
    assert not any(item.is_approved for item in reviewed.items)
    stock = await db_session.get(Part, part.id)
    assert stock.current_stock == 10

    resumed = await db_session.get(Appointment, appointment.id)
    assert resumed.status == AppointmentStatus.IN_PROGRESS


async def test_technician_cannot_review(requested, technician, db_session):
    _, _, result = await requested()

    with pytest.raises(ServiceError) as exc_info:
        await review_part_request(db_session, result["part_request"].id, technician, True)
    assert exc_info.value.error_code == "FORBIDDEN"


async def test_conflicted_request_is_decided_on_the_conflict(requested, staff, db_session):
    part, _, first = await requested(stock=2, quantity=2)
    _, _, second = await requested(quantity=2, part=part)
    assert first["conflicts"] == []
    assert len(second["conflicts"]) == 1
    pr1 = first["part_request"]

    for approved in (True, False):
        with pytest.raises(ServiceError) as exc_info:
            await review_part_request(db_session, pr1.id, staff, approved)
        assert exc_info.value.error_code == "PART_CONFLICT_PENDING"

    stored = await db_session.get(PartRequest, pr1.id)
    assert stored.status == PartRequestStatus.PENDING
    stock = await db_session.get(Part, part.id)
    assert stock.current_stock == 2


async def test_conflict_skips_requests_decided_elsewhere(requested, staff, db_session):
    part, _, first = await requested(stock=2, quantity=2)
    _, _, second = await requested(quantity=2, part=part)
    conflict = second["conflicts"][0]
    entries = {r.request_id: r for r in conflict.requests}
    pr1, pr2 = first["part_request"], second["part_request"]

    # decided outside the conflict workflow
    stale = await db_session.get(PartRequest, pr1.id)
    stale.status = PartRequestStatus.REJECTED
    await db_session.commit()

    with pytest.raises(ServiceError) as exc_info:
        await part_conflict_service.approve_conflict_request(db_session, conflict.id, entries[pr1.id].id, staff)
    assert exc_info.value.error_code == "REQUEST_NOT_PENDING"
    stock = await db_session.get(Part, part.id)
    assert stock.current_stock == 2

    result = await part_conflict_service.resolve_conflict(
        db_session, conflict.id, staff, approved_request_ids=[entries[pr1.id].id, entries[pr2.id].id]
    )

    assert result["approved_count"] == 1
    resolved = result["conflict"]
    assert resolved.status == ConflictStatus.RESOLVED
    statuses = {r.request_id: r.status for r in resolved.requests}
    assert statuses == {pr1.id: ConflictRequestStatus.REJECTED, pr2.id: ConflictRequestStatus.APPROVED}

    await db_session.refresh(stale)
    assert stale.status == PartRequestStatus.REJECTED
    stock = await db_session.get(Part, part.id)
    assert stock.current_stock == 0


# ============================================================================
# HTTP API
# ============================================================================


async def test_review_api(client, requested, staff, technician):
    _, appointment, result = await requested(stock=5, quantity=1)
    url = f"/api/part-requests/{result['part_request'].id}/review"

    response = await client.put(url, json={"approved": True}, headers=auth(technician))
    assert response.status_code == 403

    response = await client.put(url, json={"approved": True, "notes": "OK"}, headers=auth(staff))
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Part request approved"
    assert body["data"]["status"] == "approved"
    assert body["data"]["items"][0]["is_approved"] is True

    response = await client.get(f"/api/appointments/{appointment.id}", headers=auth(staff))
    assert response.json()["data"]["status"] == "in_progress"

    response = await client.put(url, json={"approved": False}, headers=auth(staff))
    assert response.status_code == 400
    assert response.json()["error_code"] == "REQUEST_NOT_PENDING"
