"""Service reception intake, submission and staff review."""

import pytest
from conftest import auth
from evcenter.models import Appointment, Part
from evcenter.models.appointment import AppointmentStatus
from evcenter.models.service_reception import ReceptionStatus, StaffReviewStatus
from evcenter.models.user import UserRole
from evcenter.services import reception_service
from evcenter.services.errors import PermissionDeniedError, ServiceError


async def test_create_requires_arrived_customer(appointment_factory, technician, db_session):
    appointment = await appointment_factory(status=AppointmentStatus.CONFIRMED, technician=technician)

    with pytest.raises(ServiceError) as exc_info:
        await reception_service.create_reception(db_session, appointment.id, technician, {})
    assert exc_info.value.error_code == "INVALID_STATUS"


async def test_only_assigned_technician_creates(appointment_factory, technician, user_factory, db_session):
    appointment = await appointment_factory(status=AppointmentStatus.CUSTOMER_ARRIVED, technician=technician)
    other = await user_factory(UserRole.TECHNICIAN, "Tuấn")

    with pytest.raises(PermissionDeniedError) as exc_info:
        await reception_service.create_reception(db_session, appointment.id, other, {})
    assert exc_info.value.error_code == "UNAUTHORIZED_TECHNICIAN"


async def test_create_defaults_to_booked_service(appointment_factory, technician, service, part_factory, db_session):
    part = await part_factory(current_stock=1, retail_price=350000)
    appointment = await appointment_factory(
        status=AppointmentStatus.CUSTOMER_ARRIVED, technician=technician, service=service
    )

    reception = await reception_service.create_reception(
        db_session,
        appointment.id,
        technician,
        {
            "parts": [{"part_id": part.id, "quantity": 2, "reason": "Cầu chì cháy"}],
            "vehicle_condition": {"battery_level": 45, "exterior": "good"},
            "customer_complaints": "Xe báo lỗi pin",
        },
    )

    assert reception.reception_number.startswith("RCP")
    assert reception.status == ReceptionStatus.RECEIVED
    assert reception.estimated_service_time == reception_service.DEFAULT_SERVICE_TIME
    assert [line.service_id for line in reception.services] == [service.id]
    assert reception.services[0].unit_price == 500000

    line = reception.parts[0]
    assert line.estimated_cost == 700000
    assert line.is_available is False
    assert line.available_quantity == 1
    assert line.shortfall == 1

    # nothing leaves stock before staff approve
    stock = await db_session.get(Part, part.id)
    assert stock.current_stock == 1

    refreshed = await db_session.get(Appointment, appointment.id)
    assert refreshed.status == AppointmentStatus.RECEPTION_CREATED
    assert refreshed.core_status.value == "CheckedIn"

    with pytest.raises(ServiceError) as exc_info:
        await reception_service.create_reception(db_session, appointment.id, technician, {})
    assert exc_info.value.error_code == "RECEPTION_EXISTS"


async def test_submit_once(reception_factory, technician, customer, db_session):
    reception = await reception_factory(submit=False)

    with pytest.raises(PermissionDeniedError):
        await reception_service.submit_reception(db_session, reception.id, customer)

    submitted = await reception_service.submit_reception(db_session, reception.id, technician)
    assert submitted.submitted_to_staff is True
    assert submitted.submitted_by == technician.id
    assert submitted.workflow_history[-1]["status"] == "submitted_for_approval"

    with pytest.raises(ServiceError) as exc_info:
        await reception_service.submit_reception(db_session, reception.id, technician)
    assert exc_info.value.error_code == "ALREADY_SUBMITTED"


async def test_approval_consumes_parts(reception_factory, part_factory, staff, db_session):
    part = await part_factory(current_stock=5)
    reception = await reception_factory(parts=[(part, 2)])

    result = await reception_service.review_reception(db_session, reception.id, staff, "approved", notes="OK")

    assert result["decision"] == "approved"
    assert result["appointment_status"] == "reception_approved"
    assert result["blocked_parts"] == []
    assert result["reception"].status == ReceptionStatus.APPROVED
    assert result["reception"].parts[0].is_approved is True

    stock = await db_session.get(Part, part.id)
    assert stock.current_stock == 3
    assert stock.used_stock == 2

    with pytest.raises(ServiceError) as exc_info:
        await reception_service.review_reception(db_session, reception.id, staff, "approved")
    assert exc_info.value.error_code == "RECEPTION_NOT_REVIEWABLE"


async def test_partial_block_takes_uncontested_parts(reception_factory, part_factory, staff, db_session):
    plenty = await part_factory(current_stock=5)
    scarce = await part_factory(current_stock=1)
    reception = await reception_factory(parts=[(plenty, 2), (scarce, 3)])

    result = await reception_service.review_reception(db_session, reception.id, staff, "approved")

    assert result["blocked_parts"] == [scarce.id]
    assert result["appointment_status"] == "parts_insufficient"
    lines = {line.part_id: line for line in result["reception"].parts}
    assert lines[plenty.id].is_approved is True
    assert lines[scarce.id].is_approved is False
    assert lines[scarce.id].shortfall == 2

    assert (await db_session.get(Part, plenty.id)).current_stock == 3
    assert (await db_session.get(Part, scarce.id)).current_stock == 1


async def test_review_edits_need_reason(reception_factory, part_factory, staff, db_session):
    part = await part_factory(current_stock=5)
    reception = await reception_factory(parts=[(part, 3)])

    with pytest.raises(ServiceError) as exc_info:
        await reception_service.review_reception(
            db_session, reception.id, staff, "approved", parts=[{"part_id": part.id, "quantity": 1}]
        )
    assert exc_info.value.error_code == "MODIFICATION_REASON_REQUIRED"

    result = await reception_service.review_reception(
        db_session,
        reception.id,
        staff,
        "approved",
        parts=[{"part_id": part.id, "quantity": 1}],
        modification_reason="Chỉ cần thay một cầu chì",
    )

    reception = result["reception"]
    assert reception.modification_reason == "Chỉ cần thay một cầu chì"
    assert reception.parts[0].quantity == 1
    modified = reception.approval_decision["changes"]["parts"]["modified"]
    assert modified[0]["before"]["quantity"] == 3
    assert modified[0]["after"]["quantity"] == 1
    assert result["changes"]["services"] is None
    assert (await db_session.get(Part, part.id)).current_stock == 4


async def test_needs_modification_returns_to_technician(reception_factory, technician, staff, db_session):
    reception = await reception_factory()

    result = await reception_service.review_reception(
        db_session, reception.id, staff, "needs_modification", notes="Thiếu ảnh tình trạng xe"
    )
    returned = result["reception"]
    assert returned.status == ReceptionStatus.RECEIVED
    assert returned.submitted_to_staff is False
    assert returned.staff_review_status == StaffReviewStatus.NEEDS_MODIFICATION
    assert result["appointment_status"] == "reception_created"

    resubmitted = await reception_service.submit_reception(db_session, reception.id, technician)
    assert resubmitted.staff_review_status == StaffReviewStatus.PENDING


async def test_rejection_keeps_appointment_status(reception_factory, staff, db_session):
    reception = await reception_factory()

    result = await reception_service.review_reception(db_session, reception.id, staff, "rejected", notes="Sai xe")

    assert result["reception"].status == ReceptionStatus.REJECTED
    appointment = await db_session.get(Appointment, reception.appointment_id)
    assert appointment.status == AppointmentStatus.RECEPTION_CREATED
    assert appointment.workflow_history[-1]["reason"] == "Service reception rejected by staff"


async def test_invalid_decision(reception_factory, staff, db_session):
    reception = await reception_factory()
    with pytest.raises(ServiceError) as exc_info:
        await reception_service.review_reception(db_session, reception.id, staff, "maybe")
    assert exc_info.value.error_code == "VALIDATION_ERROR"


async def test_mark_unsubmitted_receptions(reception_factory, db_session):
    await reception_factory(submit=False)
    await reception_factory(submit=False)
    await reception_factory()

    assert await reception_service.mark_unsubmitted_receptions(db_session) == 2
    assert await reception_service.mark_unsubmitted_receptions(db_session) == 0


# ============================================================================
# HTTP API
# ============================================================================


async def test_reception_api_flow(client, appointment_factory, technician, staff, customer, part_factory):
    part = await part_factory(current_stock=4)
    appointment = await appointment_factory(status=AppointmentStatus.CUSTOMER_ARRIVED, technician=technician)

    response = await client.post(
        f"/api/service-receptions/{appointment.id}",
        json={"parts": [{"part_id": part.id, "quantity": 1}], "customer_complaints": "Sạc chậm"},
        headers=auth(technician),
    )
    assert response.status_code == 201
    reception = response.json()["data"]
    assert reception["requested_parts"][0]["is_available"] is True

    response = await client.put(f"/api/service-receptions/{reception['id']}/submit", headers=auth(technician))
    assert response.json()["data"]["submission_status"]["submitted_to_staff"] is True

    response = await client.get("/api/service-receptions/pending-review", headers=auth(staff))
    assert response.json()["count"] == 1

    response = await client.get(f"/api/service-receptions/appointment/{appointment.id}", headers=auth(customer))
    assert response.status_code == 200

    response = await client.put(
        f"/api/service-receptions/{reception['id']}/review",
        json={"decision": "approved", "notes": "Đủ linh kiện"},
        headers=auth(staff),
    )
    body = response.json()
    assert body["message"] == "Service reception approved"
    assert body["data"]["appointment_status"] == "reception_approved"


async def test_reception_api_permissions(client, reception_factory, customer, user_factory, staff):
    reception = await reception_factory()
    stranger = await user_factory(UserRole.CUSTOMER, "Hoa")

    response = await client.get(f"/api/service-receptions/{reception.id}", headers=auth(stranger))
    assert response.status_code == 403

    response = await client.put(
        f"/api/service-receptions/{reception.id}/review", json={"decision": "approved"}, headers=auth(customer)
    )
    assert response.status_code == 403

    response = await client.put(
        f"/api/service-receptions/{reception.id}/review", json={"decision": "maybe"}, headers=auth(staff)
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "VALIDATION_ERROR"
