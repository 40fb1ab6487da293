"""Invoice generation, payments, revisions and overdue tracking."""

from datetime import timedelta

import pytest
from conftest import auth
from evcenter.models import Appointment, ServiceReception
from evcenter.models.appointment import AppointmentStatus
from evcenter.models.base import utcnow
from evcenter.models.invoice import InvoicePaymentStatus, InvoiceStatus
from evcenter.models.service_reception import ReceptionStatus
from evcenter.models.user import UserRole
from evcenter.services import customer_service, invoice_service, transaction_service
from evcenter.services.errors import ServiceError

# 500 000 service + 2 x 200 000 parts + 2h labor at 50 000
SUBTOTAL = 1000000


async def test_generate_requires_completed_appointment(appointment_factory, technician, staff, db_session):
    appointment = await appointment_factory(status=AppointmentStatus.IN_PROGRESS, technician=technician)

    with pytest.raises(ServiceError) as exc_info:
        await invoice_service.generate_invoice(db_session, appointment.id, staff)
    assert exc_info.value.error_code == "INVALID_STATUS"


async def test_generated_invoice_totals(invoice, completed_appointment, db_session):
    kinds = [item.kind.value for item in invoice.line_items]
    assert kinds == ["service", "part", "labor"]
    assert invoice.line_items[2].quantity == 2

    assert invoice.subtotal == SUBTOTAL
    assert invoice.discount_amount == 100000
    assert invoice.additional_total == 50000
    assert invoice.taxable_amount == 950000
    assert invoice.tax_amount == 95000
    assert invoice.total_amount == 1045000
    assert invoice.remaining_amount == 1045000
    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.payment_status == InvoicePaymentStatus.UNPAID
    assert invoice.invoice_number.startswith("INV")

    assert invoice.customer_info["address"] == "123 Lê Lợi, Phường Bến Nghé, Quận 1, TP. Hồ Chí Minh"
    assert invoice.vehicle_info["vin"].startswith("RLLVF8EV5PH")

    appointment = await db_session.get(Appointment, completed_appointment.id)
    assert appointment.status == AppointmentStatus.INVOICED
    reception = await db_session.get(ServiceReception, invoice.reception_id)
    assert reception.status == ReceptionStatus.READY_FOR_PICKUP


async def test_one_invoice_per_appointment(invoice, staff, db_session):
    with pytest.raises(ServiceError) as exc_info:
        await invoice_service.generate_invoice(db_session, invoice.appointment_id, staff)
    # the appointment is already invoiced
    assert exc_info.value.error_code == "INVALID_STATUS"


async def test_partial_then_full_payment(invoice, staff, db_session):
    with pytest.raises(ServiceError) as exc_info:
        await transaction_service.record_payment(db_session, invoice.id, "vnpay", 1000, staff)
    assert exc_info.value.error_code == "VALIDATION_ERROR"

    first = await transaction_service.record_payment(db_session, invoice.id, "cash", 45000, staff)
    assert first["is_full_payment"] is False
    assert first["invoice"].payment_status == InvoicePaymentStatus.PARTIALLY_PAID
    assert first["invoice"].remaining_amount == 1000000
    assert first["transaction"].transaction_ref.startswith("CASH")
    assert first["transaction"].status.value == "completed"

    with pytest.raises(ServiceError) as exc_info:
        await transaction_service.record_payment(db_session, invoice.id, "card", 1000001, staff)
    assert exc_info.value.error_code == "INVALID_AMOUNT"

    second = await transaction_service.record_payment(db_session, invoice.id, "bank_transfer", 1000000, staff)
    assert second["is_full_payment"] is True
    assert second["invoice"].status == InvoiceStatus.PAID
    assert second["invoice"].remaining_amount == 0
    assert second["invoice"].transaction_ref.startswith("TRF")

    appointment = await db_session.get(Appointment, invoice.appointment_id)
    assert appointment.payment_status.value == "paid"

    with pytest.raises(ServiceError) as exc_info:
        await transaction_service.record_payment(db_session, invoice.id, "cash", 1, staff)
    assert exc_info.value.error_code == "INVOICE_ALREADY_PAID"


async def test_revision_copies_payment_state(invoice, staff, db_session):
    await transaction_service.record_payment(db_session, invoice.id, "cash", 45000, staff)

    with pytest.raises(ServiceError):
        await invoice_service.create_revision(db_session, invoice.id, staff, "")

    revision = await invoice_service.create_revision(db_session, invoice.id, staff, "Sai giá linh kiện")
    assert revision.revision_number == 2
    assert revision.original_invoice_id == invoice.id
    assert revision.paid_amount == 45000
    assert revision.total_amount == invoice.total_amount
    assert revision.remaining_amount == invoice.total_amount - 45000
    assert revision.status == InvoiceStatus.DRAFT
    assert len(revision.line_items) == len(invoice.line_items)

    latest = await invoice_service.get_invoice_by_appointment(db_session, invoice.appointment_id)
    assert latest.id == revision.id


async def test_revision_numbers_keep_increasing(invoice, staff, db_session):
    first = await invoice_service.create_revision(db_session, invoice.id, staff, "Sai giá linh kiện")
    second = await invoice_service.create_revision(db_session, invoice.id, staff, "Thêm phí xử lý")

    assert (first.revision_number, second.revision_number) == (2, 3)
    latest = await invoice_service.get_invoice_by_appointment(db_session, invoice.appointment_id)
    assert latest.id == second.id


# ============================================================================
# Vehicle maintenance history
# ============================================================================


async def test_maintenance_lists_warranties_of_latest_revision(invoice, customer, vehicle, staff, db_session):
    revision = await invoice_service.create_revision(db_session, invoice.id, staff, "Sai giá linh kiện")

    history = await customer_service.get_vehicle_maintenance(db_session, vehicle.id, customer)

    assert history["vehicle"]["vin"] == vehicle.vin
    assert [a["id"] for a in history["appointments"]] == [invoice.appointment_id]

    warranties = history["warranties"]
    assert sorted(w["kind"] for w in warranties) == ["part", "service"]
    assert {w["invoice_number"] for w in warranties} == {revision.invoice_number}

    service_warranty = next(w for w in warranties if w["kind"] == "service")
    assert service_warranty["duration"] == "3 tháng"
    assert service_warranty["status"]["is_active"] is True
    assert service_warranty["status"]["is_expired"] is False


async def test_maintenance_api(client, invoice, customer, vehicle, user_factory):
    response = await client.get(f"/api/vehicles/{vehicle.id}/maintenance", headers=auth(customer))
    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["warranties"]) == 2
    assert {w["invoice_number"] for w in data["warranties"]} == {invoice.invoice_number}

    stranger = await user_factory(UserRole.CUSTOMER, "Hoa")
    response = await client.get(f"/api/vehicles/{vehicle.id}/maintenance", headers=auth(stranger))
    assert response.status_code == 403


async def test_status_updates_and_viewing(invoice, staff, customer, user_factory, db_session):
    with pytest.raises(ServiceError) as exc_info:
        await invoice_service.update_invoice_status(db_session, invoice.id, staff, "lost")
    assert exc_info.value.error_code == "VALIDATION_ERROR"

    sent = await invoice_service.update_invoice_status(db_session, invoice.id, staff, "sent", sent_via="zalo")
    assert sent.sent_at is not None
    assert sent.sent_via == "zalo"

    stranger = await user_factory(UserRole.CUSTOMER, "Hoa")
    with pytest.raises(ServiceError):
        await invoice_service.mark_invoice_viewed(db_session, invoice.id, stranger)

    viewed = await invoice_service.mark_invoice_viewed(db_session, invoice.id, customer)
    assert viewed.status == InvoiceStatus.VIEWED
    assert viewed.customer_viewed_at is not None


async def test_mark_overdue(invoice, db_session):
    assert await invoice_service.mark_overdue_invoices(db_session) == 0

    later = utcnow() + timedelta(days=30)
    assert await invoice_service.mark_overdue_invoices(db_session, now=later) == 1
    assert invoice.status == InvoiceStatus.OVERDUE
    assert invoice.payment_status == InvoicePaymentStatus.OVERDUE
    assert await invoice_service.mark_overdue_invoices(db_session, now=later) == 0


# ============================================================================
# HTTP API
# ============================================================================


async def test_invoice_api_flow(client, completed_appointment, staff, customer):
    response = await client.post(
        f"/api/invoices/generate/{completed_appointment.id}",
        json={"discount_percentage": 0},
        headers=auth(staff),
    )
    assert response.status_code == 201
    body = response.json()
    assert "₫" in body["message"]
    invoice = body["data"]
    # 1 000 000 + 10% VAT
    assert invoice["totals"]["total_amount"] == 1100000
    assert invoice["totals"]["total_formatted"] == "1.100.000 ₫"

    response = await client.get("/api/invoices/", headers=auth(customer))
    assert response.json()["count"] == 1

    response = await client.post(
        f"/api/invoices/{invoice['id']}/payment",
        json={"payment_method": "cash", "amount": 100000},
        headers=auth(customer),
    )
    assert response.status_code == 403

    response = await client.post(
        f"/api/invoices/{invoice['id']}/payment",
        json={"payment_method": "cash", "amount": 1100000},
        headers=auth(staff),
    )
    body = response.json()
    assert body["message"] == "Payment completed"
    assert body["data"]["invoice"]["payment_info"]["payment_status"] == "paid"


async def test_invoice_api_rejects_bad_discount(client, completed_appointment, staff):
    response = await client.post(
        f"/api/invoices/generate/{completed_appointment.id}",
        json={"discount_percentage": 120},
        headers=auth(staff),
    )
    assert response.status_code == 422
    assert response.json()["success"] is False
