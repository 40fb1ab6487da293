"""Transactions: creation, expiry, refunds, statistics and history."""

from datetime import timedelta

import pytest
from conftest import auth
from evcenter.models.base import utcnow
from evcenter.models.invoice import InvoicePaymentStatus, InvoiceStatus
from evcenter.models.transaction import TransactionPurpose, TransactionStatus
from evcenter.models.user import UserRole
from evcenter.services import transaction_service
from evcenter.services.errors import PermissionDeniedError, ServiceError


async def test_create_transaction_defaults(customer, appointment_factory, db_session):
    appointment = await appointment_factory()

    online = await transaction_service.create_transaction(
        db_session, "vnpay", {"user_id": customer.id, "appointment_id": appointment.id, "amount": 200000}
    )
    assert online.transaction_ref.startswith("VNP")
    assert online.purpose == TransactionPurpose.APPOINTMENT_DEPOSIT
    assert online.status == TransactionStatus.PENDING
    assert online.expires_at is not None
    assert online.paid_amount == 0

    cash = await transaction_service.create_transaction(db_session, "cash", {"user_id": customer.id, "amount": 1})
    assert cash.purpose == TransactionPurpose.OTHER
    assert cash.expires_at is None
    assert cash.currency == "VND"


@pytest.mark.parametrize(
    "transaction_type,data",
    [
        ("bitcoin", {"user_id": 1, "amount": 100}),
        ("cash", {"user_id": 1, "amount": 0}),
        ("cash", {"amount": 100}),
    ],
)
async def test_create_transaction_validation(transaction_type, data, db_session):
    with pytest.raises(ServiceError) as exc_info:
        await transaction_service.create_transaction(db_session, transaction_type, data)
    assert exc_info.value.error_code == "VALIDATION_ERROR"


async def test_expire_pending_online_payments(customer, db_session):
    online = await transaction_service.create_transaction(
        db_session, "card", {"user_id": customer.id, "amount": 500000}
    )
    cash = await transaction_service.create_transaction(db_session, "cash", {"user_id": customer.id, "amount": 500000})

    assert await transaction_service.process_expired_transactions(db_session) == 0

    later = utcnow() + timedelta(hours=1)
    assert await transaction_service.process_expired_transactions(db_session, now=later) == 1
    assert online.status == TransactionStatus.EXPIRED
    assert cash.status == TransactionStatus.PENDING


async def test_status_updates(customer, staff, db_session):
    transaction = await transaction_service.create_transaction(
        db_session, "bank_transfer", {"user_id": customer.id, "amount": 300000}
    )

    with pytest.raises(ServiceError):
        await transaction_service.update_transaction_status(db_session, transaction.id, "lost")

    failed = await transaction_service.update_transaction_status(
        db_session, transaction.id, "failed", error_code="BANK_TIMEOUT", error_message="Ngân hàng không phản hồi"
    )
    assert failed.error_code == "BANK_TIMEOUT"

    completed = await transaction_service.update_transaction_status(db_session, transaction.id, "completed", staff)
    assert completed.paid_amount == 300000
    assert completed.processed_by == staff.id
    assert completed.processed_at is not None


async def test_refund_without_invoice(customer, staff, db_session):
    pending = await transaction_service.create_transaction(db_session, "cash", {"user_id": customer.id, "amount": 100})
    with pytest.raises(ServiceError) as exc_info:
        await transaction_service.process_refund(db_session, pending.id, staff)
    assert exc_info.value.error_code == "INVALID_STATUS"

    paid = await transaction_service.create_transaction(
        db_session, "cash", {"user_id": customer.id, "amount": 100000, "status": "completed"}
    )
    with pytest.raises(ServiceError) as exc_info:
        await transaction_service.process_refund(db_session, paid.id, staff, amount=100001)
    assert exc_info.value.error_code == "INVALID_AMOUNT"

    refund = await transaction_service.process_refund(db_session, paid.id, staff, reason="Khách hủy")
    assert refund.amount == 100000
    assert refund.purpose == TransactionPurpose.REFUND
    assert refund.original_transaction_id == paid.id
    assert refund.extra_data == {"refund_reason": "Khách hủy"}
    assert paid.status == TransactionStatus.REFUNDED


async def test_partial_refund_reopens_paid_invoice(invoice, staff, db_session):
    payment = await transaction_service.record_payment(db_session, invoice.id, "card", invoice.total_amount, staff)
    assert invoice.status == InvoiceStatus.PAID

    await transaction_service.process_refund(db_session, payment["transaction"].id, staff, amount=45000)

    assert invoice.paid_amount == invoice.total_amount - 45000
    assert invoice.remaining_amount == 45000
    assert invoice.payment_status == InvoicePaymentStatus.PARTIALLY_PAID
    assert invoice.status == InvoiceStatus.SENT


async def test_refund_transaction_cannot_be_refunded(invoice, staff, db_session):
    payment = await transaction_service.record_payment(db_session, invoice.id, "cash", invoice.total_amount, staff)
    refund = await transaction_service.process_refund(db_session, payment["transaction"].id, staff, amount=100000)
    assert refund.status == TransactionStatus.COMPLETED

    with pytest.raises(ServiceError) as exc_info:
        await transaction_service.process_refund(db_session, refund.id, staff)
    assert exc_info.value.error_code == "INVALID_STATUS"

    await db_session.refresh(invoice)
    assert invoice.paid_amount == invoice.total_amount - 100000
    assert invoice.remaining_amount == 100000


async def test_full_refund_marks_invoice_refunded(invoice, staff, db_session):
    payment = await transaction_service.record_payment(db_session, invoice.id, "cash", invoice.total_amount, staff)

    await transaction_service.process_refund(db_session, payment["transaction"].id, staff)

    assert invoice.paid_amount == 0
    assert invoice.status == InvoiceStatus.REFUNDED
    assert invoice.payment_status == InvoicePaymentStatus.REFUNDED

    with pytest.raises(ServiceError) as exc_info:
        await transaction_service.record_payment(db_session, invoice.id, "cash", 1000, staff)
    assert exc_info.value.error_code == "INVALID_STATUS"


async def test_statistics_per_status(customer, db_session):
    for amount in (100000, 300000):
        await transaction_service.create_transaction(
            db_session, "cash", {"user_id": customer.id, "amount": amount, "status": "completed"}
        )
    await transaction_service.create_transaction(db_session, "vnpay", {"user_id": customer.id, "amount": 50000})

    stats = {row["status"]: row for row in await transaction_service.get_transaction_statistics(db_session)}
    assert stats["completed"]["count"] == 2
    assert stats["completed"]["total_amount"] == 400000
    assert stats["completed"]["avg_amount"] == 200000.0
    assert stats["pending"]["count"] == 1


async def test_history_scoped_to_customer(customer, user_factory, staff, db_session):
    other = await user_factory(UserRole.CUSTOMER, "Hoa")
    mine = await transaction_service.create_transaction(db_session, "cash", {"user_id": customer.id, "amount": 1000})
    await transaction_service.create_transaction(db_session, "cash", {"user_id": other.id, "amount": 2000})

    history = await transaction_service.get_transaction_history(db_session, customer, user_id=other.id)
    assert [t.id for t in history] == [mine.id]

    everything = await transaction_service.get_transaction_history(db_session, staff)
    assert len(everything) == 2

    with pytest.raises(PermissionDeniedError):
        await transaction_service.get_transaction(db_session, mine.id, other)


# ============================================================================
# HTTP API
# ============================================================================


async def test_transaction_api(client, customer, staff, db_session):
    transaction = await transaction_service.create_transaction(
        db_session, "cash", {"user_id": customer.id, "amount": 250000, "status": "completed"}
    )

    response = await client.get("/api/transactions/", headers=auth(customer))
    assert response.status_code == 403

    response = await client.get("/api/transactions/my", headers=auth(customer))
    assert response.json()["count"] == 1

    response = await client.get("/api/transactions/stats", headers=auth(staff))
    assert response.json()["data"][0]["status"] == "completed"

    response = await client.post(
        f"/api/transactions/{transaction.id}/refund", json={"reason": "Trùng giao dịch"}, headers=auth(staff)
    )
    body = response.json()
    assert response.status_code == 200
    assert body["message"] == "Refund processed"
    assert body["data"]["purpose"] == "refund"
    assert body["data"]["transaction_ref"].startswith("CASH")
