"""
Payment transactions.

Every payment or refund is a Transaction row. Recording a payment against
an invoice keeps the invoice's payment block and the appointment's payment
status in step with the transactions.
"""

import logging
import random
import string
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from evcenter.config import settings
from evcenter.models import Appointment, Invoice, Transaction, User
from evcenter.models.appointment import AppointmentPaymentStatus
from evcenter.models.base import utcnow
from evcenter.models.invoice import InvoicePaymentStatus, InvoiceStatus, PaymentMethod
from evcenter.models.transaction import TransactionPurpose, TransactionStatus, TransactionType
from evcenter.models.user import UserRole
from evcenter.services.errors import NotFoundError, PermissionDeniedError, ServiceError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

REF_PREFIXES = {
    TransactionType.CASH: "CASH",
    TransactionType.CARD: "CARD",
    TransactionType.BANK_TRANSFER: "TRF",
    TransactionType.VNPAY: "VNP",
}

# Payments staff record at the counter
RECORDABLE_METHODS = (TransactionType.CASH, TransactionType.CARD, TransactionType.BANK_TRANSFER)

HISTORY_LIMIT = 50


def generate_transaction_ref(transaction_type: Any, now: Optional[datetime] = None) -> str:
    """
    Build a transaction reference.

    Format: prefix + yymmdd + last 6 digits of the epoch milliseconds +
    4 random uppercase alphanumerics, e.g. ``CASH241218123456AB3Z``.
    Unknown types use the ``TXN`` prefix.
    """
    now = now or datetime.now()
    try:
        prefix = REF_PREFIXES[TransactionType(transaction_type)]
    except ValueError:
        prefix = "TXN"
    millis = str(int(time.time() * 1000))[-6:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"{prefix}{now:%y%m%d}{millis}{suffix}"


def _default_purpose(data: Dict[str, Any]) -> TransactionPurpose:
    if data.get("invoice_id"):
        return TransactionPurpose.INVOICE_PAYMENT
    if data.get("appointment_id"):
        return TransactionPurpose.APPOINTMENT_DEPOSIT
    return TransactionPurpose.OTHER


async def create_transaction(db: AsyncSession, transaction_type: str, data: Dict[str, Any], commit: bool = True) -> Transaction:
    """
    Create a transaction of the given type.

    Pending non-cash transactions expire after ONLINE_PAYMENT_EXPIRY_MINUTES
    unless completed first.

    Args:
        db: Database session
        transaction_type: cash, card, bank_transfer or vnpay
        data: user_id, amount and optional appointment_id, invoice_id,
            purpose, status, processed_by, billing_info, extra_data, notes,
            description, original_transaction_id, transaction_ref
        commit: Commit immediately; callers updating related rows pass False
    """
    try:
        transaction_type = TransactionType(transaction_type)
    except ValueError:
        raise ServiceError(f"Unsupported transaction type: {transaction_type}", "VALIDATION_ERROR")

    amount = data.get("amount") or 0
    if amount <= 0:
        raise ServiceError("Amount must be greater than 0", "VALIDATION_ERROR")
    if not data.get("user_id"):
        raise ServiceError("User ID is required", "VALIDATION_ERROR")

    status = TransactionStatus(data.get("status") or TransactionStatus.PENDING)
    now = utcnow()

    transaction = Transaction(
        transaction_ref=data.get("transaction_ref") or generate_transaction_ref(transaction_type),
        transaction_type=transaction_type,
        purpose=TransactionPurpose(data.get("purpose") or _default_purpose(data)),
        user_id=data["user_id"],
        appointment_id=data.get("appointment_id"),
        invoice_id=data.get("invoice_id"),
        original_transaction_id=data.get("original_transaction_id"),
        amount=amount,
        paid_amount=amount if status == TransactionStatus.COMPLETED else 0,
        description=data.get("description"),
        status=status,
        processed_by=data.get("processed_by"),
        processed_at=now if status == TransactionStatus.COMPLETED else None,
        billing_info=data.get("billing_info"),
        extra_data=data.get("extra_data") or {},
        notes=data.get("notes"),
    )
    if transaction_type != TransactionType.CASH and status == TransactionStatus.PENDING:
        transaction.expires_at = now + timedelta(minutes=settings.ONLINE_PAYMENT_EXPIRY_MINUTES)

    db.add(transaction)
    if commit:
        await db.commit()

    logger.info(
        f"Transaction {transaction.transaction_ref} created: {transaction_type.value} "
        f"{amount} VND ({transaction.purpose.value}, {status.value})"
    )
    return transaction


def _settle_invoice(invoice: Invoice) -> None:
    invoice.remaining_amount = max(0, invoice.total_amount - invoice.paid_amount)
    if invoice.paid_amount >= invoice.total_amount:
        invoice.payment_status = InvoicePaymentStatus.PAID
        invoice.status = InvoiceStatus.PAID
    elif invoice.paid_amount > 0:
        invoice.payment_status = InvoicePaymentStatus.PARTIALLY_PAID


async def record_payment(
    db: AsyncSession,
    invoice_id: int,
    method: str,
    amount: int,
    actor: User,
    transaction_data: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Record a counter payment against an invoice.

    Returns:
        {"transaction": Transaction, "invoice": Invoice, "is_full_payment": bool}

    Raises:
        NotFoundError: invoice missing
        ServiceError: unsupported method, invoice closed, amount not in
            (0, remaining balance]
    """
    try:
        method = TransactionType(method)
    except ValueError:
        method = None
    if method not in RECORDABLE_METHODS:
        raise ServiceError(
            "Payment method must be one of: " + ", ".join(m.value for m in RECORDABLE_METHODS),
            "VALIDATION_ERROR",
        )

    invoice = await db.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice not found", "INVOICE_NOT_FOUND")
    if invoice.payment_status == InvoicePaymentStatus.PAID:
        raise ServiceError("Invoice is already paid", "INVOICE_ALREADY_PAID")
    if invoice.status in (InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED):
        raise ServiceError(f"Invoice is {invoice.status.value}", "INVALID_STATUS")

    remaining = invoice.total_amount - (invoice.paid_amount or 0)
    if amount is None or amount <= 0 or amount > remaining:
        raise ServiceError(
            f"Invalid payment amount. Must be between 1 and {remaining}", "INVALID_AMOUNT"
        )

    transaction = await create_transaction(
        db,
        method.value,
        {
            "user_id": invoice.customer_id,
            "invoice_id": invoice.id,
            "appointment_id": invoice.appointment_id,
            "amount": amount,
            "purpose": TransactionPurpose.INVOICE_PAYMENT,
            "status": TransactionStatus.COMPLETED,
            "processed_by": actor.id,
            "extra_data": transaction_data or {},
            "notes": notes,
            "description": f"Payment for invoice {invoice.invoice_number}",
        },
        commit=False,
    )

    invoice.paid_amount = (invoice.paid_amount or 0) + amount
    invoice.payment_method = PaymentMethod(method.value)
    invoice.payment_date = utcnow()
    invoice.transaction_ref = transaction.transaction_ref
    _settle_invoice(invoice)
    is_full_payment = invoice.payment_status == InvoicePaymentStatus.PAID

    appointment = await db.get(Appointment, invoice.appointment_id)
    if appointment:
        appointment.payment_status = (
            AppointmentPaymentStatus.PAID if is_full_payment else AppointmentPaymentStatus.PARTIAL
        )

    await db.commit()

    logger.info(
        f"Recorded {method.value} payment of {amount} VND on invoice {invoice.invoice_number} "
        f"by user {actor.id}; remaining {invoice.remaining_amount}"
    )
    return {"transaction": transaction, "invoice": invoice, "is_full_payment": is_full_payment}


async def process_refund(
    db: AsyncSession,
    transaction_id: int,
    actor: User,
    amount: Optional[int] = None,
    reason: Optional[str] = None,
) -> Transaction:
    """
    Refund a completed transaction, fully or in part.

    The original is marked refunded and a completed refund transaction is
    created. A linked invoice loses the refunded amount from its paid total.
    """
    original = await db.get(Transaction, transaction_id)
    if not original:
        raise NotFoundError("Transaction not found", "TRANSACTION_NOT_FOUND")
    if original.status != TransactionStatus.COMPLETED:
        raise ServiceError("Can only refund completed transactions", "INVALID_STATUS")
    if original.purpose == TransactionPurpose.REFUND:
        raise ServiceError("A refund cannot itself be refunded", "INVALID_STATUS")

    amount = amount or original.amount
    if amount <= 0 or amount > original.amount:
        raise ServiceError(
            f"Refund amount must be between 1 and {original.amount}", "INVALID_AMOUNT"
        )

    refund = await create_transaction(
        db,
        original.transaction_type.value,
        {
            "user_id": original.user_id,
            "appointment_id": original.appointment_id,
            "invoice_id": original.invoice_id,
            "original_transaction_id": original.id,
            "amount": amount,
            "purpose": TransactionPurpose.REFUND,
            "status": TransactionStatus.COMPLETED,
            "processed_by": actor.id,
            "notes": f"Refund for transaction {original.transaction_ref}",
            "extra_data": {"refund_reason": reason},
        },
        commit=False,
    )
    original.status = TransactionStatus.REFUNDED

    if original.invoice_id:
        invoice = await db.get(Invoice, original.invoice_id)
        if invoice:
            invoice.paid_amount = max(0, (invoice.paid_amount or 0) - amount)
            invoice.remaining_amount = invoice.total_amount - invoice.paid_amount
            if invoice.paid_amount == 0:
                invoice.payment_status = InvoicePaymentStatus.REFUNDED
                invoice.status = InvoiceStatus.REFUNDED
            else:
                invoice.payment_status = InvoicePaymentStatus.PARTIALLY_PAID
                if invoice.status == InvoiceStatus.PAID:
                    invoice.status = InvoiceStatus.SENT

            appointment = await db.get(Appointment, invoice.appointment_id)
            if appointment:
                appointment.payment_status = (
                    AppointmentPaymentStatus.REFUNDED
                    if invoice.paid_amount == 0
                    else AppointmentPaymentStatus.PARTIAL
                )

    await db.commit()

    logger.info(
        f"Refunded {amount} VND of {original.transaction_ref} as {refund.transaction_ref} "
        f"by user {actor.id}"
    )
    return refund


async def get_transaction(db: AsyncSession, transaction_id: int, actor: Optional[User] = None) -> Transaction:
    transaction = await db.get(Transaction, transaction_id)
    if not transaction:
        raise NotFoundError("Transaction not found", "TRANSACTION_NOT_FOUND")
    if (
        actor is not None
        and UserRole(actor.role) == UserRole.CUSTOMER
        and transaction.user_id != actor.id
    ):
        raise PermissionDeniedError("You can only view your own transactions")
    return transaction


async def update_transaction_status(
    db: AsyncSession,
    transaction_id: int,
    status: str,
    actor: Optional[User] = None,
    error_code: Optional[str] = None,
    error_message: Optional[str] = None,
    paid_amount: Optional[int] = None,
) -> Transaction:
    try:
        new_status = TransactionStatus(status)
    except ValueError:
        raise ServiceError(f"Invalid transaction status: {status}", "VALIDATION_ERROR")

    transaction = await get_transaction(db, transaction_id)
    transaction.status = new_status

    if new_status == TransactionStatus.COMPLETED:
        if not transaction.processed_at:
            transaction.processed_at = utcnow()
        if actor is not None and not transaction.processed_by:
            transaction.processed_by = actor.id
        if paid_amount is not None:
            transaction.paid_amount = paid_amount
        elif not transaction.paid_amount:
            transaction.paid_amount = transaction.amount
    elif new_status == TransactionStatus.FAILED:
        transaction.error_code = error_code
        transaction.error_message = error_message

    await db.commit()
    logger.info(f"Transaction {transaction.transaction_ref} -> {new_status.value}")
    return transaction


async def process_expired_transactions(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Expire pending or processing transactions past ``expires_at``."""
    now = now or utcnow()
    result = await db.execute(
        select(Transaction).where(
            Transaction.status.in_([TransactionStatus.PENDING, TransactionStatus.PROCESSING]),
            Transaction.expires_at.is_not(None),
            Transaction.expires_at < now,
        )
    )
    expired = list(result.scalars().all())
    for transaction in expired:
        transaction.status = TransactionStatus.EXPIRED

    await db.commit()
    if expired:
        logger.info(f"Expired {len(expired)} transaction(s)")
    return len(expired)


async def get_transaction_statistics(
    db: AsyncSession, start: Optional[datetime] = None, end: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """Count, total and average amount per status, optionally within [start, end]."""
    stmt = select(
        Transaction.status,
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.amount), 0),
        func.avg(Transaction.amount),
    ).group_by(Transaction.status)
    if start and end:
        stmt = stmt.where(Transaction.created_at >= start, Transaction.created_at <= end)

    rows = (await db.execute(stmt)).all()
    return [
        {
            "status": getattr(status, "value", status),
            "count": count,
            "total_amount": int(total or 0),
            "avg_amount": round(float(avg or 0), 2),
        }
        for status, count, total, avg in rows
    ]


async def get_transaction_history(
    db: AsyncSession,
    actor: User,
    user_id: Optional[int] = None,
    appointment_id: Optional[int] = None,
    invoice_id: Optional[int] = None,
    transaction_type: Optional[str] = None,
    status: Optional[str] = None,
    purpose: Optional[str] = None,
    limit: int = HISTORY_LIMIT,
) -> List[Transaction]:
    stmt = select(Transaction).order_by(Transaction.created_at.desc(), Transaction.id.desc())

    if UserRole(actor.role) == UserRole.CUSTOMER:
        stmt = stmt.where(Transaction.user_id == actor.id)
    elif user_id:
        stmt = stmt.where(Transaction.user_id == user_id)

    if appointment_id:
        stmt = stmt.where(Transaction.appointment_id == appointment_id)
    if invoice_id:
        stmt = stmt.where(Transaction.invoice_id == invoice_id)
    if transaction_type:
        stmt = stmt.where(Transaction.transaction_type == TransactionType(transaction_type))
    if status:
        stmt = stmt.where(Transaction.status == TransactionStatus(status))
    if purpose:
        stmt = stmt.where(Transaction.purpose == TransactionPurpose(purpose))

    result = await db.execute(stmt.limit(limit or HISTORY_LIMIT))
    return list(result.scalars().all())
