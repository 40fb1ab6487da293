"""Payment transaction model."""

import enum

from evcenter.models.base import Base, TimestampMixin
from sqlalchemy import JSON, BigInteger, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship


class TransactionType(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    VNPAY = "vnpay"


class TransactionPurpose(str, enum.Enum):
    APPOINTMENT_DEPOSIT = "appointment_deposit"
    APPOINTMENT_PAYMENT = "appointment_payment"
    INVOICE_PAYMENT = "invoice_payment"
    SERVICE_PAYMENT = "service_payment"
    REFUND = "refund"
    DEPOSIT_BOOKING = "deposit_booking"
    OTHER = "other"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REFUNDED = "refunded"
    DISPUTED = "disputed"


class Transaction(Base, TimestampMixin):
    """Money movement tied to an appointment or invoice.

    Online (non-cash) transactions carry an expiry; the worker expires them
    when the customer never completes payment.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_status_expires", "status", "expires_at"),
        Index("ix_transactions_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    transaction_ref = Column(String(40), unique=True, nullable=False, index=True)
    transaction_type = Column(SQLEnum(TransactionType), nullable=False)
    purpose = Column(SQLEnum(TransactionPurpose), nullable=False)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), index=True)
    original_transaction_id = Column(Integer, ForeignKey("transactions.id"))

    amount = Column(BigInteger, nullable=False)
    paid_amount = Column(BigInteger, default=0, nullable=False)
    currency = Column(String(3), default="VND", nullable=False)
    description = Column(String(500))

    status = Column(
        SQLEnum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False, index=True
    )
    processed_by = Column(Integer, ForeignKey("users.id"))
    processed_at = Column(DateTime)
    expires_at = Column(DateTime)

    error_code = Column(String(50))
    error_message = Column(Text)
    billing_info = Column(JSON)
    extra_data = Column(JSON)
    notes = Column(Text)

    user = relationship("User", foreign_keys=[user_id])

    def __repr__(self):
        return (
            f"<Transaction(id={self.id}, ref='{self.transaction_ref}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
