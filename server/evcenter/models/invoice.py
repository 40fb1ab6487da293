"""Invoice models."""

import enum

from evcenter.models.base import Base, TimestampMixin, utcnow
from sqlalchemy import JSON, BigInteger, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Float, ForeignKey, Integer, String, Text
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import relationship


class InvoiceStatus(str, enum.Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    SENT = "sent"
    VIEWED = "viewed"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class InvoicePaymentStatus(str, enum.Enum):
    """Invoice payment status."""

    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    E_WALLET = "e_wallet"
    CHEQUE = "cheque"
    INSTALLMENT = "installment"


class LineItemKind(str, enum.Enum):
    SERVICE = "service"
    PART = "part"
    LABOR = "labor"


class Invoice(Base, TimestampMixin):
    """Billing document for a completed appointment.

    All amounts are whole VND. Customer and vehicle details are snapshotted
    at generation so later profile edits do not rewrite issued invoices.
    """

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(20), unique=True, nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    reception_id = Column(Integer, ForeignKey("service_receptions.id"))
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    generated_by = Column(Integer, ForeignKey("users.id"))

    # Charges
    additional_charges = Column(MutableList.as_mutable(JSON), default=list)
    discount_percentage = Column(Float, default=0, nullable=False)

    # Totals
    services_total = Column(BigInteger, default=0, nullable=False)
    parts_total = Column(BigInteger, default=0, nullable=False)
    labor_total = Column(BigInteger, default=0, nullable=False)
    additional_total = Column(BigInteger, default=0, nullable=False)
    subtotal = Column(BigInteger, default=0, nullable=False)
    discount_amount = Column(BigInteger, default=0, nullable=False)
    taxable_amount = Column(BigInteger, default=0, nullable=False)
    tax_rate = Column(Float, default=10, nullable=False)
    tax_amount = Column(BigInteger, default=0, nullable=False)
    total_amount = Column(BigInteger, default=0, nullable=False)

    # Payment
    payment_method = Column(SQLEnum(PaymentMethod))
    payment_status = Column(
        SQLEnum(InvoicePaymentStatus), default=InvoicePaymentStatus.UNPAID, nullable=False
    )
    due_date = Column(DateTime)
    paid_amount = Column(BigInteger, default=0, nullable=False)
    remaining_amount = Column(BigInteger, default=0, nullable=False)
    payment_date = Column(DateTime)
    transaction_ref = Column(String(40))

    # Snapshots
    customer_info = Column(JSON)
    vehicle_info = Column(JSON)

    # Status & Delivery
    status = Column(SQLEnum(InvoiceStatus), default=InvoiceStatus.DRAFT, nullable=False, index=True)
    sent_at = Column(DateTime)
    sent_via = Column(String(20))
    customer_viewed_at = Column(DateTime)

    # Revisions
    revision_number = Column(Integer, default=1, nullable=False)
    original_invoice_id = Column(Integer, ForeignKey("invoices.id"))
    revision_reason = Column(Text)

    notes = Column(Text)

    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLineItem.id",
    )

    def is_overdue(self, now=None) -> bool:
        now = now or utcnow()
        return (
            self.due_date is not None
            and now > self.due_date
            and self.payment_status != InvoicePaymentStatus.PAID
        )

    def __repr__(self):
        return (
            f"<Invoice(id={self.id}, number='{self.invoice_number}', "
            f"total={self.total_amount}, status='{self.status}')>"
        )


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind = Column(SQLEnum(LineItemKind), nullable=False)
    reference_id = Column(Integer)  # service or part id
    description = Column(String(300), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(BigInteger, default=0, nullable=False)
    total_price = Column(BigInteger, default=0, nullable=False)

    invoice = relationship("Invoice", back_populates="line_items")
