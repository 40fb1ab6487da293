"""Appointment model."""

import enum

from evcenter.models.base import Base, TimestampMixin
from sqlalchemy import JSON, Column, Date, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import relationship


class AppointmentStatus(str, enum.Enum):
    """Detailed workflow status of an appointment."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CUSTOMER_ARRIVED = "customer_arrived"
    RECEPTION_CREATED = "reception_created"
    RECEPTION_APPROVED = "reception_approved"
    PARTS_INSUFFICIENT = "parts_insufficient"
    WAITING_FOR_PARTS = "waiting_for_parts"
    RESCHEDULED = "rescheduled"
    IN_PROGRESS = "in_progress"
    PARTS_REQUESTED = "parts_requested"
    COMPLETED = "completed"
    INVOICED = "invoiced"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class CoreStatus(str, enum.Enum):
    """Coarse status shown to customers."""

    SCHEDULED = "Scheduled"
    CHECKED_IN = "CheckedIn"
    IN_SERVICE = "InService"
    ON_HOLD = "OnHold"
    READY_FOR_PICKUP = "ReadyForPickup"
    CLOSED = "Closed"


class AppointmentPriority(str, enum.Enum):
    """Appointment priority enum."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class AppointmentPaymentStatus(str, enum.Enum):
    """Payment state of an appointment."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class Appointment(Base, TimestampMixin):
    """Appointment model for a booked EV service visit.

    Stores comprehensive appointment data including:
    - Scheduling details (date, HH:MM slot, priority)
    - Detailed workflow status plus the derived core status and reason code
    - Technician assignment
    - Payment state mirrored from the invoice
    - Workflow history, one entry per status change
    """

    __tablename__ = "appointments"

    __table_args__ = (
        Index("ix_appointments_status_scheduled", "status", "scheduled_date"),
        Index("ix_appointments_customer_scheduled", "customer_id", "scheduled_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    appointment_number = Column(String(20), unique=True, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"))

    # Scheduling
    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(String(5), nullable=False)  # HH:MM
    priority = Column(
        SQLEnum(AppointmentPriority), default=AppointmentPriority.NORMAL, nullable=False
    )

    # Status & Workflow
    status = Column(
        SQLEnum(AppointmentStatus), default=AppointmentStatus.PENDING, nullable=False, index=True
    )
    core_status = Column(SQLEnum(CoreStatus), default=CoreStatus.SCHEDULED, nullable=False)
    reason_code = Column(String(30))
    workflow_history = Column(MutableList.as_mutable(JSON), default=list)

    # Assignment
    assigned_technician_id = Column(Integer, ForeignKey("users.id"), index=True)

    # Payment
    payment_status = Column(
        SQLEnum(AppointmentPaymentStatus),
        default=AppointmentPaymentStatus.PENDING,
        nullable=False,
    )

    # Notes
    customer_notes = Column(Text)
    staff_rejection_reason = Column(Text)
    cancellation_reason = Column(String(500))

    completed_at = Column(DateTime)

    # Relationships
    customer = relationship("User", foreign_keys=[customer_id])
    technician = relationship("User", foreign_keys=[assigned_technician_id])
    vehicle = relationship("Vehicle")
    service = relationship("Service")

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, number='{self.appointment_number}', "
            f"status='{self.status}')>"
        )
