"""Service reception models."""

import enum

from evcenter.models.base import Base, TimestampMixin, utcnow
from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.ext.mutable import MutableDict, MutableList
from sqlalchemy.orm import relationship


class ReceptionStatus(str, enum.Enum):
    """Service reception status enum."""

    RECEIVED = "received"
    INSPECTED = "inspected"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_SERVICE = "in_service"
    COMPLETED = "completed"
    READY_FOR_PICKUP = "ready_for_pickup"


class StaffReviewStatus(str, enum.Enum):
    """Staff review outcome of a reception submission."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_MODIFICATION = "needs_modification"
    PARTIALLY_APPROVED = "partially_approved"
    PENDING_PARTS_RESTOCK = "pending_parts_restock"


class ServiceReception(Base, TimestampMixin):
    """Intake record created when the customer's vehicle arrives.

    The assigned technician documents vehicle condition and proposes
    services and parts. Staff review the submission before any part is
    taken out of inventory.
    """

    __tablename__ = "service_receptions"

    id = Column(Integer, primary_key=True, index=True)
    reception_number = Column(String(20), unique=True, nullable=False, index=True)
    appointment_id = Column(
        Integer, ForeignKey("appointments.id"), unique=True, nullable=False, index=True
    )
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    received_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    status = Column(
        SQLEnum(ReceptionStatus), default=ReceptionStatus.RECEIVED, nullable=False, index=True
    )

    # Inspection
    vehicle_condition = Column(MutableDict.as_mutable(JSON), default=dict)
    customer_complaints = Column(Text)
    special_instructions = Column(Text)

    # Timing (minutes)
    estimated_service_time = Column(Integer, default=60)
    actual_service_time = Column(Integer)
    estimated_completion_time = Column(DateTime)

    # Submission & staff review
    submitted_to_staff = Column(Boolean, default=False, nullable=False, index=True)
    submitted_at = Column(DateTime)
    submitted_by = Column(Integer, ForeignKey("users.id"))
    staff_review_status = Column(
        SQLEnum(StaffReviewStatus), default=StaffReviewStatus.PENDING, nullable=False
    )
    reviewed_by = Column(Integer, ForeignKey("users.id"))
    reviewed_at = Column(DateTime)
    review_notes = Column(Text)
    approval_decision = Column(JSON)
    modification_reason = Column(Text)

    has_conflict = Column(Boolean, default=False, nullable=False)
    workflow_history = Column(MutableList.as_mutable(JSON), default=list)

    # Relationships
    appointment = relationship("Appointment")
    services = relationship(
        "ReceptionService",
        back_populates="reception",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReceptionService.id",
    )
    parts = relationship(
        "ReceptionPart",
        back_populates="reception",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReceptionPart.id",
    )

    def can_be_approved(self) -> bool:
        """Whether staff may act on this reception now."""
        return (
            self.status == ReceptionStatus.RECEIVED or bool(self.submitted_to_staff)
        ) and self.staff_review_status == StaffReviewStatus.PENDING

    def add_history(self, status: str, changed_by=None, notes=None) -> None:
        if self.workflow_history is None:
            self.workflow_history = []
        self.workflow_history.append(
            {
                "status": status,
                "changed_by": changed_by,
                "changed_at": utcnow().isoformat(),
                "notes": notes,
            }
        )

    def __repr__(self):
        return (
            f"<ServiceReception(id={self.id}, number='{self.reception_number}', "
            f"status='{self.status}')>"
        )


class ReceptionService(Base):
    """Service recommended during reception."""

    __tablename__ = "reception_services"

    id = Column(Integer, primary_key=True, index=True)
    reception_id = Column(
        Integer, ForeignKey("service_receptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    service_name = Column(String(200), nullable=False)
    category = Column(String(50))
    quantity = Column(Integer, default=1, nullable=False)
    reason = Column(Text)
    estimated_cost = Column(BigInteger, default=0, nullable=False)
    unit_price = Column(BigInteger, default=0, nullable=False)
    customer_approved = Column(Boolean, default=True, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)

    reception = relationship("ServiceReception", back_populates="services")


class ReceptionPart(Base):
    """Part requested during reception."""

    __tablename__ = "reception_parts"

    id = Column(Integer, primary_key=True, index=True)
    reception_id = Column(
        Integer, ForeignKey("service_receptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    part_id = Column(Integer, ForeignKey("parts.id"), nullable=False, index=True)
    part_name = Column(String(200), nullable=False)
    part_number = Column(String(50))
    quantity = Column(Integer, default=1, nullable=False)
    reason = Column(Text)
    unit_price = Column(BigInteger, default=0, nullable=False)
    estimated_cost = Column(BigInteger, default=0, nullable=False)
    is_approved = Column(Boolean, default=False, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    available_quantity = Column(Integer, default=0, nullable=False)
    shortfall = Column(Integer, default=0, nullable=False)
    requested_at = Column(DateTime, default=utcnow, nullable=False)

    reception = relationship("ServiceReception", back_populates="parts")
