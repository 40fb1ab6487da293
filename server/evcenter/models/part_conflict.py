"""Part conflict models."""

import enum

from evcenter.models.base import Base, TimestampMixin, utcnow
from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship


class ConflictStatus(str, enum.Enum):
    """Part conflict status enum."""

    PENDING = "pending"
    RESOLVED = "resolved"
    AUTO_RESOLVED = "auto_resolved"


class ConflictRequestType(str, enum.Enum):
    """Origin of a competing request."""

    SERVICE_RECEPTION = "ServiceReception"
    PART_REQUEST = "PartRequest"


class ConflictRequestStatus(str, enum.Enum):
    """Decision on a single competing request."""

    PENDING = "pending"
    APPROVED = "approved"
    DEFERRED = "deferred"
    REJECTED = "rejected"


class PartConflict(Base, TimestampMixin):
    """Raised when pending requests for a part exceed its available stock.

    Part name/number and stock figures are snapshots taken at detection time
    and refreshed whenever detection runs again for the part.
    """

    __tablename__ = "part_conflicts"

    id = Column(Integer, primary_key=True, index=True)
    conflict_number = Column(String(20), unique=True, nullable=False, index=True)
    part_id = Column(Integer, ForeignKey("parts.id"), nullable=False, index=True)
    part_name = Column(String(200))
    part_number = Column(String(50))

    available_stock = Column(Integer, default=0, nullable=False)
    total_requested = Column(Integer, default=0, nullable=False)
    shortfall = Column(Integer, default=0, nullable=False)

    status = Column(
        SQLEnum(ConflictStatus), default=ConflictStatus.PENDING, nullable=False, index=True
    )
    resolved_by = Column(Integer, ForeignKey("users.id"))
    resolved_at = Column(DateTime)
    resolution_notes = Column(Text)

    requests = relationship(
        "ConflictRequest",
        back_populates="conflict",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ConflictRequest.position",
    )

    def pending_requests(self):
        return [r for r in self.requests if r.status == ConflictRequestStatus.PENDING]

    def mark_resolved(self, resolved_by=None, notes=None, status=ConflictStatus.RESOLVED):
        self.status = status
        self.resolved_by = resolved_by
        self.resolved_at = utcnow()
        if notes:
            self.resolution_notes = notes

    def __repr__(self):
        return (
            f"<PartConflict(id={self.id}, number='{self.conflict_number}', "
            f"part_id={self.part_id}, status='{self.status}')>"
        )


class ConflictRequest(Base):
    """One competing request inside a part conflict."""

    __tablename__ = "conflict_requests"
    __table_args__ = (
        CheckConstraint("requested_quantity >= 1", name="ck_conflict_requests_quantity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    conflict_id = Column(
        Integer, ForeignKey("part_conflicts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, default=0, nullable=False)  # allocation order

    request_type = Column(SQLEnum(ConflictRequestType), nullable=False)
    request_id = Column(Integer, nullable=False)  # reception or part request id
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
    appointment_number = Column(String(20))
    requested_quantity = Column(Integer, nullable=False)
    priority = Column(String(10), default="normal", nullable=False)
    scheduled_date = Column(Date)
    scheduled_time = Column(String(5))
    requested_at = Column(DateTime)
    customer_id = Column(Integer, ForeignKey("users.id"))
    technician_id = Column(Integer, ForeignKey("users.id"))
    staff_review_status = Column(String(30))

    status = Column(
        SQLEnum(ConflictRequestStatus), default=ConflictRequestStatus.PENDING, nullable=False
    )
    auto_approved = Column(Boolean, default=False, nullable=False)
    can_be_fulfilled = Column(Boolean, default=False, nullable=False)
    allocation_priority = Column(String(10))  # high, low
    resolution_notes = Column(Text)

    conflict = relationship("PartConflict", back_populates="requests")

    @property
    def key(self):
        return (ConflictRequestType(self.request_type).value, self.request_id)
