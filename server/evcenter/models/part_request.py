"""Additional part requests raised by technicians during service."""

import enum

from evcenter.models.base import Base, TimestampMixin
from sqlalchemy import Boolean, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Integer, Text
from sqlalchemy.orm import relationship


class PartRequestStatus(str, enum.Enum):
    """Part request status enum."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PartRequest(Base, TimestampMixin):
    """Request for parts beyond what the reception listed."""

    __tablename__ = "part_requests"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    requested_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(
        SQLEnum(PartRequestStatus), default=PartRequestStatus.PENDING, nullable=False, index=True
    )
    reason = Column(Text)
    reviewed_by = Column(Integer, ForeignKey("users.id"))
    reviewed_at = Column(DateTime)
    review_notes = Column(Text)

    items = relationship(
        "PartRequestItem",
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PartRequestItem.id",
    )


class PartRequestItem(Base):
    __tablename__ = "part_request_items"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(
        Integer, ForeignKey("part_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    part_id = Column(Integer, ForeignKey("parts.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    is_approved = Column(Boolean, default=False, nullable=False)

    request = relationship("PartRequest", back_populates="items")
