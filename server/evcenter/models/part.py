"""Part and part reservation models."""

import enum

from evcenter.models.base import Base, TimestampMixin
from sqlalchemy import JSON, BigInteger, Boolean, CheckConstraint, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship, validates


class PartCategory(str, enum.Enum):
    """Part category enum."""

    BATTERY = "battery"
    MOTOR = "motor"
    CHARGING = "charging"
    ELECTRONICS = "electronics"
    BODY = "body"
    INTERIOR = "interior"
    SAFETY = "safety"
    CONSUMABLES = "consumables"


class ReservationStatus(str, enum.Enum):
    """Part reservation status enum."""

    RESERVED = "reserved"
    USED = "used"
    CANCELLED = "cancelled"


class Part(Base, TimestampMixin):
    """Catalog part with its inventory counters.

    current_stock is what sits on the shelf. reserved_stock is the share of it
    already promised to appointments, so only the difference can be handed
    out. used_stock accumulates everything consumed by services.
    """

    __tablename__ = "parts"
    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_parts_current_stock_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="ck_parts_reserved_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    part_number = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    category = Column(SQLEnum(PartCategory), nullable=False, index=True)
    brand = Column(String(100))

    # Pricing (VND)
    cost_price = Column(BigInteger, default=0, nullable=False)
    retail_price = Column(BigInteger, default=0, nullable=False)

    # Inventory
    current_stock = Column(Integer, default=0, nullable=False)
    reserved_stock = Column(Integer, default=0, nullable=False)
    used_stock = Column(Integer, default=0, nullable=False)
    min_stock_level = Column(Integer, default=5, nullable=False)
    max_stock_level = Column(Integer, default=100, nullable=False)
    reorder_point = Column(Integer, default=10, nullable=False)
    last_restocked_at = Column(DateTime)

    # Compatibility & Warranty
    compatible_makes = Column(JSON, default=list)
    warranty_months = Column(Integer, default=12)

    is_active = Column(Boolean, default=True, nullable=False)

    reservations = relationship(
        "PartReservation", back_populates="part", cascade="all, delete-orphan"
    )

    @property
    def available_stock(self) -> int:
        return max(0, (self.current_stock or 0) - (self.reserved_stock or 0))

    @property
    def needs_reorder(self) -> bool:
        return (self.current_stock or 0) <= (self.reorder_point or 0)

    @validates("part_number")
    def validate_part_number(self, key, value):
        if not value or not value.strip():
            raise ValueError("Part number cannot be empty")
        return value.strip().upper()

    @validates("cost_price", "retail_price")
    def validate_price(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"{key} cannot be negative")
        return value

    def __repr__(self):
        return (
            f"<Part(id={self.id}, part_number='{self.part_number}', "
            f"stock={self.current_stock}/{self.reserved_stock})>"
        )


class PartReservation(Base, TimestampMixin):
    """Quantity of a part set aside for an appointment."""

    __tablename__ = "part_reservations"

    id = Column(Integer, primary_key=True, index=True)
    part_id = Column(Integer, ForeignKey("parts.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    quantity_used = Column(Integer, default=0, nullable=False)
    reserved_by = Column(Integer, ForeignKey("users.id"))
    status = Column(SQLEnum(ReservationStatus), default=ReservationStatus.RESERVED, nullable=False)

    part = relationship("Part", back_populates="reservations")

    def __repr__(self):
        return (
            f"<PartReservation(id={self.id}, part_id={self.part_id}, "
            f"appointment_id={self.appointment_id}, quantity={self.quantity})>"
        )
