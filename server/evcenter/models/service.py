"""Service catalog model."""

import enum

from evcenter.models.base import Base, TimestampMixin
from sqlalchemy import BigInteger, Boolean, Column
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Integer, String, Text


class ServiceCategory(str, enum.Enum):
    """Service category enum."""

    BATTERY = "battery"
    MOTOR = "motor"
    CHARGING = "charging"
    ELECTRONICS = "electronics"
    BODY = "body"
    GENERAL = "general"
    DIAGNOSTIC = "diagnostic"


class Service(Base, TimestampMixin):
    """A service the center offers, priced in VND."""

    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(30), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    category = Column(SQLEnum(ServiceCategory), default=ServiceCategory.GENERAL, nullable=False)
    base_price = Column(BigInteger, default=0, nullable=False)
    estimated_duration = Column(Integer, default=60)  # minutes
    warranty_days = Column(Integer, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Service(id={self.id}, code='{self.code}', name='{self.name}')>"
