"""User model (customers, staff, technicians, admins)."""

import enum
import re

from evcenter.models.base import Base, TimestampMixin
from sqlalchemy import Boolean, Column
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import relationship, validates

MOBILE_PHONE_PATTERN = re.compile(r"^(09|08|07|05|03)\d{8}$")
LANDLINE_PHONE_PATTERN = re.compile(r"^02[2-9]\d{7,8}$")


class UserRole(str, enum.Enum):
    """User role enum."""

    CUSTOMER = "customer"
    STAFF = "staff"
    TECHNICIAN = "technician"
    ADMIN = "admin"


class User(Base, TimestampMixin):
    """Account of anyone who interacts with the service center.

    Customers own vehicles and book appointments. Staff and admins run the
    back office (reception review, inventory, conflicts, invoicing).
    Technicians are assigned to appointments and raise part requests.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # Contact Information
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    # Role & Status
    role = Column(SQLEnum(UserRole), default=UserRole.CUSTOMER, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Address Information
    street = Column(String(200))
    ward = Column(String(100))
    district = Column(String(100))
    city = Column(String(100))

    notes = Column(Text)

    # Relationships
    vehicles = relationship("Vehicle", back_populates="owner", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @validates("phone")
    def validate_phone(self, key, value):
        """Validate Vietnamese mobile or landline number, stored as digits only."""
        if not value:
            return value

        digits_only = re.sub(r"\D", "", value)
        if not (MOBILE_PHONE_PATTERN.match(digits_only) or LANDLINE_PHONE_PATTERN.match(digits_only)):
            raise ValueError(f"Invalid Vietnamese phone number: {value}")

        return digits_only

    @validates("email")
    def validate_email(self, key, value):
        """Validate email format and normalize to lowercase."""
        if not value:
            raise ValueError("Email cannot be empty")

        value = value.strip().lower()

        if len(value) > 255:
            raise ValueError(f"Email must be <= 255 characters, got {len(value)}")

        email_pattern = (
            r"^[a-z0-9]([a-z0-9._+-]*[a-z0-9])?@[a-z0-9]([a-z0-9.-]*[a-z0-9])?\.[a-z]{2,}$"
        )
        if not re.match(email_pattern, value):
            raise ValueError(f"Invalid email format: {value}")

        return value

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
