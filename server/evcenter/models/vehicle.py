"""Vehicle model."""

import re

from evcenter.models.base import Base, TimestampMixin
from sqlalchemy import Column, Date, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship, validates


class Vehicle(Base, TimestampMixin):
    """Electric vehicle registered by a customer.

    Stores identification (VIN, license plate), specifications including the
    battery pack, and mileage used for maintenance tracking.
    """

    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Vehicle Identification
    vin = Column(String(17), unique=True, nullable=False, index=True)
    license_plate = Column(String(20), index=True)

    # Vehicle Details
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)
    color = Column(String(50))

    # Battery
    battery_type = Column(String(50))  # lfp, nmc, ...
    battery_capacity_kwh = Column(Float)

    # Service Information
    current_mileage = Column(Integer, default=0)
    last_service_date = Column(Date)

    notes = Column(Text)

    # Relationships
    owner = relationship("User", back_populates="vehicles")

    @validates("vin")
    def validate_vin(self, key, value):
        """Validate VIN format (17 characters, no I/O/Q), stored uppercase."""
        if not value:
            raise ValueError("VIN cannot be empty")

        value = value.strip().upper()

        if len(value) != 17:
            raise ValueError(f"VIN must be exactly 17 characters, got {len(value)}")

        if not re.match(r"^[A-HJ-NPR-Z0-9]{17}$", value):
            raise ValueError(
                f"Invalid VIN format: {value}. VIN must contain only letters (except I, O, Q) and numbers"
            )

        return value

    @validates("year")
    def validate_year(self, key, value):
        if value is not None and not 1990 <= int(value) <= 2100:
            raise ValueError(f"Invalid model year: {value}")
        return value

    def __repr__(self):
        return f"<Vehicle(id={self.id}, vin='{self.vin}', {self.year} {self.make} {self.model})>"
