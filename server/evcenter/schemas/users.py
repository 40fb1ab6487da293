"""User, vehicle and catalog request bodies."""

from typing import List, Optional

from pydantic import BaseModel, Field


class AddressFields(BaseModel):
    street: Optional[str] = None
    ward: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None


class UserCreate(AddressFields):
    email: str = Field(..., max_length=255)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None
    role: str = "customer"


class ProfileUpdate(AddressFields):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None


class VehicleCreate(BaseModel):
    vin: str = Field(..., min_length=17, max_length=17)
    make: str
    model: str
    year: int = Field(..., ge=1990, le=2100)
    license_plate: Optional[str] = None
    color: Optional[str] = None
    battery_type: Optional[str] = None
    battery_capacity_kwh: Optional[float] = Field(None, gt=0)
    current_mileage: int = Field(0, ge=0)
    owner_id: Optional[int] = None


class MileageUpdate(BaseModel):
    mileage: int = Field(..., ge=0)


class ServiceCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=30)
    name: str
    description: Optional[str] = None
    category: str = "general"
    base_price: int = Field(0, ge=0)
    estimated_duration: int = Field(60, gt=0)
    warranty_days: int = Field(0, ge=0)


class PartCreate(BaseModel):
    part_number: str
    name: str
    category: str
    description: Optional[str] = None
    brand: Optional[str] = None
    cost_price: int = Field(0, ge=0)
    retail_price: int = Field(0, ge=0)
    current_stock: int = Field(0, ge=0)
    min_stock_level: int = Field(5, ge=0)
    max_stock_level: int = Field(100, ge=0)
    reorder_point: int = Field(10, ge=0)
    compatible_makes: List[str] = Field(default_factory=list)
    warranty_months: int = Field(12, ge=0)
