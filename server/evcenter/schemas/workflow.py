"""Appointment, reception and inventory request bodies."""

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class AppointmentCreate(BaseModel):
    vehicle_id: int
    scheduled_date: date
    scheduled_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    service_id: Optional[int] = None
    priority: Literal["low", "normal", "high", "urgent"] = "normal"
    customer_notes: Optional[str] = None
    customer_id: Optional[int] = None


class NotesBody(BaseModel):
    notes: Optional[str] = None


class AssignTechnician(BaseModel):
    technician_id: int


class CompleteBody(NotesBody):
    actual_service_time: Optional[int] = Field(None, gt=0)


class CancelBody(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class StatusChange(BaseModel):
    status: str
    reason: Optional[str] = None
    notes: Optional[str] = None


class PartQuantity(BaseModel):
    part_id: int
    quantity: int = Field(..., gt=0)
    reason: Optional[str] = None


class ServiceQuantity(BaseModel):
    service_id: int
    quantity: int = Field(1, gt=0)
    reason: Optional[str] = None
    customer_approved: bool = True


class ReserveParts(BaseModel):
    appointment_id: int
    items: List[PartQuantity] = Field(..., min_length=1)


class UseParts(BaseModel):
    appointment_id: int


class Restock(BaseModel):
    quantity: int = Field(..., gt=0)


class ReceptionCreate(BaseModel):
    services: List[ServiceQuantity] = Field(default_factory=list)
    parts: List[PartQuantity] = Field(default_factory=list)
    vehicle_condition: Dict[str, Any] = Field(default_factory=dict)
    customer_complaints: Optional[str] = None
    special_instructions: Optional[str] = None
    estimated_service_time: Optional[int] = Field(None, gt=0)


class ReceptionReview(BaseModel):
    decision: Literal["approved", "rejected", "needs_modification", "partially_approved"]
    notes: Optional[str] = None
    approval_decision: Optional[Dict[str, Any]] = None
    services: Optional[List[ServiceQuantity]] = None
    parts: Optional[List[PartQuantity]] = None
    modification_reason: Optional[str] = None


class PartRequestCreate(BaseModel):
    appointment_id: int
    items: List[PartQuantity] = Field(..., min_length=1)
    reason: Optional[str] = None


class PartRequestReview(BaseModel):
    approved: bool
    notes: Optional[str] = None
