"""Database models for the application."""

from evcenter.models.appointment import Appointment
from evcenter.models.invoice import Invoice, InvoiceLineItem
from evcenter.models.part import Part, PartReservation
from evcenter.models.part_conflict import ConflictRequest, PartConflict
from evcenter.models.part_request import PartRequest, PartRequestItem
from evcenter.models.service import Service
from evcenter.models.service_reception import ReceptionPart, ReceptionService, ServiceReception
from evcenter.models.transaction import Transaction
from evcenter.models.user import User
from evcenter.models.vehicle import Vehicle

__all__ = [
    "User",
    "Vehicle",
    "Service",
    "Part",
    "PartReservation",
    "Appointment",
    "ServiceReception",
    "ReceptionService",
    "ReceptionPart",
    "PartRequest",
    "PartRequestItem",
    "PartConflict",
    "ConflictRequest",
    "Invoice",
    "InvoiceLineItem",
    "Transaction",
]
