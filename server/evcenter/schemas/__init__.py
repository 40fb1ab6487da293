"""
Pydantic schemas for request validation.
"""
from evcenter.schemas.billing import (
    AdditionalCharge,
    ApproveConflictRequest,
    InvoiceGenerate,
    InvoiceStatusUpdate,
    PaymentCreate,
    RefundCreate,
    RejectConflictRequest,
    ResolveConflict,
    RevisionCreate,
    TransactionStatusUpdate,
)
from evcenter.schemas.users import (
    MileageUpdate,
    PartCreate,
    ProfileUpdate,
    ServiceCreate,
    UserCreate,
    VehicleCreate,
)
from evcenter.schemas.workflow import (
    AppointmentCreate,
    AssignTechnician,
    CancelBody,
    CompleteBody,
    NotesBody,
    PartQuantity,
    PartRequestCreate,
    PartRequestReview,
    ReceptionCreate,
    ReceptionReview,
    ReserveParts,
    Restock,
    ServiceQuantity,
    StatusChange,
    UseParts,
)

__all__ = [
    "AdditionalCharge", "ApproveConflictRequest", "InvoiceGenerate", "InvoiceStatusUpdate",
    "PaymentCreate", "RefundCreate", "RejectConflictRequest", "ResolveConflict",
    "RevisionCreate", "TransactionStatusUpdate",
    "MileageUpdate", "PartCreate", "ProfileUpdate", "ServiceCreate", "UserCreate", "VehicleCreate",
    "AppointmentCreate", "AssignTechnician", "CancelBody", "CompleteBody", "NotesBody",
    "PartQuantity", "PartRequestCreate", "PartRequestReview", "ReceptionCreate",
    "ReceptionReview", "ReserveParts", "Restock", "ServiceQuantity", "StatusChange", "UseParts",
]
