"""Conflict resolution, invoice and transaction request bodies."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ApproveConflictRequest(BaseModel):
    conflict_request_id: int
    notes: Optional[str] = None


class RejectConflictRequest(BaseModel):
    conflict_request_id: int
    reason: str = Field(..., min_length=1)


class ResolveConflict(BaseModel):
    approved_request_ids: List[int] = Field(default_factory=list)
    rejected_request_ids: List[int] = Field(default_factory=list)
    notes: Optional[str] = None


class AdditionalCharge(BaseModel):
    description: str
    amount: int
    type: Literal["fee", "discount", "tax", "environmental_fee", "disposal_fee", "other"] = "fee"


class InvoiceGenerate(BaseModel):
    discount_percentage: float = Field(0, ge=0, le=100)
    additional_charges: List[AdditionalCharge] = Field(default_factory=list)
    notes: Optional[str] = None


class InvoiceStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None
    sent_via: Optional[str] = None


class PaymentCreate(BaseModel):
    payment_method: Literal["cash", "card", "bank_transfer"]
    amount: int = Field(..., gt=0)
    transaction_data: Optional[dict] = None
    notes: Optional[str] = None


class RevisionCreate(BaseModel):
    reason: str = Field(..., min_length=1)


class RefundCreate(BaseModel):
    amount: Optional[int] = Field(None, gt=0)
    reason: Optional[str] = None


class TransactionStatusUpdate(BaseModel):
    status: str
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    paid_amount: Optional[int] = Field(None, ge=0)
