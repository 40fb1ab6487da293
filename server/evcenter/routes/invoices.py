"""Invoice endpoints."""

from typing import Optional

from evcenter.models import User
from evcenter.routes.deps import get_current_user, require_staff
from evcenter.schemas import InvoiceGenerate, InvoiceStatusUpdate, PaymentCreate, RevisionCreate
from evcenter.services import invoice_service, transaction_service
from evcenter.services.database import get_db
from evcenter.services.serializers import serialize_invoice, serialize_many, serialize_transaction
from evcenter.utils.responses import success
from evcenter.utils.vietnamese import format_vnd
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()


@router.get("/")
async def list_invoices(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    customer_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invoices = await invoice_service.list_invoices(db, user, status, payment_status, customer_id)
    return success(serialize_many(invoices, serialize_invoice), count=len(invoices))


@router.get("/appointment/{appointment_id}")
async def invoice_for_appointment(
    appointment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invoice = await invoice_service.get_invoice_by_appointment(db, appointment_id, user)
    return success(serialize_invoice(invoice))


@router.post("/generate/{appointment_id}", status_code=status.HTTP_201_CREATED)
async def generate_invoice(
    appointment_id: int,
    body: Optional[InvoiceGenerate] = None,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    body = body or InvoiceGenerate()
    invoice = await invoice_service.generate_invoice(
        db,
        appointment_id,
        user,
        discount_percentage=body.discount_percentage,
        additional_charges=[charge.model_dump() for charge in body.additional_charges],
        notes=body.notes,
    )
    return success(
        serialize_invoice(invoice),
        f"Invoice {invoice.invoice_number} generated: {format_vnd(invoice.total_amount)}",
    )


@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invoice = await invoice_service.get_invoice(db, invoice_id, user)
    return success(serialize_invoice(invoice))


@router.put("/{invoice_id}/status")
async def update_status(
    invoice_id: int,
    body: InvoiceStatusUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    invoice = await invoice_service.update_invoice_status(
        db, invoice_id, user, body.status, body.notes, body.sent_via
    )
    return success(serialize_invoice(invoice), f"Invoice status updated to {invoice.status.value}")


@router.post("/{invoice_id}/payment")
async def record_payment(
    invoice_id: int,
    body: PaymentCreate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    result = await transaction_service.record_payment(
        db,
        invoice_id,
        body.payment_method,
        body.amount,
        user,
        transaction_data=body.transaction_data,
        notes=body.notes,
    )
    message = "Payment completed" if result["is_full_payment"] else "Partial payment recorded"
    return success(
        {
            "transaction": serialize_transaction(result["transaction"]),
            "invoice": serialize_invoice(result["invoice"]),
            "is_full_payment": result["is_full_payment"],
        },
        message,
    )


@router.put("/{invoice_id}/viewed")
async def mark_viewed(
    invoice_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invoice = await invoice_service.mark_invoice_viewed(db, invoice_id, user)
    return success(serialize_invoice(invoice))


@router.post("/{invoice_id}/revision", status_code=status.HTTP_201_CREATED)
async def create_revision(
    invoice_id: int,
    body: RevisionCreate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    revision = await invoice_service.create_revision(db, invoice_id, user, body.reason)
    return success(serialize_invoice(revision), f"Revision {revision.revision_number} created")
