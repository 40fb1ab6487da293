"""
Invoice generation and lifecycle.

Amounts are whole VND. Percentages (discount, VAT) are applied with
half-up rounding to the nearest đồng.
"""

import logging
import math
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from evcenter.config import settings
from evcenter.models import (
    Appointment,
    Invoice,
    InvoiceLineItem,
    Part,
    ServiceReception,
    User,
    Vehicle,
)
from evcenter.models.appointment import AppointmentStatus
from evcenter.models.base import utcnow
from evcenter.models.invoice import InvoicePaymentStatus, InvoiceStatus, LineItemKind
from evcenter.models.service_reception import ReceptionStatus
from evcenter.models.user import UserRole
from evcenter.services.appointment_workflow import transition
from evcenter.services.errors import NotFoundError, PermissionDeniedError, ServiceError
from evcenter.utils.safe_helpers import safe_get_customer_info, safe_get_vehicle_info
from evcenter.utils.vietnamese import calculate_vat, format_vietnamese_address
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

CLOSED_INVOICE_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED)


def _percentage_of(amount: int, percentage: float) -> int:
    return int(
        (Decimal(str(amount)) * Decimal(str(percentage)) / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )


def _charge_amount(charge: Dict[str, Any]) -> int:
    amount = int(charge.get("amount") or 0)
    if charge.get("type") == "discount":
        return -abs(amount)
    return amount


def calculate_invoice_totals(
    services_total: int,
    parts_total: int,
    labor_total: int,
    discount_percentage: float = 0,
    additional_charges: Optional[Iterable[Dict[str, Any]]] = None,
    tax_rate: Optional[float] = None,
    paid_amount: int = 0,
) -> Dict[str, Any]:
    """
    Compute every invoice total from its parts.

    subtotal = services + parts + labor
    discount = subtotal × discount%
    taxable = subtotal − discount + additional charges
    tax = taxable × VAT%
    total = taxable + tax

    Additional charges of type "discount" subtract their absolute amount.

    Example:
        >>> calculate_invoice_totals(1000000, 500000, 100000, 10)["total_amount"]
        1584000
    """
    if discount_percentage < 0 or discount_percentage > 100:
        raise ServiceError("Discount percentage must be between 0 and 100", "VALIDATION_ERROR")

    tax_rate = settings.VAT_RATE if tax_rate is None else tax_rate
    subtotal = services_total + parts_total + labor_total
    discount_amount = _percentage_of(subtotal, discount_percentage)
    additional_total = sum(_charge_amount(c) for c in additional_charges or [])
    taxable_amount = subtotal - discount_amount + additional_total
    tax_amount = calculate_vat(taxable_amount, tax_rate)
    total_amount = taxable_amount + tax_amount

    return {
        "services_total": services_total,
        "parts_total": parts_total,
        "labor_total": labor_total,
        "additional_total": additional_total,
        "subtotal": subtotal,
        "discount_percentage": discount_percentage,
        "discount_amount": discount_amount,
        "taxable_amount": taxable_amount,
        "tax_rate": tax_rate,
        "tax_amount": tax_amount,
        "total_amount": total_amount,
        "remaining_amount": total_amount - paid_amount,
    }


def _apply_totals(invoice: Invoice) -> None:
    by_kind = {kind: 0 for kind in LineItemKind}
    for item in invoice.line_items:
        by_kind[LineItemKind(item.kind)] += item.total_price

    totals = calculate_invoice_totals(
        by_kind[LineItemKind.SERVICE],
        by_kind[LineItemKind.PART],
        by_kind[LineItemKind.LABOR],
        discount_percentage=invoice.discount_percentage or 0,
        additional_charges=invoice.additional_charges,
        tax_rate=invoice.tax_rate,
        paid_amount=invoice.paid_amount or 0,
    )
    for field, value in totals.items():
        setattr(invoice, field, value)


async def generate_invoice_number(db: AsyncSession, today: Optional[date] = None) -> str:
    """``INVyymmddNNNN``, sequence restarting every day."""
    today = today or utcnow().date()
    prefix = f"INV{today:%y%m%d}"
    count = await db.scalar(
        select(func.count(Invoice.id)).where(Invoice.invoice_number.like(f"{prefix}%"))
    )
    return f"{prefix}{(count or 0) + 1:04d}"


def _customer_snapshot(customer: User) -> Dict[str, Any]:
    info = safe_get_customer_info(customer)
    return {
        "name": info["full_name"],
        "email": info["email"],
        "phone": info["phone"],
        "address": format_vietnamese_address(
            {
                "street": customer.street,
                "ward": customer.ward,
                "district": customer.district,
                "city": customer.city,
            }
        )
        or "Not provided",
    }


def _vehicle_snapshot(vehicle: Vehicle) -> Dict[str, Any]:
    info = safe_get_vehicle_info(vehicle)
    info["vin"] = vehicle.vin
    return info


def _validate_charges(charges: Optional[Iterable[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    validated = []
    for charge in charges or []:
        if not charge.get("description"):
            raise ServiceError("Additional charge needs a description", "VALIDATION_ERROR")
        validated.append(
            {
                "description": charge["description"],
                "type": charge.get("type") or "fee",
                "amount": int(charge.get("amount") or 0),
            }
        )
    return validated


async def generate_invoice(
    db: AsyncSession,
    appointment_id: int,
    actor: User,
    discount_percentage: float = 0,
    additional_charges: Optional[Iterable[Dict[str, Any]]] = None,
    notes: Optional[str] = None,
) -> Invoice:
    """
    Bill a completed appointment.

    Lines come from the reception: completed, customer-approved recommended
    services at their quoted price, approved parts at current retail price,
    and labor for the actual (or estimated) service time rounded up to whole
    hours. The appointment moves to ``invoiced``.

    Raises:
        NotFoundError: appointment or its reception missing
        ServiceError: appointment not completed, invoice already exists
    """
    appointment = await db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found", "APPOINTMENT_NOT_FOUND")
    if appointment.status != AppointmentStatus.COMPLETED:
        raise ServiceError(
            f"Cannot generate invoice. Appointment status is: {appointment.status.value}",
            "INVALID_STATUS",
        )

    existing = await db.scalar(select(Invoice.id).where(Invoice.appointment_id == appointment.id))
    if existing:
        raise ServiceError("Invoice already exists for this appointment", "INVOICE_EXISTS")

    reception = (
        await db.execute(
            select(ServiceReception).where(ServiceReception.appointment_id == appointment.id)
        )
    ).scalar_one_or_none()
    if not reception:
        raise NotFoundError(
            "Cannot generate invoice without a service reception", "RECEPTION_NOT_FOUND"
        )

    lines: List[InvoiceLineItem] = []
    for service_line in reception.services:
        if service_line.is_completed and service_line.customer_approved:
            lines.append(
                InvoiceLineItem(
                    kind=LineItemKind.SERVICE,
                    reference_id=service_line.service_id,
                    description=f"{service_line.service_name} - Recommended Service",
                    quantity=service_line.quantity,
                    unit_price=service_line.unit_price,
                    total_price=service_line.unit_price * service_line.quantity,
                )
            )

    for part_line in reception.parts:
        if not part_line.is_approved:
            continue
        part = await db.get(Part, part_line.part_id)
        unit_price = part.retail_price if part else part_line.unit_price
        lines.append(
            InvoiceLineItem(
                kind=LineItemKind.PART,
                reference_id=part_line.part_id,
                description=f"{part_line.part_name} ({part_line.part_number})",
                quantity=part_line.quantity,
                unit_price=unit_price,
                total_price=unit_price * part_line.quantity,
            )
        )

    service_minutes = reception.actual_service_time or reception.estimated_service_time or 0
    labor_hours = math.ceil(service_minutes / 60)
    if labor_hours > 0:
        lines.append(
            InvoiceLineItem(
                kind=LineItemKind.LABOR,
                description="Technical Labor",
                quantity=labor_hours,
                unit_price=settings.LABOR_RATE_PER_HOUR,
                total_price=labor_hours * settings.LABOR_RATE_PER_HOUR,
            )
        )

    customer = await db.get(User, appointment.customer_id)
    vehicle = await db.get(Vehicle, appointment.vehicle_id)

    invoice = Invoice(
        invoice_number=await generate_invoice_number(db),
        appointment_id=appointment.id,
        reception_id=reception.id,
        customer_id=appointment.customer_id,
        vehicle_id=appointment.vehicle_id,
        generated_by=actor.id,
        line_items=lines,
        additional_charges=_validate_charges(additional_charges),
        discount_percentage=discount_percentage or 0,
        tax_rate=settings.VAT_RATE,
        paid_amount=0,
        payment_status=InvoicePaymentStatus.UNPAID,
        due_date=utcnow() + timedelta(days=settings.INVOICE_DUE_DAYS),
        customer_info=_customer_snapshot(customer),
        vehicle_info=_vehicle_snapshot(vehicle),
        status=InvoiceStatus.DRAFT,
        notes=notes,
    )
    _apply_totals(invoice)
    db.add(invoice)

    transition(appointment, AppointmentStatus.INVOICED, actor, reason="Invoice generated")
    reception.status = ReceptionStatus.READY_FOR_PICKUP
    reception.add_history(ReceptionStatus.READY_FOR_PICKUP.value, actor.id, "Invoice generated")

    await db.commit()

    logger.info(
        f"Generated invoice {invoice.invoice_number} for appointment "
        f"{appointment.appointment_number}: total {invoice.total_amount} VND"
    )
    return invoice


# ============================================================================
# Queries
# ============================================================================


async def get_invoice(db: AsyncSession, invoice_id: int, actor: Optional[User] = None) -> Invoice:
    invoice = await db.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice not found", "INVOICE_NOT_FOUND")
    if (
        actor is not None
        and UserRole(actor.role) == UserRole.CUSTOMER
        and invoice.customer_id != actor.id
    ):
        raise PermissionDeniedError("You can only view your own invoices")
    return invoice


async def get_invoice_by_appointment(db: AsyncSession, appointment_id: int, actor: Optional[User] = None) -> Invoice:
    invoice_id = await db.scalar(
        select(Invoice.id)
        .where(Invoice.appointment_id == appointment_id)
        .order_by(Invoice.revision_number.desc())
        .limit(1)
    )
    if not invoice_id:
        raise NotFoundError("Invoice not found", "INVOICE_NOT_FOUND")
    return await get_invoice(db, invoice_id, actor)


async def list_invoices(
    db: AsyncSession,
    actor: User,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    customer_id: Optional[int] = None,
) -> List[Invoice]:
    stmt = select(Invoice).order_by(Invoice.created_at.desc(), Invoice.id.desc())
    if UserRole(actor.role) == UserRole.CUSTOMER:
        stmt = stmt.where(Invoice.customer_id == actor.id)
    elif customer_id:
        stmt = stmt.where(Invoice.customer_id == customer_id)
    if status:
        stmt = stmt.where(Invoice.status == InvoiceStatus(status))
    if payment_status:
        stmt = stmt.where(Invoice.payment_status == InvoicePaymentStatus(payment_status))
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ============================================================================
# Lifecycle
# ============================================================================


async def update_invoice_status(
    db: AsyncSession,
    invoice_id: int,
    actor: User,
    status: str,
    notes: Optional[str] = None,
    sent_via: Optional[str] = None,
) -> Invoice:
    try:
        new_status = InvoiceStatus(status)
    except ValueError:
        raise ServiceError(
            "Invalid status. Must be one of: " + ", ".join(s.value for s in InvoiceStatus),
            "VALIDATION_ERROR",
        )

    invoice = await get_invoice(db, invoice_id)
    previous = invoice.status
    invoice.status = new_status
    now = utcnow()

    if new_status == InvoiceStatus.PAID:
        invoice.paid_amount = invoice.total_amount
        invoice.remaining_amount = 0
        invoice.payment_status = InvoicePaymentStatus.PAID
        invoice.payment_date = now
    elif new_status == InvoiceStatus.SENT:
        invoice.sent_at = now
        invoice.sent_via = sent_via or "email"
    if notes:
        invoice.notes = notes

    await db.commit()

    logger.info(
        f"Invoice {invoice.invoice_number}: {previous.value} -> {new_status.value} by user {actor.id}"
    )
    return invoice


async def mark_invoice_viewed(db: AsyncSession, invoice_id: int, actor: User) -> Invoice:
    invoice = await get_invoice(db, invoice_id, actor)
    invoice.customer_viewed_at = utcnow()
    if invoice.status == InvoiceStatus.SENT:
        invoice.status = InvoiceStatus.VIEWED
    await db.commit()
    return invoice


async def mark_overdue_invoices(db: AsyncSession, now=None) -> int:
    """Flag unpaid invoices past their due date. Returns how many changed."""
    now = now or utcnow()
    result = await db.execute(
        select(Invoice).where(
            Invoice.due_date < now,
            Invoice.payment_status.in_(
                [InvoicePaymentStatus.UNPAID, InvoicePaymentStatus.PARTIALLY_PAID]
            ),
            Invoice.status.notin_(CLOSED_INVOICE_STATUSES + (InvoiceStatus.OVERDUE,)),
        )
    )
    invoices = list(result.scalars().all())

    for invoice in invoices:
        invoice.status = InvoiceStatus.OVERDUE
        if invoice.payment_status == InvoicePaymentStatus.UNPAID:
            invoice.payment_status = InvoicePaymentStatus.OVERDUE

    await db.commit()
    if invoices:
        logger.info(f"Marked {len(invoices)} invoice(s) overdue")
    return len(invoices)


async def create_revision(db: AsyncSession, invoice_id: int, actor: User, reason: Optional[str]) -> Invoice:
    """Copy an invoice into a new draft numbered after the appointment's latest revision."""
    if not reason or not reason.strip():
        raise ServiceError("Revision reason is required", "REASON_REQUIRED")

    original = await get_invoice(db, invoice_id)
    latest_number = await db.scalar(
        select(func.max(Invoice.revision_number)).where(
            Invoice.appointment_id == original.appointment_id
        )
    )
    revision = Invoice(
        invoice_number=await generate_invoice_number(db),
        appointment_id=original.appointment_id,
        reception_id=original.reception_id,
        customer_id=original.customer_id,
        vehicle_id=original.vehicle_id,
        generated_by=actor.id,
        line_items=[
            InvoiceLineItem(
                kind=item.kind,
                reference_id=item.reference_id,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for item in original.line_items
        ],
        additional_charges=[dict(c) for c in original.additional_charges or []],
        discount_percentage=original.discount_percentage,
        tax_rate=original.tax_rate,
        paid_amount=original.paid_amount,
        payment_status=original.payment_status,
        payment_method=original.payment_method,
        payment_date=original.payment_date,
        transaction_ref=original.transaction_ref,
        due_date=original.due_date,
        customer_info=dict(original.customer_info or {}),
        vehicle_info=dict(original.vehicle_info or {}),
        status=InvoiceStatus.DRAFT,
        revision_number=(latest_number or original.revision_number) + 1,
        original_invoice_id=original.id,
        revision_reason=reason,
        notes=original.notes,
    )
    _apply_totals(revision)
    db.add(revision)
    await db.commit()

    logger.info(
        f"Created revision {revision.revision_number} ({revision.invoice_number}) "
        f"of invoice {original.invoice_number}"
    )
    return revision
