"""
Service reception: vehicle intake, technician submission and staff review.

Parts listed on a reception are only taken out of stock once staff approve
the reception and every part is available without competing demand.
Otherwise the shortfall is recorded and the part conflict workflow takes
over.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from evcenter.models import (
    Appointment,
    Part,
    PartConflict,
    ReceptionPart,
    ReceptionService,
    Service,
    ServiceReception,
    User,
)
from evcenter.models.appointment import AppointmentStatus
from evcenter.models.base import utcnow
from evcenter.models.part_conflict import ConflictRequestStatus, ConflictRequestType, ConflictStatus
from evcenter.models.service_reception import ReceptionStatus, StaffReviewStatus
from evcenter.models.user import UserRole
from evcenter.services.appointment_workflow import apply_status, validate_transition_requirements
from evcenter.services.errors import NotFoundError, PermissionDeniedError, ServiceError
from evcenter.services.inventory_service import consume_stock, lock_part
from evcenter.services.part_conflict_service import (
    RECEPTION_APPROVABLE_STATUSES,
    detect_part_conflicts,
    settle_conflict_requests,
)
from evcenter.services.redis_client import invalidate_part_cache
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

REVIEW_DECISIONS = (
    StaffReviewStatus.APPROVED,
    StaffReviewStatus.REJECTED,
    StaffReviewStatus.NEEDS_MODIFICATION,
    StaffReviewStatus.PARTIALLY_APPROVED,
)

DEFAULT_SERVICE_TIME = 120  # minutes


# ============================================================================
# Review diffing
# ============================================================================


def compute_item_changes(
    original: Optional[Iterable[Dict[str, Any]]],
    edited: Optional[Iterable[Dict[str, Any]]],
    key: str,
) -> Optional[Dict[str, List[Any]]]:
    """
    Diff two item lists by ``key``.

    Args:
        original: Items before the edit
        edited: Items after the edit
        key: Identity field, e.g. "part_id" or "service_id"

    Returns:
        {"added": [...], "removed": [...], "modified": [{"before", "after"}]}
        or None when both lists hold the same items with the same quantities.
    """
    before = {item[key]: item for item in original or []}
    after = {item[key]: item for item in edited or []}

    added = [item for k, item in after.items() if k not in before]
    removed = [item for k, item in before.items() if k not in after]
    modified = [
        {"before": before[k], "after": item}
        for k, item in after.items()
        if k in before and before[k].get("quantity") != item.get("quantity")
    ]

    if not (added or removed or modified):
        return None
    return {"added": added, "removed": removed, "modified": modified}


def item_change_status(item: Dict[str, Any], original: Optional[Iterable[Dict[str, Any]]], key: str) -> str:
    """``added``, ``modified`` or ``unchanged`` relative to ``original``."""
    for candidate in original or []:
        if candidate.get(key) == item.get(key):
            if candidate.get("quantity") != item.get("quantity"):
                return "modified"
            return "unchanged"
    return "added"


def _service_items(reception: ServiceReception) -> List[Dict[str, Any]]:
    return [
        {"service_id": line.service_id, "quantity": line.quantity, "reason": line.reason}
        for line in reception.services
    ]


def _part_items(reception: ServiceReception) -> List[Dict[str, Any]]:
    return [
        {"part_id": line.part_id, "quantity": line.quantity, "reason": line.reason}
        for line in reception.parts
    ]


# ============================================================================
# Lines
# ============================================================================


async def _build_service_line(db: AsyncSession, item: Dict[str, Any]) -> ReceptionService:
    service = await db.get(Service, item["service_id"])
    if not service:
        raise ServiceError(f"Service {item['service_id']} not found", "INVALID_SERVICES")

    quantity = item.get("quantity") or 1
    return ReceptionService(
        service_id=service.id,
        service_name=service.name,
        category=service.category.value,
        quantity=quantity,
        reason=item.get("reason"),
        unit_price=service.base_price,
        estimated_cost=service.base_price * quantity,
        customer_approved=item.get("customer_approved", True),
    )


def _apply_availability(line: ReceptionPart, part: Part) -> None:
    available = part.available_stock
    line.available_quantity = available
    line.is_available = available >= line.quantity
    line.shortfall = max(0, line.quantity - available)


async def _build_part_line(db: AsyncSession, item: Dict[str, Any]) -> ReceptionPart:
    part = await db.get(Part, item["part_id"])
    if not part or not part.is_active:
        raise ServiceError(f"Part {item['part_id']} not found", "INVALID_PARTS")

    quantity = item.get("quantity") or 1
    if quantity <= 0:
        raise ServiceError("Quantity must be positive", "VALIDATION_ERROR")

    line = ReceptionPart(
        part_id=part.id,
        part_name=part.name,
        part_number=part.part_number,
        quantity=quantity,
        reason=item.get("reason"),
        unit_price=part.retail_price,
        estimated_cost=part.retail_price * quantity,
        requested_at=utcnow(),
    )
    _apply_availability(line, part)
    return line


async def _apply_service_edits(db: AsyncSession, reception: ServiceReception, edited: List[Dict[str, Any]]) -> None:
    by_service = {line.service_id: line for line in reception.services}
    wanted = {item["service_id"]: item for item in edited}

    for service_id, line in by_service.items():
        if service_id not in wanted:
            reception.services.remove(line)

    for service_id, item in wanted.items():
        line = by_service.get(service_id)
        if line is None:
            reception.services.append(await _build_service_line(db, item))
            continue
        line.quantity = item.get("quantity") or 1
        line.estimated_cost = line.unit_price * line.quantity
        if item.get("reason") is not None:
            line.reason = item["reason"]


async def _apply_part_edits(db: AsyncSession, reception: ServiceReception, edited: List[Dict[str, Any]]) -> None:
    by_part = {line.part_id: line for line in reception.parts}
    wanted = {item["part_id"]: item for item in edited}

    for part_id, line in by_part.items():
        if part_id not in wanted and not line.is_approved:
            reception.parts.remove(line)

    for part_id, item in wanted.items():
        line = by_part.get(part_id)
        if line is None:
            reception.parts.append(await _build_part_line(db, item))
            continue
        if line.is_approved:
            continue
        line.quantity = item.get("quantity") or 1
        line.estimated_cost = line.unit_price * line.quantity
        if item.get("reason") is not None:
            line.reason = item["reason"]


# ============================================================================
# Queries
# ============================================================================


async def generate_reception_number(db: AsyncSession, today: Optional[date] = None) -> str:
    """``RCPyymmddNNN``, sequence restarting every day."""
    today = today or utcnow().date()
    prefix = f"RCP{today:%y%m%d}"
    count = await db.scalar(
        select(func.count(ServiceReception.id)).where(
            ServiceReception.reception_number.like(f"{prefix}%")
        )
    )
    return f"{prefix}{(count or 0) + 1:03d}"


def _ensure_can_view(reception: ServiceReception, actor: User) -> None:
    if UserRole(actor.role) == UserRole.CUSTOMER and reception.customer_id != actor.id:
        raise PermissionDeniedError("You can only view your own service receptions")


async def get_reception(db: AsyncSession, reception_id: int, actor: Optional[User] = None) -> ServiceReception:
    reception = await db.get(ServiceReception, reception_id)
    if not reception:
        raise NotFoundError("Service reception not found", "RECEPTION_NOT_FOUND")
    if actor is not None:
        _ensure_can_view(reception, actor)
    return reception


async def get_reception_by_appointment(
    db: AsyncSession, appointment_id: int, actor: Optional[User] = None
) -> ServiceReception:
    result = await db.execute(
        select(ServiceReception).where(ServiceReception.appointment_id == appointment_id)
    )
    reception = result.scalar_one_or_none()
    if not reception:
        raise NotFoundError("Service reception not found", "RECEPTION_NOT_FOUND")
    if actor is not None:
        _ensure_can_view(reception, actor)
    return reception


async def list_pending_review(db: AsyncSession) -> List[ServiceReception]:
    """Receptions submitted to staff and still awaiting a decision, oldest first."""
    result = await db.execute(
        select(ServiceReception)
        .where(
            ServiceReception.submitted_to_staff.is_(True),
            ServiceReception.staff_review_status == StaffReviewStatus.PENDING,
        )
        .order_by(ServiceReception.submitted_at, ServiceReception.id)
    )
    return list(result.scalars().all())


# ============================================================================
# Intake
# ============================================================================


async def create_reception(
    db: AsyncSession, appointment_id: int, actor: User, data: Dict[str, Any]
) -> ServiceReception:
    """
    Create the service reception of an arrived appointment.

    Only the assigned technician (or an admin) may create it. Recommended
    services default to the booked service when none are given. Requested
    parts are snapshotted with their current availability; nothing is taken
    out of stock until staff approve.

    Args:
        db: Database session
        appointment_id: Appointment in ``customer_arrived``
        actor: Technician or admin creating the reception
        data: services [{service_id, quantity, reason}], parts
            [{part_id, quantity, reason}], vehicle_condition,
            customer_complaints, special_instructions, estimated_service_time

    Returns:
        The new ServiceReception

    Raises:
        NotFoundError: appointment does not exist
        ServiceError: reception exists, wrong status, unknown service or part
        PermissionDeniedError: actor is not the assigned technician
    """
    appointment = await db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found", "APPOINTMENT_NOT_FOUND")

    existing = await db.execute(
        select(ServiceReception.id).where(ServiceReception.appointment_id == appointment.id)
    )
    if existing.scalar_one_or_none():
        raise ServiceError("Service reception already exists for this appointment", "RECEPTION_EXISTS")

    if appointment.status != AppointmentStatus.CUSTOMER_ARRIVED:
        raise ServiceError(
            "Cannot create service reception. Customer must be marked as arrived first",
            "INVALID_STATUS",
        )

    if UserRole(actor.role) != UserRole.ADMIN and appointment.assigned_technician_id != actor.id:
        raise PermissionDeniedError(
            "Only assigned technician can create service reception", "UNAUTHORIZED_TECHNICIAN"
        )
    validate_transition_requirements(appointment, AppointmentStatus.RECEPTION_CREATED)

    service_items = data.get("services") or []
    if not service_items and appointment.service_id:
        service_items = [{"service_id": appointment.service_id, "quantity": 1, "reason": "Booked service"}]

    service_lines = [await _build_service_line(db, item) for item in service_items]
    part_lines = [await _build_part_line(db, item) for item in data.get("parts") or []]

    estimated_minutes = data.get("estimated_service_time") or DEFAULT_SERVICE_TIME
    now = utcnow()

    reception = ServiceReception(
        reception_number=await generate_reception_number(db),
        appointment_id=appointment.id,
        customer_id=appointment.customer_id,
        vehicle_id=appointment.vehicle_id,
        received_by=actor.id,
        status=ReceptionStatus.RECEIVED,
        vehicle_condition=data.get("vehicle_condition") or {},
        customer_complaints=data.get("customer_complaints"),
        special_instructions=data.get("special_instructions"),
        estimated_service_time=estimated_minutes,
        estimated_completion_time=now + timedelta(minutes=estimated_minutes),
        services=service_lines,
        parts=part_lines,
        workflow_history=[],
    )
    reception.add_history(ReceptionStatus.RECEIVED.value, actor.id, "Service reception created")
    db.add(reception)

    apply_status(
        appointment,
        AppointmentStatus.RECEPTION_CREATED,
        changed_by=actor.id,
        reason="Service reception created by technician",
    )
    await db.commit()

    logger.info(
        f"Created reception {reception.reception_number} for appointment "
        f"{appointment.appointment_number} ({len(service_lines)} services, {len(part_lines)} parts)"
    )
    return reception


async def submit_reception(db: AsyncSession, reception_id: int, actor: User) -> ServiceReception:
    """Send a reception to staff for review."""
    reception = await get_reception(db, reception_id)

    role = UserRole(actor.role)
    if role == UserRole.CUSTOMER:
        raise PermissionDeniedError("Customers cannot submit service receptions")
    if role == UserRole.TECHNICIAN and reception.received_by != actor.id:
        raise PermissionDeniedError("Only the receiving technician can submit this reception")

    if reception.status != ReceptionStatus.RECEIVED:
        raise ServiceError(
            f"Reception is {reception.status.value} and cannot be submitted", "INVALID_STATUS"
        )
    if reception.submitted_to_staff and reception.staff_review_status == StaffReviewStatus.PENDING:
        raise ServiceError("Reception already submitted to staff", "ALREADY_SUBMITTED")

    reception.submitted_to_staff = True
    reception.submitted_at = utcnow()
    reception.submitted_by = actor.id
    reception.staff_review_status = StaffReviewStatus.PENDING
    reception.add_history(
        "submitted_for_approval", actor.id, "Technician submitted reception for staff approval"
    )
    await db.commit()

    logger.info(f"Reception {reception.reception_number} submitted by user {actor.id}")
    return reception


async def mark_unsubmitted_receptions(db: AsyncSession) -> int:
    """Flag every never-submitted reception as submitted now. Returns the count."""
    result = await db.execute(
        update(ServiceReception)
        .where(ServiceReception.submitted_to_staff.is_(False))
        .values(submitted_to_staff=True, submitted_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


# ============================================================================
# Staff review
# ============================================================================


async def _has_pending_conflict(db: AsyncSession, part_id: int) -> bool:
    conflict_id = await db.scalar(
        select(PartConflict.id)
        .where(PartConflict.part_id == part_id, PartConflict.status == ConflictStatus.PENDING)
        .limit(1)
    )
    return conflict_id is not None


async def _check_parts_availability(
    db: AsyncSession, reception: ServiceReception, appointment: Appointment, actor: User
) -> List[int]:
    """
    Approve and consume the reception's parts, or hand them to conflict detection.

    Returns the ids of parts that could not be approved.
    """
    open_lines = [line for line in reception.parts if not line.is_approved]

    needed: Dict[int, int] = {}
    for line in open_lines:
        needed[line.part_id] = needed.get(line.part_id, 0) + line.quantity

    locked: Dict[int, Part] = {}
    blocked: List[int] = []
    for part_id, quantity in needed.items():
        part = await lock_part(db, part_id)
        locked[part_id] = part
        if part.available_stock < quantity or await _has_pending_conflict(db, part_id):
            blocked.append(part_id)

    if not blocked:
        for line in open_lines:
            consume_stock(locked[line.part_id], line.quantity)
            line.is_approved = True
            line.is_available = True
            line.shortfall = 0

        reception.status = ReceptionStatus.APPROVED
        reception.has_conflict = False
        if appointment.status in RECEPTION_APPROVABLE_STATUSES:
            apply_status(
                appointment,
                AppointmentStatus.RECEPTION_APPROVED,
                changed_by=actor.id,
                reason="Service reception approved by staff",
            )
        await db.commit()
        for part_id in locked:
            await invalidate_part_cache(part_id)
        return []

    # Uncontested parts are taken now; only blocked lines wait for the conflict
    for line in open_lines:
        if line.part_id in blocked:
            _apply_availability(line, locked[line.part_id])
        else:
            consume_stock(locked[line.part_id], line.quantity)
            line.is_approved = True
            line.is_available = True
            line.shortfall = 0

    reception.staff_review_status = StaffReviewStatus.PENDING_PARTS_RESTOCK
    reception.add_history(
        StaffReviewStatus.PENDING_PARTS_RESTOCK.value,
        actor.id,
        f"Parts unavailable or contested: {', '.join(str(p) for p in blocked)}",
    )
    apply_status(
        appointment,
        AppointmentStatus.PARTS_INSUFFICIENT,
        changed_by=actor.id,
        reason="Insufficient parts for approved reception",
    )
    await db.commit()
    for part_id in locked:
        await invalidate_part_cache(part_id)

    for part_id in blocked:
        await detect_part_conflicts(db, part_id)

    logger.info(
        f"Reception {reception.reception_number} waiting for parts {blocked}; "
        f"appointment {appointment.appointment_number} on hold"
    )
    return blocked


async def review_reception(
    db: AsyncSession,
    reception_id: int,
    actor: User,
    decision: str,
    notes: Optional[str] = None,
    approval_decision: Optional[Dict[str, Any]] = None,
    services: Optional[List[Dict[str, Any]]] = None,
    parts: Optional[List[Dict[str, Any]]] = None,
    modification_reason: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Staff decision on a submitted reception.

    Staff may edit the recommended services and requested parts as part of
    the review; edits that change anything require ``modification_reason``
    and are applied before the decision.

    Decisions:
        approved / partially_approved: parts are approved and taken from
            stock when all are available and uncontested; otherwise the
            reception waits for a restock, the appointment goes on hold and
            conflict detection runs for the blocked parts.
        rejected: reception rejected, appointment keeps its status.
        needs_modification: reception goes back to the technician.

    Returns:
        {"reception": ServiceReception, "decision": str,
         "appointment_status": str, "blocked_parts": [part_id, ...],
         "changes": {"services": diff | None, "parts": diff | None}}
    """
    try:
        decision = StaffReviewStatus(decision)
    except ValueError:
        decision = None
    if decision not in REVIEW_DECISIONS:
        raise ServiceError(
            "Invalid decision. Must be one of: " + ", ".join(d.value for d in REVIEW_DECISIONS),
            "VALIDATION_ERROR",
        )

    reception = await get_reception(db, reception_id)
    if not reception.can_be_approved():
        raise ServiceError("Service reception cannot be reviewed at this time", "RECEPTION_NOT_REVIEWABLE")

    appointment = await db.get(Appointment, reception.appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found", "APPOINTMENT_NOT_FOUND")

    changes = {
        "services": compute_item_changes(_service_items(reception), services, "service_id")
        if services is not None
        else None,
        "parts": compute_item_changes(_part_items(reception), parts, "part_id")
        if parts is not None
        else None,
    }
    if (changes["services"] or changes["parts"]) and not (modification_reason or "").strip():
        raise ServiceError(
            "A modification reason is required when changing services or parts",
            "MODIFICATION_REASON_REQUIRED",
        )
    if changes["services"]:
        await _apply_service_edits(db, reception, services)
    if changes["parts"]:
        await _apply_part_edits(db, reception, parts)
    if changes["services"] or changes["parts"]:
        reception.modification_reason = modification_reason

    now = utcnow()
    if not reception.submitted_to_staff:
        reception.submitted_to_staff = True
        reception.submitted_at = now
        reception.submitted_by = actor.id

    reception.reviewed_by = actor.id
    reception.reviewed_at = now
    reception.staff_review_status = decision
    reception.review_notes = notes
    decision_record = dict(approval_decision or {})
    if changes["services"] or changes["parts"]:
        decision_record["changes"] = changes
    reception.approval_decision = decision_record or None
    reception.add_history(f"staff_{decision.value}", actor.id, notes)

    blocked: List[int] = []
    if decision in (StaffReviewStatus.APPROVED, StaffReviewStatus.PARTIALLY_APPROVED):
        await db.flush()
        blocked = await _check_parts_availability(db, reception, appointment, actor)
    elif decision == StaffReviewStatus.REJECTED:
        reception.status = ReceptionStatus.REJECTED
        apply_status(
            appointment,
            appointment.status,
            changed_by=actor.id,
            reason="Service reception rejected by staff",
            notes=notes,
        )
        await settle_conflict_requests(
            db,
            ConflictRequestType.SERVICE_RECEPTION,
            reception.id,
            ConflictRequestStatus.REJECTED,
            actor.id,
            notes,
        )
        await db.commit()
    else:
        reception.status = ReceptionStatus.RECEIVED
        reception.submitted_to_staff = False
        reception.submitted_at = None
        apply_status(
            appointment,
            appointment.status,
            changed_by=actor.id,
            reason="Service reception needs modification",
            notes=notes,
        )
        await db.commit()

    logger.info(
        f"Reception {reception.reception_number} reviewed by user {actor.id}: {decision.value}"
    )

    reception = await get_reception(db, reception_id)
    appointment = await db.get(Appointment, reception.appointment_id)
    return {
        "reception": reception,
        "decision": decision.value,
        "appointment_status": appointment.status.value,
        "blocked_parts": blocked,
        "changes": changes,
    }
