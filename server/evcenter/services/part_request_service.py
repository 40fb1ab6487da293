"""Additional parts requested by technicians while a service is in progress."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from evcenter.models import Appointment, Part, PartRequest, PartRequestItem, User
from evcenter.models.appointment import AppointmentStatus
from evcenter.models.base import utcnow
from evcenter.models.part_conflict import ConflictRequestType
from evcenter.models.part_request import PartRequestStatus
from evcenter.models.user import UserRole
from evcenter.services.appointment_workflow import apply_status, transition
from evcenter.services.errors import (
    InsufficientStockError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
)
from evcenter.services.inventory_service import consume_stock, lock_part
from evcenter.services.part_conflict_service import (
    PART_REQUEST_RESUMABLE_STATUSES,
    detect_part_conflicts,
    pending_conflict_requests_for,
)
from evcenter.services.redis_client import invalidate_part_cache
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def create_part_request(
    db: AsyncSession,
    actor: User,
    appointment_id: int,
    items: Iterable[Dict[str, Any]],
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Raise an additional part request for an in-progress appointment.

    The appointment moves to ``parts_requested`` and conflict detection runs
    for every requested part.

    Returns:
        {"part_request": PartRequest, "conflicts": [PartConflict, ...]}
    """
    appointment = await db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found", "APPOINTMENT_NOT_FOUND")
    if appointment.status != AppointmentStatus.IN_PROGRESS:
        raise ServiceError(
            f"Cannot request parts. Appointment status is: {appointment.status.value}",
            "INVALID_STATUS",
        )

    items = list(items or [])
    if not items:
        raise ServiceError("At least one part must be requested", "VALIDATION_ERROR")

    quantities: Dict[int, int] = {}
    for item in items:
        if item["quantity"] <= 0:
            raise ServiceError("Quantity must be positive", "VALIDATION_ERROR")
        part = await db.get(Part, item["part_id"])
        if not part or not part.is_active:
            raise NotFoundError(f"Part not found: {item['part_id']}", "PART_NOT_FOUND")
        quantities[part.id] = quantities.get(part.id, 0) + item["quantity"]

    transition(
        appointment,
        AppointmentStatus.PARTS_REQUESTED,
        actor,
        reason="Additional parts requested: "
        + ", ".join(f"{qty}x {part_id}" for part_id, qty in quantities.items()),
    )

    part_request = PartRequest(
        appointment_id=appointment.id,
        requested_by=actor.id,
        status=PartRequestStatus.PENDING,
        reason=reason,
        items=[PartRequestItem(part_id=pid, quantity=qty) for pid, qty in quantities.items()],
    )
    db.add(part_request)
    await db.commit()

    logger.info(
        f"Part request {part_request.id} for appointment {appointment.appointment_number}: "
        f"{len(quantities)} part(s)"
    )

    conflicts = []
    for part_id in quantities:
        conflict = await detect_part_conflicts(db, part_id)
        if conflict:
            conflicts.append(conflict)

    return {"part_request": await get_part_request(db, part_request.id), "conflicts": conflicts}


async def get_part_request(db: AsyncSession, request_id: int) -> PartRequest:
    part_request = await db.get(PartRequest, request_id)
    if not part_request:
        raise NotFoundError("Part request not found", "PART_REQUEST_NOT_FOUND")
    return part_request


async def list_part_requests(
    db: AsyncSession, actor: User, status: Optional[str] = None, appointment_id: Optional[int] = None
) -> List[PartRequest]:
    stmt = select(PartRequest).order_by(PartRequest.created_at, PartRequest.id)
    if UserRole(actor.role) == UserRole.TECHNICIAN:
        stmt = stmt.where(PartRequest.requested_by == actor.id)
    if status:
        stmt = stmt.where(PartRequest.status == PartRequestStatus(status))
    if appointment_id:
        stmt = stmt.where(PartRequest.appointment_id == appointment_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def review_part_request(
    db: AsyncSession,
    request_id: int,
    actor: User,
    approved: bool,
    notes: Optional[str] = None,
) -> PartRequest:
    """
    Staff decision on a part request that is not caught in a conflict.

    Approval takes every item out of stock at once and lets the technician
    resume work. Rejection also returns the appointment to ``in_progress``;
    the technician continues without the extra parts.

    Raises:
        ServiceError: request already reviewed, or waiting in a pending part
            conflict (PART_CONFLICT_PENDING); those are decided on the conflict
        InsufficientStockError: an item exceeds available stock; such requests
            are settled through the part conflict workflow instead
    """
    if UserRole(actor.role) not in (UserRole.STAFF, UserRole.ADMIN):
        raise PermissionDeniedError("Only staff can review part requests")

    part_request = await get_part_request(db, request_id)
    if part_request.status != PartRequestStatus.PENDING:
        raise ServiceError(
            f"Part request cannot be reviewed. Current status: {part_request.status.value}",
            "REQUEST_NOT_PENDING",
        )

    queued = await pending_conflict_requests_for(
        db, ConflictRequestType.PART_REQUEST, part_request.id
    )
    if queued:
        raise ServiceError(
            f"Part request {part_request.id} is queued in part conflict "
            f"{queued[0].conflict_id}; decide it there",
            "PART_CONFLICT_PENDING",
        )

    appointment = await db.get(Appointment, part_request.appointment_id)
    now = utcnow()

    if approved:
        open_items = [item for item in part_request.items if not item.is_approved]
        parts = {}
        for item in open_items:
            part = parts.get(item.part_id) or await lock_part(db, item.part_id)
            parts[part.id] = part
            if part.available_stock < item.quantity:
                raise InsufficientStockError(
                    f"Insufficient stock. Need {item.quantity}, available {part.available_stock}"
                )
        for item in open_items:
            consume_stock(parts[item.part_id], item.quantity)
            item.is_approved = True
        part_request.status = PartRequestStatus.APPROVED
    else:
        part_request.status = PartRequestStatus.REJECTED
        parts = {}

    part_request.reviewed_by = actor.id
    part_request.reviewed_at = now
    part_request.review_notes = notes

    if appointment and appointment.status in PART_REQUEST_RESUMABLE_STATUSES:
        apply_status(
            appointment,
            AppointmentStatus.IN_PROGRESS,
            changed_by=actor.id,
            reason=f"Part request {'approved' if approved else 'rejected'} by staff",
            notes=notes,
        )

    await db.commit()
    for part_id in parts:
        await invalidate_part_cache(part_id)

    logger.info(
        f"Part request {part_request.id} {part_request.status.value} by user {actor.id}"
    )
    return part_request
