"""
Part conflict detection and resolution.

A conflict exists for a part when the quantity requested by unapproved
service receptions and pending part requests exceeds its available stock
(current minus reserved). Detection snapshots the competing requests in
allocation order; staff then approve, reject or defer them, or a restock
settles them automatically.
"""

import functools
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from evcenter.models import (
    Appointment,
    ConflictRequest,
    Part,
    PartConflict,
    PartRequest,
    PartRequestItem,
    ReceptionPart,
    ServiceReception,
    User,
)
from evcenter.models.appointment import AppointmentStatus
from evcenter.models.base import utcnow
from evcenter.models.part_conflict import (
    ConflictRequestStatus,
    ConflictRequestType,
    ConflictStatus,
)
from evcenter.models.part_request import PartRequestStatus
from evcenter.models.service_reception import ReceptionStatus, StaffReviewStatus
from evcenter.services.appointment_workflow import apply_status
from evcenter.services.errors import InsufficientStockError, NotFoundError, ServiceError
from evcenter.services.inventory_service import consume_stock, lock_part
from evcenter.services.redis_client import invalidate_part_cache
from evcenter.utils.retry import RetryError, with_retry
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

PRIORITY_WEIGHTS = {"urgent": 4, "high": 3, "normal": 2, "low": 1}

# Appointments in these states no longer compete for stock
INACTIVE_APPOINTMENT_STATUSES = (
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.INVOICED,
)

# Appointment states from which a fully approved reception unblocks work
RECEPTION_APPROVABLE_STATUSES = (
    AppointmentStatus.RECEPTION_CREATED,
    AppointmentStatus.WAITING_FOR_PARTS,
    AppointmentStatus.PARTS_INSUFFICIENT,
    AppointmentStatus.PARTS_REQUESTED,
)

PART_REQUEST_RESUMABLE_STATUSES = (
    AppointmentStatus.PARTS_REQUESTED,
    AppointmentStatus.PARTS_INSUFFICIENT,
    AppointmentStatus.WAITING_FOR_PARTS,
)

DEFERRED_NO_STOCK_NOTE = "Không đủ stock để approve. Đã được staff đánh dấu deferred."
REJECTED_DEFAULT_NOTE = "Request bị từ chối bởi staff"
DEFERRED_DEFAULT_NOTE = "Request bị trì hoãn vì thiếu linh kiện"
AUTO_APPROVED_NOTE = "Tự động duyệt sau khi nhập kho"
WITHDRAWN_NOTE = "Không còn request nào chờ duyệt"
SETTLED_OUTSIDE_NOTE = "Đã được xử lý ngoài conflict"


@dataclass
class CompetingRequest:
    """A reception or part request currently asking for a part."""

    request_type: ConflictRequestType
    request_id: int
    appointment_id: int
    appointment_number: str
    requested_quantity: int
    priority: str
    scheduled_date: Optional[date]
    scheduled_time: Optional[str]
    requested_at: Optional[datetime]
    customer_id: Optional[int]
    technician_id: Optional[int]
    staff_review_status: str

    @property
    def key(self):
        return (self.request_type.value, self.request_id)


# ============================================================================
# Prioritization
# ============================================================================


def _priority_value(request: Any) -> str:
    return str(getattr(request.priority, "value", request.priority) or "normal")


def priority_weight(priority: Any, default: int = 2) -> int:
    return PRIORITY_WEIGHTS.get(str(getattr(priority, "value", priority)), default)


def _time_in_minutes(value: str) -> int:
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def _compare_requests(a: Any, b: Any) -> int:
    date_a = a.scheduled_date or date.max
    date_b = b.scheduled_date or date.max
    if date_a != date_b:
        return -1 if date_a < date_b else 1

    if a.scheduled_time and b.scheduled_time:
        time_a = _time_in_minutes(a.scheduled_time)
        time_b = _time_in_minutes(b.scheduled_time)
        if time_a != time_b:
            return time_a - time_b

    weight_a = priority_weight(_priority_value(a))
    weight_b = priority_weight(_priority_value(b))
    if weight_a != weight_b:
        return weight_b - weight_a

    requested_a = a.requested_at or datetime.max
    requested_b = b.requested_at or datetime.max
    if requested_a != requested_b:
        return -1 if requested_a < requested_b else 1
    return 0


def prioritize_requests(requests: Iterable[Any]) -> List[Any]:
    """
    Order competing requests for allocation.

    1. Earliest scheduled date
    2. Earliest scheduled time (only when both requests have one)
    3. Appointment priority: urgent > high > normal > low (unknown = normal)
    4. Earliest request time (FIFO)

    Works on anything exposing scheduled_date, scheduled_time, priority and
    requested_at attributes. Returns a new list.
    """
    return sorted(requests, key=functools.cmp_to_key(_compare_requests))


def allocate(requests: Sequence[Any], available_stock: int) -> List[Any]:
    """Greedy pass over prioritized requests; returns those that fit."""
    remaining = available_stock
    fitted = []
    for request in requests:
        if request.requested_quantity <= remaining:
            fitted.append(request)
            remaining -= request.requested_quantity
    return fitted


# ============================================================================
# Detection
# ============================================================================


async def _collect_requests(db: AsyncSession, part_id: int) -> List[CompetingRequest]:
    """Unapproved reception lines and pending part request items for a part."""
    by_key: Dict[Any, CompetingRequest] = {}

    reception_rows = await db.execute(
        select(ReceptionPart, ServiceReception, Appointment)
        .join(ServiceReception, ReceptionPart.reception_id == ServiceReception.id)
        .join(Appointment, ServiceReception.appointment_id == Appointment.id)
        .where(
            ReceptionPart.part_id == part_id,
            ReceptionPart.is_approved.is_(False),
            ServiceReception.status != ReceptionStatus.REJECTED,
            Appointment.status.notin_(INACTIVE_APPOINTMENT_STATUSES),
        )
        .order_by(ReceptionPart.id)
    )
    for line, reception, appointment in reception_rows.all():
        key = (ConflictRequestType.SERVICE_RECEPTION.value, reception.id)
        if key in by_key:
            by_key[key].requested_quantity += line.quantity
            continue
        by_key[key] = CompetingRequest(
            request_type=ConflictRequestType.SERVICE_RECEPTION,
            request_id=reception.id,
            appointment_id=appointment.id,
            appointment_number=appointment.appointment_number,
            requested_quantity=line.quantity,
            priority=appointment.priority.value,
            scheduled_date=appointment.scheduled_date,
            scheduled_time=appointment.scheduled_time,
            requested_at=line.requested_at or reception.created_at,
            customer_id=reception.customer_id,
            technician_id=reception.received_by,
            staff_review_status=reception.staff_review_status.value,
        )

    request_rows = await db.execute(
        select(PartRequestItem, PartRequest, Appointment)
        .join(PartRequest, PartRequestItem.request_id == PartRequest.id)
        .join(Appointment, PartRequest.appointment_id == Appointment.id)
        .where(
            PartRequestItem.part_id == part_id,
            PartRequestItem.is_approved.is_(False),
            PartRequest.status == PartRequestStatus.PENDING,
            Appointment.status.notin_(INACTIVE_APPOINTMENT_STATUSES),
        )
        .order_by(PartRequestItem.id)
    )
    for item, part_request, appointment in request_rows.all():
        key = (ConflictRequestType.PART_REQUEST.value, part_request.id)
        if key in by_key:
            by_key[key].requested_quantity += item.quantity
            continue
        by_key[key] = CompetingRequest(
            request_type=ConflictRequestType.PART_REQUEST,
            request_id=part_request.id,
            appointment_id=appointment.id,
            appointment_number=appointment.appointment_number,
            requested_quantity=item.quantity,
            priority=appointment.priority.value,
            scheduled_date=appointment.scheduled_date,
            scheduled_time=appointment.scheduled_time,
            requested_at=part_request.created_at,
            customer_id=appointment.customer_id,
            technician_id=part_request.requested_by,
            staff_review_status="N/A",
        )

    return list(by_key.values())


async def generate_conflict_number(db: AsyncSession, today: Optional[date] = None) -> str:
    """``CF-YYYYMMDD-NNNN``, sequence restarting every day."""
    today = today or utcnow().date()
    prefix = f"CF-{today:%Y%m%d}-"
    count = await db.scalar(
        select(func.count(PartConflict.id)).where(PartConflict.conflict_number.like(f"{prefix}%"))
    )
    return f"{prefix}{(count or 0) + 1:04d}"


def _refresh_allocation(conflict: PartConflict, available_stock: int) -> None:
    """Recompute order, can_be_fulfilled and allocation priority of open requests."""
    open_requests = [
        r
        for r in conflict.requests
        if r.status in (ConflictRequestStatus.PENDING, ConflictRequestStatus.DEFERRED)
    ]
    ordered = prioritize_requests(open_requests)
    fitted = {id(r) for r in allocate(ordered, available_stock)}

    for position, request in enumerate(ordered):
        request.position = position
        request.can_be_fulfilled = id(request) in fitted
        request.allocation_priority = "high" if request.can_be_fulfilled else "low"


def _apply_competing(target: ConflictRequest, source: CompetingRequest) -> None:
    target.appointment_id = source.appointment_id
    target.appointment_number = source.appointment_number
    target.requested_quantity = source.requested_quantity
    target.priority = source.priority
    target.scheduled_date = source.scheduled_date
    target.scheduled_time = source.scheduled_time
    target.requested_at = source.requested_at
    target.customer_id = source.customer_id
    target.technician_id = source.technician_id
    target.staff_review_status = source.staff_review_status


async def _get_pending_conflict_for_part(db: AsyncSession, part_id: int) -> Optional[PartConflict]:
    result = await db.execute(
        select(PartConflict)
        .where(PartConflict.part_id == part_id, PartConflict.status == ConflictStatus.PENDING)
        .order_by(PartConflict.id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _detect_once(db: AsyncSession, part_id: int) -> Optional[PartConflict]:
    part = await db.get(Part, part_id)
    if not part:
        logger.warning(f"Conflict detection skipped: part {part_id} not found")
        return None
    part = await lock_part(db, part_id)

    available_stock = part.available_stock
    competing = await _collect_requests(db, part_id)
    total_requested = sum(r.requested_quantity for r in competing)

    conflict = await _get_pending_conflict_for_part(db, part_id)
    if conflict is None:
        if total_requested <= available_stock:
            await db.commit()
            return None
        conflict = PartConflict(
            conflict_number=await generate_conflict_number(db),
            part_id=part.id,
            status=ConflictStatus.PENDING,
        )
        db.add(conflict)
        created = True
    else:
        created = False

    existing = {r.key: r for r in conflict.requests}
    seen = set()
    for source in competing:
        seen.add(source.key)
        target = existing.get(source.key)
        if target is None:
            target = ConflictRequest(
                request_type=source.request_type,
                request_id=source.request_id,
                status=ConflictRequestStatus.PENDING,
            )
            conflict.requests.append(target)
        _apply_competing(target, source)

    for key, request in existing.items():
        if key not in seen and request.status == ConflictRequestStatus.PENDING:
            conflict.requests.remove(request)

    conflict.part_name = part.name
    conflict.part_number = part.part_number
    conflict.available_stock = available_stock
    conflict.total_requested = total_requested
    conflict.shortfall = max(0, total_requested - available_stock)

    if not conflict.pending_requests():
        conflict.mark_resolved(None, WITHDRAWN_NOTE, status=ConflictStatus.AUTO_RESOLVED)
        await db.commit()
        logger.info(f"Conflict {conflict.conflict_number} closed: no request left pending")
        return None

    _refresh_allocation(conflict, available_stock)

    reception_ids = [
        s.request_id for s in competing if s.request_type == ConflictRequestType.SERVICE_RECEPTION
    ]
    for reception_id in reception_ids:
        reception = await db.get(ServiceReception, reception_id)
        if reception:
            reception.has_conflict = True

    await db.commit()

    logger.info(
        f"{'Created' if created else 'Updated'} conflict {conflict.conflict_number} for "
        f"{part.part_number}: requested {total_requested}, available {available_stock}"
    )
    return conflict


async def detect_part_conflicts(db: AsyncSession, part_id: int) -> Optional[PartConflict]:
    """
    Detect (or refresh) the pending conflict of a part.

    Returns None when no pending conflict exists and available stock covers
    every request. An existing pending conflict is updated in place even
    when demand now fits the stock, so late requests queue behind the ones
    already waiting: requests already present keep their decision, new
    requests are added as pending, and pending requests that no longer
    exist are dropped. A conflict left without pending requests is closed
    as auto_resolved and None is returned.

    Transient write conflicts (lock timeouts, a concurrent insert of the same
    conflict number) are retried with exponential backoff.
    """

    async def rollback(_error):
        await db.rollback()

    return await with_retry(
        lambda: _detect_once(db, part_id),
        max_retries=3,
        backoff_factor=2.0,
        initial_delay=0.05,
        operation_name=f"Conflict detection for part {part_id}",
        retry_on=(OperationalError, IntegrityError),
        on_retry=rollback,
    )


async def detect_all_conflicts(db: AsyncSession) -> List[PartConflict]:
    """
    Run detection for every active part that has stock on hand.

    A part whose detection keeps failing is logged and skipped; the scan
    carries on with the remaining parts.
    """
    result = await db.execute(
        select(Part.id).where(Part.is_active.is_(True), Part.current_stock > 0).order_by(Part.id)
    )
    part_ids = list(result.scalars().all())

    conflicts = []
    failed = []
    for part_id in part_ids:
        try:
            conflict = await detect_part_conflicts(db, part_id)
        except RetryError as e:
            logger.error(f"Skipping part {part_id} in conflict scan: {e}")
            await db.rollback()
            failed.append(part_id)
            continue
        if conflict:
            conflicts.append(conflict)

    logger.info(
        f"Conflict scan over {len(part_ids)} parts found {len(conflicts)} conflict(s)"
        + (f", {len(failed)} part(s) failed: {failed}" if failed else "")
    )
    return conflicts


# ============================================================================
# Effects on the underlying requests
# ============================================================================


async def _underlying_decision(
    db: AsyncSession, request: ConflictRequest
) -> Optional[ConflictRequestStatus]:
    """Decision already taken on the reception / part request, None while it is open."""
    if request.request_type == ConflictRequestType.SERVICE_RECEPTION:
        reception = await db.get(ServiceReception, request.request_id)
        if reception is None or reception.status == ReceptionStatus.REJECTED:
            return ConflictRequestStatus.REJECTED
        return None

    part_request = await db.get(PartRequest, request.request_id)
    if part_request is None:
        return ConflictRequestStatus.REJECTED
    if part_request.status == PartRequestStatus.APPROVED:
        return ConflictRequestStatus.APPROVED
    if part_request.status != PartRequestStatus.PENDING:
        return ConflictRequestStatus.REJECTED
    return None


async def _ensure_underlying_open(db: AsyncSession, request: ConflictRequest) -> None:
    decided = await _underlying_decision(db, request)
    if decided is not None:
        raise ServiceError(
            f"{request.request_type.value} {request.request_id} was already {decided.value} "
            "outside this conflict",
            "REQUEST_NOT_PENDING",
        )


async def pending_conflict_requests_for(
    db: AsyncSession, request_type: ConflictRequestType, request_id: int
) -> List[ConflictRequest]:
    """Pending entries of a reception or part request inside pending conflicts."""
    result = await db.execute(
        select(ConflictRequest)
        .join(PartConflict, ConflictRequest.conflict_id == PartConflict.id)
        .where(
            ConflictRequest.request_type == request_type,
            ConflictRequest.request_id == request_id,
            ConflictRequest.status == ConflictRequestStatus.PENDING,
            PartConflict.status == ConflictStatus.PENDING,
        )
        .order_by(ConflictRequest.id)
    )
    return list(result.scalars().all())


async def settle_conflict_requests(
    db: AsyncSession,
    request_type: ConflictRequestType,
    request_id: int,
    status: ConflictRequestStatus,
    actor_id: Optional[int],
    notes: Optional[str] = None,
) -> List[PartConflict]:
    """
    Record a decision taken outside the conflict workflow on its entries.

    Conflicts left without pending requests are resolved. Does not commit.
    Returns the conflicts that were touched.
    """
    touched = []
    for request in await pending_conflict_requests_for(db, request_type, request_id):
        request.status = status
        request.resolution_notes = notes or SETTLED_OUTSIDE_NOTE
        conflict = await db.get(PartConflict, request.conflict_id)
        if conflict is None:
            continue
        if not conflict.pending_requests():
            conflict.mark_resolved(actor_id, notes or SETTLED_OUTSIDE_NOTE)
        touched.append(conflict)
    return touched


async def _approve_underlying(
    db: AsyncSession,
    request: ConflictRequest,
    part: Part,
    actor_id: Optional[int],
    notes: Optional[str],
) -> None:
    """Mark the reception line / part request item approved and take the stock."""
    await _ensure_underlying_open(db, request)
    consume_stock(part, request.requested_quantity)
    now = utcnow()

    if request.request_type == ConflictRequestType.SERVICE_RECEPTION:
        reception = await db.get(ServiceReception, request.request_id)
        if not reception:
            return
        for line in reception.parts:
            if line.part_id == part.id:
                line.is_approved = True
                line.is_available = True
                line.shortfall = 0

        if all(line.is_approved for line in reception.parts):
            reception.status = ReceptionStatus.APPROVED
            reception.staff_review_status = StaffReviewStatus.APPROVED
            reception.reviewed_by = actor_id
            reception.reviewed_at = now
            reception.review_notes = notes or reception.review_notes
            reception.has_conflict = False
            reception.add_history("parts_approved", actor_id, notes)

            appointment = await db.get(Appointment, reception.appointment_id)
            if appointment and appointment.status in RECEPTION_APPROVABLE_STATUSES:
                apply_status(
                    appointment,
                    AppointmentStatus.RECEPTION_APPROVED,
                    changed_by=actor_id,
                    reason="All requested parts approved",
                    notes=notes,
                )
        return

    part_request = await db.get(PartRequest, request.request_id)
    if not part_request:
        return
    for item in part_request.items:
        if item.part_id == part.id:
            item.is_approved = True

    if all(item.is_approved for item in part_request.items):
        part_request.status = PartRequestStatus.APPROVED
        part_request.reviewed_by = actor_id
        part_request.reviewed_at = now
        part_request.review_notes = notes

        appointment = await db.get(Appointment, part_request.appointment_id)
        if appointment and appointment.status in PART_REQUEST_RESUMABLE_STATUSES:
            apply_status(
                appointment,
                AppointmentStatus.IN_PROGRESS,
                changed_by=actor_id,
                reason="Requested parts approved",
                notes=notes,
            )


async def _reject_underlying(
    db: AsyncSession, request: ConflictRequest, actor_id: int, reason: str
) -> None:
    """Reject the reception / part request and put the appointment on hold."""
    await _ensure_underlying_open(db, request)
    now = utcnow()

    if request.request_type == ConflictRequestType.SERVICE_RECEPTION:
        reception = await db.get(ServiceReception, request.request_id)
        if reception:
            reception.status = ReceptionStatus.REJECTED
            reception.staff_review_status = StaffReviewStatus.REJECTED
            reception.reviewed_by = actor_id
            reception.reviewed_at = now
            reception.review_notes = reason
            reception.add_history("staff_rejected", actor_id, reason)
    else:
        part_request = await db.get(PartRequest, request.request_id)
        if part_request:
            part_request.status = PartRequestStatus.REJECTED
            part_request.reviewed_by = actor_id
            part_request.reviewed_at = now
            part_request.review_notes = reason

    appointment = await db.get(Appointment, request.appointment_id)
    if appointment:
        appointment.staff_rejection_reason = reason
        apply_status(
            appointment,
            AppointmentStatus.PARTS_INSUFFICIENT,
            changed_by=actor_id,
            reason="Part request rejected due to conflict",
            notes=reason,
        )


# ============================================================================
# Queries
# ============================================================================


async def get_conflict(db: AsyncSession, conflict_id: int) -> PartConflict:
    result = await db.execute(
        select(PartConflict)
        .where(PartConflict.id == conflict_id)
        .execution_options(populate_existing=True)
    )
    conflict = result.scalar_one_or_none()
    if not conflict:
        raise NotFoundError("Conflict not found", "CONFLICT_NOT_FOUND")
    return conflict


async def list_conflicts(
    db: AsyncSession, status: Optional[str] = None, part_id: Optional[int] = None
) -> List[PartConflict]:
    stmt = select(PartConflict).order_by(PartConflict.created_at.desc(), PartConflict.id.desc())
    if status:
        stmt = stmt.where(PartConflict.status == ConflictStatus(status))
    if part_id:
        stmt = stmt.where(PartConflict.part_id == part_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_conflict_stats(db: AsyncSession) -> Dict[str, Any]:
    """Counts per status plus the five busiest pending conflicts."""
    rows = await db.execute(
        select(PartConflict.status, func.count(PartConflict.id)).group_by(PartConflict.status)
    )
    counts = {status.value: 0 for status in ConflictStatus}
    for status, count in rows.all():
        counts[getattr(status, "value", status)] = count

    pending = await list_conflicts(db, status=ConflictStatus.PENDING.value)
    top = sorted(pending, key=lambda c: (-len(c.requests), -c.shortfall, c.id))[:5]

    return {
        "pending": counts[ConflictStatus.PENDING.value],
        "resolved": counts[ConflictStatus.RESOLVED.value],
        "auto_resolved": counts[ConflictStatus.AUTO_RESOLVED.value],
        "total": sum(counts.values()),
        "top_conflicts": top,
    }


def _find_request(conflict: PartConflict, conflict_request_id: int) -> ConflictRequest:
    for request in conflict.requests:
        if request.id == conflict_request_id:
            return request
    raise NotFoundError("Request not found in conflict", "CONFLICT_REQUEST_NOT_FOUND")


def _ensure_pending(conflict: PartConflict) -> None:
    if conflict.status != ConflictStatus.PENDING:
        raise ServiceError(
            f"Conflict is already {conflict.status.value}", "CONFLICT_NOT_PENDING"
        )


def get_suggested_resolution(conflict: PartConflict) -> Dict[str, Any]:
    """
    Suggest which pending requests to approve.

    Requests are ranked by priority (highest first) then scheduled date, and
    picked greedily while they fit the conflict's available stock.
    """
    _ensure_pending(conflict)

    ranked = sorted(
        conflict.requests,
        key=lambda r: (-priority_weight(r.priority, default=0), r.scheduled_date or date.max),
    )
    pending = [r for r in ranked if r.status == ConflictRequestStatus.PENDING]

    suggested = []
    for request in allocate(pending, conflict.available_stock):
        scheduled = request.scheduled_date.strftime("%d/%m/%Y") if request.scheduled_date else "N/A"
        suggested.append(
            {
                "conflict_request_id": request.id,
                "request_id": request.request_id,
                "request_type": request.request_type.value,
                "appointment_number": request.appointment_number,
                "priority": request.priority,
                "scheduled_date": request.scheduled_date.isoformat() if request.scheduled_date else None,
                "requested_quantity": request.requested_quantity,
                "reasoning": f"Priority: {request.priority.upper()}, Scheduled: {scheduled}",
            }
        )

    return {
        "suggested": suggested,
        "available_stock": conflict.available_stock,
        "total_requested": conflict.total_requested,
        "total_suggested_quantity": sum(s["requested_quantity"] for s in suggested),
    }


# ============================================================================
# Staff decisions
# ============================================================================


async def approve_conflict_request(
    db: AsyncSession,
    conflict_id: int,
    conflict_request_id: int,
    actor: User,
    notes: Optional[str] = None,
) -> PartConflict:
    """
    Approve one request of a pending conflict.

    Takes the stock immediately. Once every line of the reception is
    approved, the reception and appointment move to approved. The conflict
    is resolved when no request is left pending.

    Raises:
        ServiceError: conflict or request not pending
        InsufficientStockError: request exceeds available stock
    """
    conflict = await get_conflict(db, conflict_id)
    _ensure_pending(conflict)

    request = _find_request(conflict, conflict_request_id)
    if request.status != ConflictRequestStatus.PENDING:
        raise ServiceError(f"Request is already {request.status.value}", "REQUEST_NOT_PENDING")
    await _ensure_underlying_open(db, request)

    part = await lock_part(db, conflict.part_id)
    if request.requested_quantity > part.available_stock:
        raise InsufficientStockError(
            f"Insufficient stock. Need {request.requested_quantity}, "
            f"available {part.available_stock}"
        )

    await _approve_underlying(db, request, part, actor.id, notes)
    request.status = ConflictRequestStatus.APPROVED
    request.auto_approved = False
    request.resolution_notes = notes

    conflict.available_stock = part.available_stock
    if not conflict.pending_requests():
        conflict.mark_resolved(actor.id, notes)
    else:
        _refresh_allocation(conflict, part.available_stock)

    await db.commit()
    await invalidate_part_cache(part.id)

    logger.info(
        f"Conflict {conflict.conflict_number}: request {request.id} approved by user {actor.id}"
    )
    return await get_conflict(db, conflict_id)


async def reject_conflict_request(
    db: AsyncSession,
    conflict_id: int,
    conflict_request_id: int,
    actor: User,
    reason: Optional[str],
) -> PartConflict:
    """Reject one request; its appointment goes to parts_insufficient."""
    if not reason or not reason.strip():
        raise ServiceError("Rejection reason is required", "REASON_REQUIRED")

    conflict = await get_conflict(db, conflict_id)
    _ensure_pending(conflict)

    request = _find_request(conflict, conflict_request_id)
    if request.status != ConflictRequestStatus.PENDING:
        raise ServiceError(f"Request is already {request.status.value}", "REQUEST_NOT_PENDING")
    await _ensure_underlying_open(db, request)

    await _reject_underlying(db, request, actor.id, reason)
    request.status = ConflictRequestStatus.REJECTED
    request.resolution_notes = reason

    if not conflict.pending_requests():
        conflict.mark_resolved(actor.id, reason)

    await db.commit()

    logger.info(
        f"Conflict {conflict.conflict_number}: request {request.id} rejected by user {actor.id}"
    )
    return await get_conflict(db, conflict_id)


async def resolve_conflict(
    db: AsyncSession,
    conflict_id: int,
    actor: User,
    approved_request_ids: Iterable[int] = (),
    rejected_request_ids: Iterable[int] = (),
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Bulk decision on a pending conflict.

    Approved ids are granted in allocation order while stock lasts; the rest
    of them are deferred. Rejected ids are rejected. Every other pending
    request is deferred. The conflict always ends resolved.

    Returns:
        {"conflict": PartConflict, "approved_count": int,
         "rejected_count": int, "total_approved_quantity": int}
    """
    conflict = await get_conflict(db, conflict_id)
    _ensure_pending(conflict)

    approved_ids = set(approved_request_ids or ())
    rejected_ids = set(rejected_request_ids or ()) - approved_ids
    part = await lock_part(db, conflict.part_id)

    approved_count = 0
    rejected_count = 0
    total_approved_quantity = 0

    for request in prioritize_requests(conflict.pending_requests()):
        decided = await _underlying_decision(db, request)
        if decided is not None:
            request.status = decided
            request.resolution_notes = SETTLED_OUTSIDE_NOTE
        elif request.id in approved_ids:
            if request.requested_quantity <= part.available_stock:
                await _approve_underlying(db, request, part, actor.id, notes)
                request.status = ConflictRequestStatus.APPROVED
                request.auto_approved = False
                request.resolution_notes = notes
                approved_count += 1
                total_approved_quantity += request.requested_quantity
            else:
                request.status = ConflictRequestStatus.DEFERRED
                request.resolution_notes = DEFERRED_NO_STOCK_NOTE
        elif request.id in rejected_ids:
            reason = notes or REJECTED_DEFAULT_NOTE
            await _reject_underlying(db, request, actor.id, reason)
            request.status = ConflictRequestStatus.REJECTED
            request.resolution_notes = reason
            rejected_count += 1
        else:
            request.status = ConflictRequestStatus.DEFERRED
            request.resolution_notes = notes or DEFERRED_DEFAULT_NOTE

    conflict.available_stock = part.available_stock
    conflict.mark_resolved(actor.id, notes)
    await db.commit()
    await invalidate_part_cache(part.id)

    logger.info(
        f"Conflict {conflict.conflict_number} resolved by user {actor.id}: "
        f"{approved_count} approved ({total_approved_quantity} units), {rejected_count} rejected"
    )
    return {
        "conflict": await get_conflict(db, conflict_id),
        "approved_count": approved_count,
        "rejected_count": rejected_count,
        "total_approved_quantity": total_approved_quantity,
    }


async def auto_resolve_conflicts(db: AsyncSession, part_id: int) -> List[PartConflict]:
    """
    Settle pending conflicts of a part after its stock grew.

    Pending requests are approved in allocation order while stock suffices.
    A conflict whose requests are all approved or rejected becomes
    auto_resolved. Returns the conflicts that changed.
    """
    result = await db.execute(
        select(PartConflict.id)
        .where(PartConflict.part_id == part_id, PartConflict.status == ConflictStatus.PENDING)
        .order_by(PartConflict.id)
    )
    conflict_ids = list(result.scalars().all())
    if not conflict_ids:
        return []

    part = await lock_part(db, part_id)
    changed = []

    for conflict_id in conflict_ids:
        conflict = await get_conflict(db, conflict_id)
        candidates = [r for r in conflict.pending_requests() if not r.auto_approved]
        touched = False

        for request in prioritize_requests(candidates):
            decided = await _underlying_decision(db, request)
            if decided is not None:
                request.status = decided
                request.resolution_notes = SETTLED_OUTSIDE_NOTE
                touched = True
            elif request.requested_quantity <= part.available_stock:
                await _approve_underlying(db, request, part, None, AUTO_APPROVED_NOTE)
                request.status = ConflictRequestStatus.APPROVED
                request.auto_approved = True
                request.resolution_notes = AUTO_APPROVED_NOTE
                touched = True

        conflict.available_stock = part.available_stock
        settled = all(
            r.status in (ConflictRequestStatus.APPROVED, ConflictRequestStatus.REJECTED)
            for r in conflict.requests
        )
        if settled:
            conflict.mark_resolved(None, AUTO_APPROVED_NOTE, status=ConflictStatus.AUTO_RESOLVED)
            touched = True
        elif touched:
            _refresh_allocation(conflict, part.available_stock)

        if touched:
            changed.append(conflict)

    await db.commit()
    await invalidate_part_cache(part_id)

    if changed:
        logger.info(f"Auto-resolved {len(changed)} conflict(s) for part {part_id}")
    return changed


async def check_reception_conflicts(db: AsyncSession, reception_id: int) -> Dict[str, Any]:
    """Run detection for every unapproved part of a reception."""
    reception = await db.get(ServiceReception, reception_id)
    if not reception:
        raise NotFoundError("Service reception not found", "RECEPTION_NOT_FOUND")

    part_ids = sorted({line.part_id for line in reception.parts if not line.is_approved})
    conflicts = []
    for part_id in part_ids:
        conflict = await detect_part_conflicts(db, part_id)
        if conflict:
            conflicts.append(conflict)

    return {
        "has_conflict": bool(conflicts),
        "conflict_count": len(conflicts),
        "conflicts": conflicts,
    }
