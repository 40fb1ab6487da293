"""Parts catalog and stock movements."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from evcenter.models import Appointment, Part, PartReservation, User
from evcenter.models.appointment import AppointmentStatus
from evcenter.models.base import utcnow
from evcenter.models.part import PartCategory, ReservationStatus
from evcenter.services.errors import InsufficientStockError, NotFoundError, ServiceError
from evcenter.services.redis_client import cache_part, get_cached_part, invalidate_part_cache
from evcenter.services.serializers import serialize_part
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

CLOSED_APPOINTMENT_STATUSES = (
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
    AppointmentStatus.INVOICED,
)


# ============================================================================
# Catalog
# ============================================================================


async def list_parts(
    db: AsyncSession,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    search: Optional[str] = None,
    low_stock: bool = False,
    include_inactive: bool = False,
) -> List[Part]:
    """
    List parts with optional filters.

    Args:
        db: Database session
        category: Exact category match
        brand: Case-insensitive brand match
        search: Partial match on name or part number
        low_stock: Only parts at or below their reorder point
        include_inactive: Include discontinued parts

    Returns:
        Parts ordered by name
    """
    stmt = select(Part).order_by(Part.name)
    if not include_inactive:
        stmt = stmt.where(Part.is_active.is_(True))
    if category:
        stmt = stmt.where(Part.category == PartCategory(category))
    if brand:
        stmt = stmt.where(Part.brand.ilike(brand))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Part.name.ilike(pattern), Part.part_number.ilike(pattern)))
    if low_stock:
        stmt = stmt.where(Part.current_stock <= Part.reorder_point)

    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_part(db: AsyncSession, part_id: int) -> Part:
    part = await db.get(Part, part_id)
    if not part:
        raise NotFoundError(f"Part {part_id} not found", "PART_NOT_FOUND")
    return part


async def get_part_details(db: AsyncSession, part_id: int) -> Dict[str, Any]:
    """Serialized part, cache-first."""
    cached = await get_cached_part(part_id)
    if cached:
        return cached

    part = await get_part(db, part_id)
    data = serialize_part(part)
    await cache_part(part_id, dict(data))
    return data


async def lock_part(db: AsyncSession, part_id: int) -> Part:
    """Load a part row for update, refreshing any stale identity-map copy."""
    stmt = (
        select(Part)
        .where(Part.id == part_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    part = (await db.execute(stmt)).scalar_one_or_none()
    if not part:
        raise NotFoundError(f"Part {part_id} not found", "PART_NOT_FOUND")
    return part


async def create_part(db: AsyncSession, data: Dict[str, Any]) -> Part:
    part_number = data["part_number"].strip().upper()
    existing = await db.execute(select(Part).where(Part.part_number == part_number))
    if existing.scalar_one_or_none():
        raise ServiceError(f"Part number {part_number} already exists", "PART_NUMBER_EXISTS")

    part = Part(
        part_number=part_number,
        name=data["name"],
        description=data.get("description"),
        category=PartCategory(data["category"]),
        brand=data.get("brand"),
        cost_price=data.get("cost_price") or 0,
        retail_price=data.get("retail_price") or 0,
        current_stock=data.get("current_stock") or 0,
        min_stock_level=data.get("min_stock_level", 5),
        max_stock_level=data.get("max_stock_level", 100),
        reorder_point=data.get("reorder_point", 10),
        compatible_makes=data.get("compatible_makes") or [],
        warranty_months=data.get("warranty_months", 12),
    )
    db.add(part)
    await db.commit()

    logger.info(f"Created part {part.part_number} with stock {part.current_stock}")
    return part


async def update_part_pricing(
    db: AsyncSession, part_id: int, cost_price: Optional[int], retail_price: Optional[int]
) -> Part:
    part = await get_part(db, part_id)
    if cost_price is not None:
        part.cost_price = cost_price
    if retail_price is not None:
        part.retail_price = retail_price
    await db.commit()
    await invalidate_part_cache(part_id)
    return part


async def low_stock_report(db: AsyncSession) -> List[Dict[str, Any]]:
    parts = await list_parts(db, low_stock=True)
    return [
        {
            "part": serialize_part(part),
            "suggested_order_quantity": max(0, (part.max_stock_level or 0) - part.current_stock),
        }
        for part in parts
    ]


# ============================================================================
# Stock movements
# ============================================================================


def consume_stock(part: Part, quantity: int) -> Part:
    """Take ``quantity`` out of the unreserved stock of ``part``.

    Raises:
        InsufficientStockError: fewer than ``quantity`` units are available
    """
    if quantity <= 0:
        raise ServiceError("Quantity must be positive", "VALIDATION_ERROR")
    if part.available_stock < quantity:
        raise InsufficientStockError(
            f"Insufficient stock. Need {quantity}, available {part.available_stock}"
        )

    part.current_stock -= quantity
    part.used_stock = (part.used_stock or 0) + quantity
    logger.info(
        f"Consumed {quantity} x {part.part_number}; "
        f"stock now {part.current_stock} (reserved {part.reserved_stock})"
    )
    return part


async def restock(db: AsyncSession, part_id: int, quantity: int, actor: User) -> Dict[str, Any]:
    """
    Add stock and let pending conflicts for the part settle.

    Returns:
        {"part": Part, "auto_resolved": [PartConflict, ...]}
    """
    from evcenter.services.part_conflict_service import auto_resolve_conflicts

    if quantity <= 0:
        raise ServiceError("Restock quantity must be positive", "VALIDATION_ERROR")

    part = await lock_part(db, part_id)
    part.current_stock += quantity
    part.last_restocked_at = utcnow()
    await db.commit()
    await invalidate_part_cache(part_id)
    logger.info(f"Restocked {part.part_number} +{quantity} by user {actor.id}")

    resolved = await auto_resolve_conflicts(db, part_id)
    part = await get_part(db, part_id)
    return {"part": part, "auto_resolved": resolved}


async def _get_open_appointment(db: AsyncSession, appointment_id: int) -> Appointment:
    appointment = await db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError(f"Appointment {appointment_id} not found", "APPOINTMENT_NOT_FOUND")
    if appointment.status in CLOSED_APPOINTMENT_STATUSES:
        raise ServiceError(
            f"Appointment {appointment.appointment_number} is {appointment.status.value}",
            "APPOINTMENT_CLOSED",
        )
    return appointment


async def reserve_parts(
    db: AsyncSession, appointment_id: int, items: Iterable[Dict[str, int]], actor: User
) -> List[PartReservation]:
    """
    Reserve parts for an appointment.

    All-or-nothing: every item is checked against available stock before
    any reservation is written.

    Args:
        items: [{"part_id": int, "quantity": int}, ...]
    """
    appointment = await _get_open_appointment(db, appointment_id)
    items = list(items)
    if not items:
        raise ServiceError("No parts to reserve", "VALIDATION_ERROR")

    locked = {}
    for item in items:
        quantity = item["quantity"]
        if quantity <= 0:
            raise ServiceError("Quantity must be positive", "VALIDATION_ERROR")
        part = locked.get(item["part_id"]) or await lock_part(db, item["part_id"])
        locked[part.id] = part
        already = sum(i["quantity"] for i in items if i["part_id"] == part.id)
        if part.available_stock < already:
            raise InsufficientStockError(
                f"Insufficient stock for {part.part_number}. "
                f"Need {already}, available {part.available_stock}"
            )

    reservations = []
    for item in items:
        part = locked[item["part_id"]]
        part.reserved_stock += item["quantity"]
        reservation = PartReservation(
            part_id=part.id,
            appointment_id=appointment.id,
            quantity=item["quantity"],
            reserved_by=actor.id,
        )
        db.add(reservation)
        reservations.append(reservation)

    await db.commit()
    for part_id in locked:
        await invalidate_part_cache(part_id)

    logger.info(
        f"Reserved {len(reservations)} part line(s) for appointment {appointment.appointment_number}"
    )
    return reservations


async def use_reserved_parts(db: AsyncSession, appointment_id: int, actor: User) -> List[PartReservation]:
    """Convert an appointment's active reservations into consumed stock."""
    appointment = await _get_open_appointment(db, appointment_id)

    result = await db.execute(
        select(PartReservation).where(
            PartReservation.appointment_id == appointment.id,
            PartReservation.status == ReservationStatus.RESERVED,
        )
    )
    reservations = list(result.scalars().all())
    if not reservations:
        raise ServiceError("No reserved parts for this appointment", "NO_RESERVATIONS")

    for reservation in reservations:
        part = await lock_part(db, reservation.part_id)
        part.current_stock -= reservation.quantity
        part.reserved_stock -= reservation.quantity
        part.used_stock += reservation.quantity
        reservation.quantity_used = reservation.quantity
        reservation.status = ReservationStatus.USED

    await db.commit()
    for reservation in reservations:
        await invalidate_part_cache(reservation.part_id)

    logger.info(
        f"User {actor.id} used {len(reservations)} reservation(s) "
        f"for appointment {appointment.appointment_number}"
    )
    return reservations


async def list_appointment_parts(db: AsyncSession, appointment_id: int) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(PartReservation, Part)
        .join(Part, Part.id == PartReservation.part_id)
        .where(PartReservation.appointment_id == appointment_id)
        .order_by(PartReservation.id)
    )
    return [
        {
            "reservation_id": reservation.id,
            "part_id": part.id,
            "part_number": part.part_number,
            "part_name": part.name,
            "quantity": reservation.quantity,
            "quantity_used": reservation.quantity_used,
            "status": reservation.status.value,
            "unit_price": part.retail_price,
        }
        for reservation, part in result.all()
    ]
