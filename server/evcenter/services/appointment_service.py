"""Appointment booking and lifecycle operations."""

import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

from evcenter.models import Appointment, PartReservation, ServiceReception, User, Vehicle
from evcenter.models.appointment import AppointmentPriority, AppointmentStatus
from evcenter.models.base import utcnow
from evcenter.models.part import ReservationStatus
from evcenter.models.service_reception import ReceptionStatus
from evcenter.models.user import UserRole
from evcenter.services.appointment_workflow import transition
from evcenter.services.catalog_service import get_service
from evcenter.services.errors import NotFoundError, PermissionDeniedError, ServiceError
from evcenter.services.inventory_service import lock_part
from evcenter.services.redis_client import invalidate_part_cache
from evcenter.utils.timezone import vietnam_now
from evcenter.utils.vietnamese import generate_appointment_number
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

MAX_NUMBER_ATTEMPTS = 10


async def _unique_appointment_number(db: AsyncSession) -> str:
    for _ in range(MAX_NUMBER_ATTEMPTS):
        number = generate_appointment_number(vietnam_now())
        taken = await db.scalar(
            select(Appointment.id).where(Appointment.appointment_number == number)
        )
        if not taken:
            return number
    raise ServiceError("Could not allocate an appointment number, try again", "NUMBER_EXHAUSTED")


def _as_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ServiceError(f"Invalid scheduled date: {value}", "VALIDATION_ERROR")


async def create_appointment(db: AsyncSession, actor: User, data: Dict[str, Any]) -> Appointment:
    """
    Book a service appointment.

    Customers book for their own vehicles. Staff may book on behalf of a
    customer by passing ``customer_id``.

    Args:
        db: Database session
        actor: Booking user
        data: vehicle_id, scheduled_date (YYYY-MM-DD), scheduled_time (HH:MM),
            optional service_id, priority, customer_notes, customer_id

    Returns:
        The new Appointment in ``pending``

    Raises:
        ServiceError: past date, malformed time, vehicle not owned by the customer
        NotFoundError: vehicle or service does not exist
    """
    role = UserRole(actor.role)
    if role == UserRole.TECHNICIAN:
        raise PermissionDeniedError("Technicians cannot book appointments")
    customer_id = actor.id if role == UserRole.CUSTOMER else data.get("customer_id")
    if not customer_id:
        raise ServiceError("customer_id is required", "VALIDATION_ERROR")

    vehicle = await db.get(Vehicle, data.get("vehicle_id"))
    if not vehicle:
        raise NotFoundError("Vehicle not found", "VEHICLE_NOT_FOUND")
    if vehicle.owner_id != customer_id:
        raise ServiceError("Vehicle does not belong to this customer", "VEHICLE_NOT_OWNED")

    scheduled_date = _as_date(data.get("scheduled_date"))
    if scheduled_date < vietnam_now().date():
        raise ServiceError("Cannot book an appointment in the past", "INVALID_DATE")

    scheduled_time = str(data.get("scheduled_time") or "")
    if not TIME_PATTERN.match(scheduled_time):
        raise ServiceError(f"Invalid scheduled time: {scheduled_time!r}", "VALIDATION_ERROR")

    service_id = data.get("service_id")
    if service_id:
        service = await get_service(db, service_id)
        if not service.is_active:
            raise ServiceError(f"Service {service.code} is not available", "SERVICE_INACTIVE")

    appointment = Appointment(
        appointment_number=await _unique_appointment_number(db),
        customer_id=customer_id,
        vehicle_id=vehicle.id,
        service_id=service_id,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        priority=AppointmentPriority(data.get("priority") or AppointmentPriority.NORMAL),
        status=AppointmentStatus.PENDING,
        customer_notes=data.get("customer_notes"),
        workflow_history=[],
    )
    db.add(appointment)
    await db.commit()

    logger.info(
        f"Booked appointment {appointment.appointment_number} for customer {customer_id} "
        f"on {scheduled_date} {scheduled_time}"
    )
    return appointment


async def list_appointments(
    db: AsyncSession,
    actor: User,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[Appointment]:
    """Customers see their own, technicians their assigned, staff everything."""
    stmt = select(Appointment).order_by(
        Appointment.scheduled_date.desc(), Appointment.scheduled_time.desc()
    )

    role = UserRole(actor.role)
    if role == UserRole.CUSTOMER:
        stmt = stmt.where(Appointment.customer_id == actor.id)
    elif role == UserRole.TECHNICIAN:
        stmt = stmt.where(Appointment.assigned_technician_id == actor.id)

    if status:
        stmt = stmt.where(Appointment.status == AppointmentStatus(status))
    if date_from:
        stmt = stmt.where(Appointment.scheduled_date >= date_from)
    if date_to:
        stmt = stmt.where(Appointment.scheduled_date <= date_to)

    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_appointment(db: AsyncSession, appointment_id: int, actor: Optional[User] = None) -> Appointment:
    appointment = await db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found", "APPOINTMENT_NOT_FOUND")

    if actor is not None:
        role = UserRole(actor.role)
        if role == UserRole.CUSTOMER and appointment.customer_id != actor.id:
            raise PermissionDeniedError("You can only access your own appointments")
        if role == UserRole.TECHNICIAN and appointment.assigned_technician_id != actor.id:
            raise PermissionDeniedError("Appointment is not assigned to you")
    return appointment


async def _transition_and_commit(
    db: AsyncSession,
    appointment_id: int,
    actor: User,
    new_status: AppointmentStatus,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> Appointment:
    appointment = await db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found", "APPOINTMENT_NOT_FOUND")
    transition(appointment, new_status, actor, reason=reason, notes=notes)
    await db.commit()
    return appointment


async def confirm_appointment(db: AsyncSession, appointment_id: int, actor: User, notes: Optional[str] = None) -> Appointment:
    return await _transition_and_commit(
        db, appointment_id, actor, AppointmentStatus.CONFIRMED, "Appointment confirmed", notes
    )


async def assign_technician(
    db: AsyncSession, appointment_id: int, technician_id: int, actor: User
) -> Appointment:
    appointment = await get_appointment(db, appointment_id)
    if appointment.status in (
        AppointmentStatus.COMPLETED,
        AppointmentStatus.INVOICED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    ):
        raise ServiceError(
            f"Cannot assign a technician to a {appointment.status.value} appointment",
            "INVALID_STATUS",
        )

    technician = await db.get(User, technician_id)
    if not technician or UserRole(technician.role) != UserRole.TECHNICIAN:
        raise ServiceError("Assignee must be a technician", "INVALID_TECHNICIAN")
    if not technician.is_active:
        raise ServiceError("Technician account is inactive", "INVALID_TECHNICIAN")

    appointment.assigned_technician_id = technician.id
    await db.commit()

    logger.info(
        f"Appointment {appointment.appointment_number} assigned to technician {technician.id} "
        f"by user {actor.id}"
    )
    return appointment


async def record_arrival(db: AsyncSession, appointment_id: int, actor: User, notes: Optional[str] = None) -> Appointment:
    return await _transition_and_commit(
        db, appointment_id, actor, AppointmentStatus.CUSTOMER_ARRIVED, "Customer arrived", notes
    )


async def start_work(db: AsyncSession, appointment_id: int, actor: User, notes: Optional[str] = None) -> Appointment:
    appointment = await _transition_and_commit(
        db, appointment_id, actor, AppointmentStatus.IN_PROGRESS, "Work started", notes
    )

    result = await db.execute(
        select(ServiceReception).where(ServiceReception.appointment_id == appointment.id)
    )
    reception = result.scalar_one_or_none()
    if reception and reception.status == ReceptionStatus.APPROVED:
        reception.status = ReceptionStatus.IN_SERVICE
        reception.add_history(ReceptionStatus.IN_SERVICE.value, actor.id, notes)
        await db.commit()
    return appointment


async def complete_appointment(
    db: AsyncSession,
    appointment_id: int,
    actor: User,
    notes: Optional[str] = None,
    actual_service_time: Optional[int] = None,
) -> Appointment:
    """Finish the work: recommended services done, vehicle service date stamped."""
    appointment = await db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found", "APPOINTMENT_NOT_FOUND")
    transition(appointment, AppointmentStatus.COMPLETED, actor, reason="Service completed", notes=notes)

    result = await db.execute(
        select(ServiceReception).where(ServiceReception.appointment_id == appointment.id)
    )
    reception = result.scalar_one_or_none()
    if reception:
        for line in reception.services:
            if line.customer_approved:
                line.is_completed = True
        if actual_service_time:
            reception.actual_service_time = actual_service_time
        reception.status = ReceptionStatus.COMPLETED
        reception.add_history(ReceptionStatus.COMPLETED.value, actor.id, notes)

    vehicle = await db.get(Vehicle, appointment.vehicle_id)
    if vehicle:
        vehicle.last_service_date = utcnow().date()

    await db.commit()
    return appointment


async def _release_reservations(db: AsyncSession, appointment: Appointment) -> int:
    result = await db.execute(
        select(PartReservation).where(
            PartReservation.appointment_id == appointment.id,
            PartReservation.status == ReservationStatus.RESERVED,
        )
    )
    reservations = list(result.scalars().all())
    for reservation in reservations:
        part = await lock_part(db, reservation.part_id)
        part.reserved_stock = max(0, part.reserved_stock - reservation.quantity)
        reservation.status = ReservationStatus.CANCELLED
    return len(reservations)


async def cancel_appointment(
    db: AsyncSession, appointment_id: int, actor: User, reason: Optional[str] = None
) -> Appointment:
    """Cancel and hand back any parts still reserved for the appointment."""
    appointment = await db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found", "APPOINTMENT_NOT_FOUND")

    transition(appointment, AppointmentStatus.CANCELLED, actor, reason=reason or "Cancelled")
    appointment.cancellation_reason = reason
    released = await _release_reservations(db, appointment)
    await db.commit()

    if released:
        result = await db.execute(
            select(PartReservation.part_id).where(PartReservation.appointment_id == appointment.id)
        )
        for part_id in set(result.scalars().all()):
            await invalidate_part_cache(part_id)
        logger.info(
            f"Released {released} reservation(s) of cancelled appointment "
            f"{appointment.appointment_number}"
        )
    return appointment


async def change_status(
    db: AsyncSession,
    appointment_id: int,
    actor: User,
    status: str,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> Appointment:
    """Generic checked status change; cancellations also release reservations."""
    if status == AppointmentStatus.CANCELLED.value:
        return await cancel_appointment(db, appointment_id, actor, reason)
    return await _transition_and_commit(db, appointment_id, actor, status, reason, notes)
