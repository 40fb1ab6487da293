"""Appointment booking and lifecycle endpoints."""

from datetime import date
from typing import Optional

from evcenter.models import User
from evcenter.routes.deps import get_current_user, require_roles, require_staff
from evcenter.schemas import (
    AppointmentCreate,
    AssignTechnician,
    CancelBody,
    CompleteBody,
    NotesBody,
    StatusChange,
)
from evcenter.services import appointment_service, inventory_service
from evcenter.services.database import get_db
from evcenter.services.serializers import serialize_appointment, serialize_many
from evcenter.utils.responses import success
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()

require_workshop = require_roles("staff", "technician", "admin")


@router.get("/")
async def list_appointments(
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    appointments = await appointment_service.list_appointments(db, user, status, date_from, date_to)
    return success(serialize_many(appointments, serialize_appointment), count=len(appointments))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    body: AppointmentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.create_appointment(db, user, body.model_dump())
    return success(serialize_appointment(appointment), "Appointment booked")


@router.get("/{appointment_id}")
async def get_appointment(
    appointment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.get_appointment(db, appointment_id, user)
    return success(serialize_appointment(appointment))


@router.put("/{appointment_id}/confirm")
async def confirm(
    appointment_id: int,
    body: Optional[NotesBody] = None,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    notes = body.notes if body else None
    appointment = await appointment_service.confirm_appointment(db, appointment_id, user, notes)
    return success(serialize_appointment(appointment), "Appointment confirmed")


@router.put("/{appointment_id}/assign-technician")
async def assign_technician(
    appointment_id: int,
    body: AssignTechnician,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.assign_technician(db, appointment_id, body.technician_id, user)
    return success(serialize_appointment(appointment), "Technician assigned")


@router.put("/{appointment_id}/arrive")
async def arrive(
    appointment_id: int,
    body: Optional[NotesBody] = None,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    notes = body.notes if body else None
    appointment = await appointment_service.record_arrival(db, appointment_id, user, notes)
    return success(serialize_appointment(appointment), "Customer arrival recorded")


@router.put("/{appointment_id}/start-work")
async def start_work(
    appointment_id: int,
    body: Optional[NotesBody] = None,
    user: User = Depends(require_workshop),
    db: AsyncSession = Depends(get_db),
):
    notes = body.notes if body else None
    appointment = await appointment_service.start_work(db, appointment_id, user, notes)
    return success(serialize_appointment(appointment), "Work started")


@router.put("/{appointment_id}/complete")
async def complete(
    appointment_id: int,
    body: Optional[CompleteBody] = None,
    user: User = Depends(require_workshop),
    db: AsyncSession = Depends(get_db),
):
    body = body or CompleteBody()
    appointment = await appointment_service.complete_appointment(
        db, appointment_id, user, body.notes, body.actual_service_time
    )
    return success(serialize_appointment(appointment), "Service completed")


@router.put("/{appointment_id}/cancel")
async def cancel(
    appointment_id: int,
    body: Optional[CancelBody] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await appointment_service.get_appointment(db, appointment_id, user)
    reason = body.reason if body else None
    appointment = await appointment_service.cancel_appointment(db, appointment_id, user, reason)
    return success(serialize_appointment(appointment), "Appointment cancelled")


@router.put("/{appointment_id}/status")
async def change_status(
    appointment_id: int,
    body: StatusChange,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await appointment_service.get_appointment(db, appointment_id, user)
    appointment = await appointment_service.change_status(
        db, appointment_id, user, body.status, body.reason, body.notes
    )
    return success(serialize_appointment(appointment), f"Status changed to {appointment.status.value}")


@router.get("/{appointment_id}/parts")
async def appointment_parts(
    appointment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await appointment_service.get_appointment(db, appointment_id, user)
    parts = await inventory_service.list_appointment_parts(db, appointment_id)
    return success(parts, count=len(parts))
