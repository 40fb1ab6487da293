"""Service reception endpoints."""

from evcenter.models import User
from evcenter.routes.deps import get_current_user, require_roles, require_staff
from evcenter.schemas import ReceptionCreate, ReceptionReview
from evcenter.services import reception_service
from evcenter.services.database import get_db
from evcenter.services.serializers import serialize_many, serialize_reception
from evcenter.utils.responses import success
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()

REVIEW_MESSAGES = {
    "approved": "Service reception approved",
    "partially_approved": "Service reception partially approved",
    "rejected": "Service reception rejected",
    "needs_modification": "Service reception returned for modification",
}


@router.get("/pending-review")
async def pending_review(_: User = Depends(require_staff), db: AsyncSession = Depends(get_db)):
    receptions = await reception_service.list_pending_review(db)
    return success(serialize_many(receptions, serialize_reception), count=len(receptions))


@router.get("/appointment/{appointment_id}")
async def reception_for_appointment(
    appointment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    reception = await reception_service.get_reception_by_appointment(db, appointment_id, user)
    return success(serialize_reception(reception))


@router.post("/{appointment_id}", status_code=status.HTTP_201_CREATED)
async def create_reception(
    appointment_id: int,
    body: ReceptionCreate,
    user: User = Depends(require_roles("technician", "admin")),
    db: AsyncSession = Depends(get_db),
):
    reception = await reception_service.create_reception(db, appointment_id, user, body.model_dump())
    return success(serialize_reception(reception), "Service reception created")


@router.get("/{reception_id}")
async def get_reception(
    reception_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    reception = await reception_service.get_reception(db, reception_id, user)
    return success(serialize_reception(reception))


@router.put("/{reception_id}/submit")
async def submit_reception(
    reception_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    reception = await reception_service.submit_reception(db, reception_id, user)
    return success(serialize_reception(reception), "Service reception submitted for approval")


@router.put("/{reception_id}/review")
async def review_reception(
    reception_id: int,
    body: ReceptionReview,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    result = await reception_service.review_reception(
        db,
        reception_id,
        user,
        body.decision,
        notes=body.notes,
        approval_decision=body.approval_decision,
        services=[s.model_dump() for s in body.services] if body.services is not None else None,
        parts=[p.model_dump() for p in body.parts] if body.parts is not None else None,
        modification_reason=body.modification_reason,
    )
    message = REVIEW_MESSAGES[body.decision]
    if result["blocked_parts"]:
        message += "; waiting for parts"
    return success(
        {
            "reception": serialize_reception(result["reception"]),
            "decision": result["decision"],
            "appointment_status": result["appointment_status"],
            "blocked_parts": result["blocked_parts"],
            "changes": result["changes"],
        },
        message,
    )
