"""Additional part request endpoints."""

from typing import Optional

from evcenter.models import User
from evcenter.routes.deps import get_current_user, require_roles, require_staff
from evcenter.schemas import PartRequestCreate, PartRequestReview
from evcenter.services import part_request_service
from evcenter.services.database import get_db
from evcenter.services.serializers import serialize_conflict, serialize_many, serialize_part_request
from evcenter.utils.responses import success
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_part_request(
    body: PartRequestCreate,
    user: User = Depends(require_roles("technician", "admin")),
    db: AsyncSession = Depends(get_db),
):
    result = await part_request_service.create_part_request(
        db, user, body.appointment_id, [item.model_dump() for item in body.items], body.reason
    )
    conflicts = result["conflicts"]
    message = "Part request submitted"
    if conflicts:
        message += f"; {len(conflicts)} part conflict(s) detected"
    return success(
        {
            "part_request": serialize_part_request(result["part_request"]),
            "conflicts": serialize_many(conflicts, serialize_conflict),
        },
        message,
    )


@router.get("/")
async def list_part_requests(
    status: Optional[str] = None,
    appointment_id: Optional[int] = None,
    user: User = Depends(require_roles("staff", "technician", "admin")),
    db: AsyncSession = Depends(get_db),
):
    requests = await part_request_service.list_part_requests(db, user, status, appointment_id)
    return success(serialize_many(requests, serialize_part_request), count=len(requests))


@router.get("/{request_id}")
async def get_part_request(
    request_id: int,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    part_request = await part_request_service.get_part_request(db, request_id)
    return success(serialize_part_request(part_request))


@router.put("/{request_id}/review")
async def review_part_request(
    request_id: int,
    body: PartRequestReview,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    part_request = await part_request_service.review_part_request(
        db, request_id, user, body.approved, body.notes
    )
    verdict = "approved" if body.approved else "rejected"
    return success(serialize_part_request(part_request), f"Part request {verdict}")
