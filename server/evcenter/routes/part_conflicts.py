"""Part conflict endpoints (staff and admin only)."""

from typing import Optional

from evcenter.models import User
from evcenter.routes.deps import require_staff
from evcenter.schemas import ApproveConflictRequest, RejectConflictRequest, ResolveConflict
from evcenter.services import part_conflict_service
from evcenter.services.database import get_db
from evcenter.services.serializers import serialize_conflict, serialize_many
from evcenter.utils.responses import success
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(dependencies=[Depends(require_staff)])


@router.get("/stats")
async def conflict_stats(db: AsyncSession = Depends(get_db)):
    stats = await part_conflict_service.get_conflict_stats(db)
    stats["top_conflicts"] = serialize_many(stats["top_conflicts"], serialize_conflict)
    return success(stats)


@router.post("/detect")
async def detect_conflicts(part_id: Optional[int] = None, db: AsyncSession = Depends(get_db)):
    """Detect conflicts for one part, or for every stocked part when none is given."""
    if part_id:
        conflict = await part_conflict_service.detect_part_conflicts(db, part_id)
        conflicts = [conflict] if conflict else []
    else:
        conflicts = await part_conflict_service.detect_all_conflicts(db)
    return success(
        serialize_many(conflicts, serialize_conflict),
        f"Detected {len(conflicts)} conflict(s)",
        count=len(conflicts),
    )


@router.get("/check-reception/{reception_id}")
async def check_reception(reception_id: int, db: AsyncSession = Depends(get_db)):
    result = await part_conflict_service.check_reception_conflicts(db, reception_id)
    result["conflicts"] = serialize_many(result["conflicts"], serialize_conflict)
    return success(result)


@router.get("/")
async def list_conflicts(
    status: Optional[str] = None,
    part_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    conflicts = await part_conflict_service.list_conflicts(db, status, part_id)
    return success(serialize_many(conflicts, serialize_conflict), count=len(conflicts))


@router.get("/{conflict_id}")
async def get_conflict(conflict_id: int, db: AsyncSession = Depends(get_db)):
    conflict = await part_conflict_service.get_conflict(db, conflict_id)
    return success(serialize_conflict(conflict))


@router.get("/{conflict_id}/suggestion")
async def get_suggestion(conflict_id: int, db: AsyncSession = Depends(get_db)):
    conflict = await part_conflict_service.get_conflict(db, conflict_id)
    return success(part_conflict_service.get_suggested_resolution(conflict))


@router.post("/{conflict_id}/approve-request")
async def approve_request(
    conflict_id: int,
    body: ApproveConflictRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    conflict = await part_conflict_service.approve_conflict_request(
        db, conflict_id, body.conflict_request_id, user, body.notes
    )
    return success(serialize_conflict(conflict), "Request approved")


@router.post("/{conflict_id}/reject-request")
async def reject_request(
    conflict_id: int,
    body: RejectConflictRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    conflict = await part_conflict_service.reject_conflict_request(
        db, conflict_id, body.conflict_request_id, user, body.reason
    )
    return success(serialize_conflict(conflict), "Request rejected")


@router.post("/{conflict_id}/resolve")
async def resolve(
    conflict_id: int,
    body: ResolveConflict,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    result = await part_conflict_service.resolve_conflict(
        db,
        conflict_id,
        user,
        approved_request_ids=body.approved_request_ids,
        rejected_request_ids=body.rejected_request_ids,
        notes=body.notes,
    )
    return success(
        {
            "conflict": serialize_conflict(result["conflict"]),
            "approved_count": result["approved_count"],
            "rejected_count": result["rejected_count"],
            "total_approved_quantity": result["total_approved_quantity"],
        },
        "Conflict resolved",
    )
