"""Parts inventory endpoints."""

from typing import Optional

from evcenter.models import User
from evcenter.routes.deps import get_current_user, require_roles, require_staff
from evcenter.schemas import PartCreate, ReserveParts, Restock, UseParts
from evcenter.services import inventory_service
from evcenter.services.database import get_db
from evcenter.services.serializers import serialize_conflict, serialize_many, serialize_part
from evcenter.utils.responses import success
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()

require_workshop = require_roles("staff", "technician", "admin")


def _reservation(reservation) -> dict:
    return {
        "id": reservation.id,
        "part_id": reservation.part_id,
        "appointment_id": reservation.appointment_id,
        "quantity": reservation.quantity,
        "quantity_used": reservation.quantity_used,
        "status": reservation.status.value,
    }


@router.get("/")
async def list_parts(
    category: Optional[str] = None,
    brand: Optional[str] = None,
    search: Optional[str] = None,
    low_stock: bool = False,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    parts = await inventory_service.list_parts(db, category, brand, search, low_stock)
    return success(serialize_many(parts, serialize_part), count=len(parts))


@router.get("/low-stock")
async def low_stock(_: User = Depends(require_staff), db: AsyncSession = Depends(get_db)):
    report = await inventory_service.low_stock_report(db)
    return success(report, count=len(report))


@router.post("/reserve", status_code=status.HTTP_201_CREATED)
async def reserve_parts(
    body: ReserveParts,
    user: User = Depends(require_workshop),
    db: AsyncSession = Depends(get_db),
):
    reservations = await inventory_service.reserve_parts(
        db, body.appointment_id, [item.model_dump() for item in body.items], user
    )
    return success([_reservation(r) for r in reservations], "Parts reserved", count=len(reservations))


@router.put("/use")
async def use_parts(
    body: UseParts,
    user: User = Depends(require_workshop),
    db: AsyncSession = Depends(get_db),
):
    reservations = await inventory_service.use_reserved_parts(db, body.appointment_id, user)
    return success([_reservation(r) for r in reservations], "Reserved parts used")


@router.get("/{part_id}")
async def get_part(part_id: int, _: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return success(await inventory_service.get_part_details(db, part_id))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_part(
    body: PartCreate,
    _: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    part = await inventory_service.create_part(db, body.model_dump())
    return success(serialize_part(part), "Part created")


@router.post("/{part_id}/restock")
async def restock(
    part_id: int,
    body: Restock,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    result = await inventory_service.restock(db, part_id, body.quantity, user)
    return success(
        {
            "part": serialize_part(result["part"]),
            "auto_resolved": serialize_many(result["auto_resolved"], serialize_conflict),
        },
        f"Restocked {body.quantity} unit(s)",
    )
