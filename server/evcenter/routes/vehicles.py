"""Vehicle endpoints."""

from typing import Optional

from evcenter.models import User
from evcenter.routes.deps import get_current_user
from evcenter.schemas import MileageUpdate, VehicleCreate
from evcenter.services import customer_service
from evcenter.services.database import get_db
from evcenter.services.serializers import serialize_many, serialize_vehicle
from evcenter.utils.responses import success
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()


@router.get("/")
async def list_vehicles(
    owner_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vehicles = await customer_service.list_vehicles(db, user, owner_id)
    return success(serialize_many(vehicles, serialize_vehicle), count=len(vehicles))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_vehicle(
    body: VehicleCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vehicle = await customer_service.create_vehicle(db, user, body.model_dump())
    return success(serialize_vehicle(vehicle), "Vehicle registered")


@router.get("/{vehicle_id}")
async def get_vehicle(
    vehicle_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vehicle = await customer_service.get_vehicle(db, vehicle_id, user)
    return success(serialize_vehicle(vehicle))


@router.put("/{vehicle_id}/mileage")
async def update_mileage(
    vehicle_id: int,
    body: MileageUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    vehicle = await customer_service.update_mileage(db, vehicle_id, user, body.mileage)
    return success(serialize_vehicle(vehicle), "Mileage updated")


@router.get("/{vehicle_id}/maintenance")
async def get_maintenance(
    vehicle_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    history = await customer_service.get_vehicle_maintenance(db, vehicle_id, user)
    return success(history)
