"""Service catalog endpoints."""

from typing import Optional

from evcenter.models import User
from evcenter.routes.deps import require_staff
from evcenter.schemas import ServiceCreate
from evcenter.services import catalog_service
from evcenter.services.database import get_db
from evcenter.services.serializers import serialize_many, serialize_service
from evcenter.utils.responses import success
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()


@router.get("/")
async def list_services(category: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    services = await catalog_service.list_services(db, category)
    return success(serialize_many(services, serialize_service), count=len(services))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_service(
    body: ServiceCreate,
    _: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    service = await catalog_service.create_service(db, body.model_dump())
    return success(serialize_service(service), "Service created")
