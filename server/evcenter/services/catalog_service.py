"""Service catalog."""

import logging
from typing import Any, Dict, List, Optional

from evcenter.models.service import Service, ServiceCategory
from evcenter.services.errors import NotFoundError, ServiceError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def list_services(
    db: AsyncSession, category: Optional[str] = None, include_inactive: bool = False
) -> List[Service]:
    stmt = select(Service).order_by(Service.category, Service.name)
    if not include_inactive:
        stmt = stmt.where(Service.is_active.is_(True))
    if category:
        stmt = stmt.where(Service.category == ServiceCategory(category))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_service(db: AsyncSession, service_id: int) -> Service:
    service = await db.get(Service, service_id)
    if not service:
        raise NotFoundError(f"Service {service_id} not found", "SERVICE_NOT_FOUND")
    return service


async def create_service(db: AsyncSession, data: Dict[str, Any]) -> Service:
    code = data["code"].strip().upper()
    existing = await db.execute(select(Service).where(Service.code == code))
    if existing.scalar_one_or_none():
        raise ServiceError(f"Service code {code} already exists", "SERVICE_CODE_EXISTS")

    service = Service(
        code=code,
        name=data["name"],
        description=data.get("description"),
        category=ServiceCategory(data.get("category") or ServiceCategory.GENERAL),
        base_price=data.get("base_price") or 0,
        estimated_duration=data.get("estimated_duration") or 60,
        warranty_days=data.get("warranty_days") or 0,
    )
    db.add(service)
    await db.commit()

    logger.info(f"Created service {service.code}: {service.name}")
    return service
