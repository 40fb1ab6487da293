"""Liveness and dependency checks for load balancers and the ops dashboard."""

import logging

from evcenter.config import settings
from evcenter.services.database import get_db
from evcenter.services.redis_client import check_redis_health
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

router = APIRouter()


def _unavailable(component: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "unhealthy", component: "disconnected", **extra},
    )


@router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": settings.SERVICE_CENTER_NAME,
        "environment": settings.APP_ENV,
    }


@router.get("/health/db")
async def db_health_check(db: AsyncSession = Depends(get_db)):
    """Round trip to the database."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return _unavailable("database", error=str(e))
    return {"status": "healthy", "database": "connected"}


@router.get("/health/redis")
async def redis_health_check():
    """Cache reachability. The API keeps serving without it."""
    if not await check_redis_health():
        return _unavailable("redis")
    return {"status": "healthy", "redis": "connected"}
