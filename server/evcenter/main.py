"""
Main FastAPI application for the EV Service Center backend.
Serves appointments, service receptions, inventory, part conflicts and billing.
"""

import logging
from contextlib import asynccontextmanager

from evcenter.config import settings
from evcenter.routes import (
    appointments,
    catalog,
    health,
    invoices,
    part_conflicts,
    part_requests,
    parts,
    receptions,
    transactions,
    users,
    vehicles,
)
from evcenter.services.database import close_db, init_db
from evcenter.services.errors import ServiceError
from evcenter.services.redis_client import close_redis, init_redis
from evcenter.utils.responses import error_body
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    await init_db()
    try:
        await init_redis()
    except Exception as e:
        logger.warning(f"Starting without Redis cache: {e}")

    yield
    # Shutdown
    await close_db()
    await close_redis()


app = FastAPI(
    title=settings.SERVICE_CENTER_NAME,
    description="Appointments, service receptions, parts inventory and billing for an EV service center",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Error envelope
# ============================================================================


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.error_code, exc.errors),
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content=error_body(str(exc), "VALIDATION_ERROR"))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=error_body("Invalid request data", "VALIDATION_ERROR", errors),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content=error_body("Internal server error", "INTERNAL_ERROR"))


# Register routes
prefix = settings.API_PREFIX
app.include_router(health.router, prefix=prefix, tags=["health"])
app.include_router(users.router, prefix=f"{prefix}/users", tags=["users"])
app.include_router(vehicles.router, prefix=f"{prefix}/vehicles", tags=["vehicles"])
app.include_router(catalog.router, prefix=f"{prefix}/services", tags=["services"])
app.include_router(parts.router, prefix=f"{prefix}/parts", tags=["parts"])
app.include_router(appointments.router, prefix=f"{prefix}/appointments", tags=["appointments"])
app.include_router(receptions.router, prefix=f"{prefix}/service-receptions", tags=["service-receptions"])
app.include_router(part_requests.router, prefix=f"{prefix}/part-requests", tags=["part-requests"])
app.include_router(part_conflicts.router, prefix=f"{prefix}/part-conflicts", tags=["part-conflicts"])
app.include_router(invoices.router, prefix=f"{prefix}/invoices", tags=["invoices"])
app.include_router(transactions.router, prefix=f"{prefix}/transactions", tags=["transactions"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.SERVICE_CENTER_NAME,
        "version": "1.0.0",
        "status": "running",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("evcenter.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
