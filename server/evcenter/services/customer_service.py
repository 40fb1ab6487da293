"""Customer accounts, profiles and vehicles."""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from evcenter.models import Appointment, Invoice, User, Vehicle
from evcenter.models.invoice import InvoiceStatus, LineItemKind
from evcenter.models.part import Part
from evcenter.models.service import Service
from evcenter.models.user import UserRole
from evcenter.services.errors import NotFoundError, PermissionDeniedError, ServiceError
from evcenter.services.redis_client import (
    cache_customer,
    get_cached_customer,
    invalidate_customer_cache,
)
from evcenter.services.serializers import serialize_appointment, serialize_user, serialize_vehicle
from evcenter.utils.warranty import (
    Warranty,
    format_warranty_duration,
    get_warranty_status,
    get_warranty_type_label,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.STAFF, UserRole.ADMIN)

PROFILE_FIELDS = ("phone", "first_name", "last_name", "street", "ward", "district", "city")


def is_staff(user: User) -> bool:
    return UserRole(user.role) in STAFF_ROLES


# ============================================================================
# Users
# ============================================================================


async def register_user(db: AsyncSession, data: Dict[str, Any]) -> User:
    """
    Create a user account.

    Args:
        db: Database session
        data: email, first_name, last_name and optional phone, role, address

    Returns:
        The new User

    Raises:
        ServiceError: email already registered (EMAIL_EXISTS)
        ValueError: invalid email or phone (from model validation)
    """
    email = (data.get("email") or "").strip().lower()
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise ServiceError(f"Email {email} is already registered", "EMAIL_EXISTS")

    user = User(
        email=email,
        phone=data.get("phone"),
        first_name=data["first_name"],
        last_name=data["last_name"],
        role=UserRole(data.get("role") or UserRole.CUSTOMER),
        street=data.get("street"),
        ward=data.get("ward"),
        district=data.get("district"),
        city=data.get("city"),
    )
    db.add(user)
    await db.commit()

    logger.info(f"Registered user {user.id} ({user.email}) as {user.role.value}")
    return user


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found", "USER_NOT_FOUND")
    return user


async def list_users(db: AsyncSession, role: Optional[str] = None) -> List[User]:
    stmt = select(User).order_by(User.id)
    if role:
        stmt = stmt.where(User.role == UserRole(role))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_customer_profile(db: AsyncSession, user_id: int) -> Dict[str, Any]:
    """
    Profile with vehicles, served from Redis when cached.

    Two-tier lookup: Redis cache first, then the database with vehicles
    loaded in the same round trip. The result is cached for CACHE_TTL.
    """
    cached = await get_cached_customer(user_id)
    if cached:
        return cached

    stmt = select(User).options(selectinload(User.vehicles)).where(User.id == user_id)
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError(f"User {user_id} not found", "USER_NOT_FOUND")

    profile = serialize_user(user)
    profile["vehicles"] = [serialize_vehicle(v) for v in user.vehicles]

    await cache_customer(user_id, dict(profile))
    return profile


async def update_profile(db: AsyncSession, user: User, updates: Dict[str, Any]) -> User:
    for field in PROFILE_FIELDS:
        if field in updates and updates[field] is not None:
            setattr(user, field, updates[field])

    await db.commit()
    await invalidate_customer_cache(user.id)
    logger.info(f"Updated profile for user {user.id}")
    return user


# ============================================================================
# Vehicles
# ============================================================================


async def list_vehicles(db: AsyncSession, actor: User, owner_id: Optional[int] = None) -> List[Vehicle]:
    """Customers see their own vehicles; staff and technicians see all."""
    stmt = select(Vehicle).order_by(Vehicle.id)
    if UserRole(actor.role) == UserRole.CUSTOMER:
        stmt = stmt.where(Vehicle.owner_id == actor.id)
    elif owner_id:
        stmt = stmt.where(Vehicle.owner_id == owner_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_vehicle(db: AsyncSession, vehicle_id: int, actor: User) -> Vehicle:
    vehicle = await db.get(Vehicle, vehicle_id)
    if not vehicle:
        raise NotFoundError(f"Vehicle {vehicle_id} not found", "VEHICLE_NOT_FOUND")
    if UserRole(actor.role) == UserRole.CUSTOMER and vehicle.owner_id != actor.id:
        raise PermissionDeniedError("You can only access your own vehicles")
    return vehicle


async def create_vehicle(db: AsyncSession, actor: User, data: Dict[str, Any]) -> Vehicle:
    """
    Register a vehicle.

    Customers register vehicles for themselves; staff may pass ``owner_id``
    to register on behalf of a customer.
    """
    if UserRole(actor.role) == UserRole.CUSTOMER:
        owner_id = actor.id
    else:
        owner_id = data.get("owner_id")
        if not owner_id:
            raise ServiceError("owner_id is required", "VALIDATION_ERROR")

    owner = await get_user(db, owner_id)
    if UserRole(owner.role) != UserRole.CUSTOMER:
        raise ServiceError("Vehicles can only belong to customers", "INVALID_OWNER")

    vin = (data.get("vin") or "").strip().upper()
    existing = await db.execute(select(Vehicle).where(Vehicle.vin == vin))
    if existing.scalar_one_or_none():
        raise ServiceError(f"VIN {vin} is already registered", "VIN_EXISTS")

    vehicle = Vehicle(
        owner_id=owner.id,
        vin=vin,
        license_plate=data.get("license_plate"),
        make=data["make"],
        model=data["model"],
        year=data["year"],
        color=data.get("color"),
        battery_type=data.get("battery_type"),
        battery_capacity_kwh=data.get("battery_capacity_kwh"),
        current_mileage=data.get("current_mileage") or 0,
    )
    db.add(vehicle)
    await db.commit()
    await invalidate_customer_cache(owner.id)

    logger.info(f"Registered vehicle {vehicle.vin} for customer {owner.id}")
    return vehicle


async def update_mileage(db: AsyncSession, vehicle_id: int, actor: User, mileage: int) -> Vehicle:
    vehicle = await get_vehicle(db, vehicle_id, actor)
    if mileage < (vehicle.current_mileage or 0):
        raise ServiceError(
            f"Mileage cannot decrease (current {vehicle.current_mileage}, got {mileage})",
            "INVALID_MILEAGE",
        )
    vehicle.current_mileage = mileage
    await db.commit()
    await invalidate_customer_cache(vehicle.owner_id)
    return vehicle


async def get_vehicle_maintenance(
    db: AsyncSession, vehicle_id: int, actor: User
) -> Dict[str, Any]:
    """
    Service history of a vehicle plus the warranty state of what was billed.

    Returns:
        {
            "vehicle": {...},
            "appointments": [...],
            "warranties": [
                {
                    "invoice_number": str,
                    "item": str,
                    "kind": "service" | "part",
                    "type_label": str,
                    "duration": str,
                    "status": {... WarrantyStatus.to_dict() ...}
                }
            ]
        }
    """
    vehicle = await get_vehicle(db, vehicle_id, actor)

    appointments = (
        await db.execute(
            select(Appointment)
            .where(Appointment.vehicle_id == vehicle.id)
            .order_by(Appointment.scheduled_date.desc())
        )
    ).scalars().all()

    invoices = (
        await db.execute(
            select(Invoice)
            .where(
                Invoice.vehicle_id == vehicle.id,
                Invoice.status.notin_([InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED]),
            )
            .order_by(Invoice.revision_number.desc(), Invoice.id.desc())
        )
    ).scalars().all()

    # only the latest revision of each appointment's invoice counts
    latest: Dict[int, Invoice] = {}
    for invoice in invoices:
        latest.setdefault(invoice.appointment_id, invoice)

    warranties = []
    for invoice in sorted(latest.values(), key=lambda i: i.id):
        service_date = invoice.created_at or date.today()
        for item in invoice.line_items:
            if item.kind == LineItemKind.SERVICE and item.reference_id:
                service = await db.get(Service, item.reference_id)
                if not service or not service.warranty_days:
                    continue
                warranty = Warranty(service.warranty_days, "service", service.name)
            elif item.kind == LineItemKind.PART and item.reference_id:
                part = await db.get(Part, item.reference_id)
                if not part or not part.warranty_months:
                    continue
                warranty = Warranty.from_months(part.warranty_months, "parts", part.name)
            else:
                continue

            warranties.append(
                {
                    "invoice_number": invoice.invoice_number,
                    "item": item.description,
                    "kind": item.kind.value,
                    "type_label": get_warranty_type_label(warranty.type),
                    "duration": format_warranty_duration(warranty.duration_days),
                    "status": get_warranty_status(service_date, warranty).to_dict(),
                }
            )

    return {
        "vehicle": serialize_vehicle(vehicle),
        "appointments": [serialize_appointment(a) for a in appointments],
        "warranties": warranties,
    }
