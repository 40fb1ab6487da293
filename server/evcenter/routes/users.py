"""User registration and profile endpoints."""

from typing import Optional

from evcenter.models import User
from evcenter.models.user import UserRole
from evcenter.routes.deps import get_current_user, get_optional_user, require_staff
from evcenter.schemas import ProfileUpdate, UserCreate
from evcenter.services import customer_service
from evcenter.services.database import get_db
from evcenter.services.errors import PermissionDeniedError
from evcenter.services.serializers import serialize_many, serialize_user
from evcenter.utils.responses import success
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter()


@router.post("/", status_code=status.HTTP_201_CREATED)
async def register(
    body: UserCreate,
    caller: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Open registration creates customers; other roles need an admin caller."""
    if body.role != UserRole.CUSTOMER.value and (
        caller is None or UserRole(caller.role) != UserRole.ADMIN
    ):
        raise PermissionDeniedError("Only administrators can create staff accounts")
    user = await customer_service.register_user(db, body.model_dump())
    return success(serialize_user(user), "User registered")


@router.get("/me")
async def get_me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    profile = await customer_service.get_customer_profile(db, user.id)
    return success(profile)


@router.put("/me")
async def update_me(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await customer_service.update_profile(db, user, body.model_dump(exclude_unset=True))
    return success(serialize_user(user), "Profile updated")


@router.get("/")
async def list_users(
    role: Optional[str] = None,
    _: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    users = await customer_service.list_users(db, role)
    return success(serialize_many(users, serialize_user), count=len(users))
