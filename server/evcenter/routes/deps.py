"""Caller identification and role checks.

Authentication happens upstream; the gateway forwards the authenticated user
id in the ``X-User-Id`` header.
"""

from typing import Optional

from evcenter.models import User
from evcenter.models.user import UserRole
from evcenter.services.database import get_db
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user id")

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown or inactive user")
    return user


def require_roles(*roles: str):
    """Dependency factory allowing only the given roles through."""
    allowed = {UserRole(role) for role in roles}

    async def checker(user: User = Depends(get_current_user)) -> User:
        if UserRole(user.role) not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(sorted(r.value for r in allowed))}",
            )
        return user

    return checker


require_staff = require_roles("staff", "admin")
require_technician = require_roles("technician", "admin")


async def get_optional_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    if not x_user_id:
        return None
    return await get_current_user(x_user_id, db)
