"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.enums import UserRole
from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.models import UserModel
from carpool.services.registry import Services, build_lock_provider, build_services

_services: Optional[Services] = None


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(async_session_factory, await build_lock_provider())
    return _services


async def get_actor(
    x_user_id: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> UserModel:
    """Resolve the authenticated user forwarded by the auth layer."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    user = await db.get(UserModel, x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def require_role(role: UserRole):
    """Allow *role* and users registered as both driver and passenger."""

    async def _check(actor: UserModel = Depends(get_actor)) -> UserModel:
        if UserRole(actor.role) not in (role, UserRole.BOTH):
            raise HTTPException(
                status_code=403, detail=f"Requires the {role.value} role"
            )
        return actor

    return _check
