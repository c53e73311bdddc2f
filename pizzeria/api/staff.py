"""
Pizzeria POS — Staff administration

Listing is open to the admin area (ADMIN, MANAGER). Creating accounts,
changing roles and deactivating are ADMIN-only.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import admin_area, require_roles
from pizzeria.core.access_policy import ActorContext
from pizzeria.core.errors import NotFound, ValidationError
from pizzeria.core.security import hash_password
from pizzeria.db.database import get_db
from pizzeria.models.user import User, UserRole
from pizzeria.schemas.auth import RoleChangeRequest, StaffCreateRequest, UserResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/staff", tags=["staff"])

admin_only = require_roles(UserRole.ADMIN)


async def _get_user_or_raise(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User", user_id)
    return user


@router.get("", response_model=list[UserResponse])
async def list_staff(
    role: UserRole | None = None,
    actor: ActorContext = Depends(admin_area),
    db: AsyncSession = Depends(get_db),
):
    query = select(User).where(User.role != UserRole.CUSTOMER).order_by(User.name)
    if role is not None:
        query = query.where(User.role == role)
    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_staff(
    payload: StaffCreateRequest,
    actor: ActorContext = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    email = payload.email.lower()
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered.")

    user = User(
        email=email,
        name=payload.name,
        hashed_password=hash_password(payload.password),
        role=payload.role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Account %s created with role %s by %s", user.email, user.role.value, actor.user_id)
    return user


@router.patch("/{user_id}/role", response_model=UserResponse)
async def change_role(
    user_id: str,
    payload: RoleChangeRequest,
    actor: ActorContext = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    """Takes effect at the user's next login or token refresh."""
    user = await _get_user_or_raise(db, user_id)
    if user.id == actor.user_id and payload.role != UserRole.ADMIN:
        raise ValidationError("Admins cannot demote themselves.")
    previous = user.role
    user.role = payload.role
    await db.commit()
    await db.refresh(user)
    logger.info("Role of %s changed %s -> %s by %s", user.email, previous.value, user.role.value, actor.user_id)
    return user


@router.post("/{user_id}/deactivate", response_model=UserResponse)
async def deactivate(
    user_id: str,
    actor: ActorContext = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_user_or_raise(db, user_id)
    if user.id == actor.user_id:
        raise ValidationError("Admins cannot deactivate themselves.")
    user.is_active = False
    await db.commit()
    await db.refresh(user)
    logger.info("Account %s deactivated by %s", user.email, actor.user_id)
    return user
