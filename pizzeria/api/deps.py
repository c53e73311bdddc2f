"""
Pizzeria POS — Route dependencies for actor resolution and area checks
"""
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.core.access_policy import ActorContext, RouteCategory, can_access
from pizzeria.core.errors import Unauthorized
from pizzeria.db.database import get_db
from pizzeria.models.user import User, UserRole


def get_optional_actor(request: Request) -> ActorContext | None:
    """Actor as the token describes it. Used for navigation decisions only."""
    return getattr(request.state, "actor", None)


def _unauthenticated(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_actor(
    actor: ActorContext | None = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db),
) -> ActorContext:
    """
    Re-reads the account behind the token: a deactivated account is refused
    and the stored role wins over the one the token was issued with.
    """
    if actor is None:
        raise _unauthenticated("Authentication required.")
    user = await db.get(User, actor.user_id, populate_existing=True)
    if user is None or not user.is_active:
        raise _unauthenticated("Account is no longer active.")
    role = UserRole(user.role)
    if role != actor.role:
        actor = ActorContext(user_id=user.id, role=role, email=user.email)
    return actor


def require_area(*categories: RouteCategory):
    """Allow the route when the actor may enter at least one of `categories`."""

    def dependency(actor: ActorContext = Depends(get_actor)) -> ActorContext:
        if not any(can_access(actor, category) for category in categories):
            raise Unauthorized(actor.role, "access " + " or ".join(c.value for c in categories))
        return actor

    return dependency


def require_roles(*roles: UserRole):
    def dependency(actor: ActorContext = Depends(get_actor)) -> ActorContext:
        if actor.role not in roles:
            raise Unauthorized(actor.role, "perform this action")
        return actor

    return dependency


staff_area = require_area(RouteCategory.SERVER_AREA, RouteCategory.KITCHEN_AREA)
kitchen_area = require_area(RouteCategory.KITCHEN_AREA)
server_area = require_area(RouteCategory.SERVER_AREA)
admin_area = require_area(RouteCategory.ADMIN_AREA)
checkout = require_roles(UserRole.SERVER, UserRole.ADMIN, UserRole.MANAGER, UserRole.CUSTOMER)
