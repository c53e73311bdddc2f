"""
Pizzeria POS — Role-based access policy

Pure evaluation: the caller passes the actor explicitly (built from the
request's bearer token by ActorMiddleware), never a global session.
"""
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote

from pizzeria.models.user import UserRole

SIGN_IN_PATH = "/auth/signin"


class RouteCategory(str, Enum):
    ADMIN_AREA = "ADMIN_AREA"
    KITCHEN_AREA = "KITCHEN_AREA"
    SERVER_AREA = "SERVER_AREA"
    CUSTOMER_AREA = "CUSTOMER_AREA"
    PUBLIC = "PUBLIC"


@dataclass(frozen=True)
class ActorContext:
    user_id: str
    role: UserRole
    email: str | None = None


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    category: RouteCategory
    redirect_to: str | None = None


# Evaluated top to bottom; first matching role wins
POLICY: list[tuple[frozenset[UserRole], frozenset[RouteCategory]]] = [
    (frozenset({UserRole.ADMIN, UserRole.MANAGER}), frozenset(RouteCategory)),
    (frozenset({UserRole.SERVER}), frozenset({
        RouteCategory.SERVER_AREA, RouteCategory.PUBLIC, RouteCategory.CUSTOMER_AREA,
    })),
    (frozenset({UserRole.KITCHEN}), frozenset({
        RouteCategory.KITCHEN_AREA, RouteCategory.PUBLIC, RouteCategory.CUSTOMER_AREA,
    })),
]
ANONYMOUS_AREAS = frozenset({RouteCategory.PUBLIC, RouteCategory.CUSTOMER_AREA})

ROUTE_PREFIXES: list[tuple[str, RouteCategory]] = [
    ("/dashboard/admin", RouteCategory.ADMIN_AREA),
    ("/dashboard/kitchen", RouteCategory.KITCHEN_AREA),
    ("/dashboard/server", RouteCategory.SERVER_AREA),
    ("/customer", RouteCategory.CUSTOMER_AREA),
]

HOME_PATHS: dict[UserRole, str] = {
    UserRole.ADMIN: "/dashboard/admin",
    UserRole.KITCHEN: "/dashboard/kitchen",
    UserRole.SERVER: "/dashboard/server",
}
CUSTOMER_HOME = "/customer"


def classify(path: str) -> RouteCategory:
    for prefix, category in ROUTE_PREFIXES:
        if path == prefix or path.startswith(prefix + "/"):
            return category
    return RouteCategory.PUBLIC


def home_for(role: UserRole | None) -> str:
    if role is None:
        return CUSTOMER_HOME
    return HOME_PATHS.get(role, CUSTOMER_HOME)


def allowed_areas(role: UserRole | None) -> frozenset[RouteCategory]:
    if role is None:
        return ANONYMOUS_AREAS
    for roles, areas in POLICY:
        if role in roles:
            return areas
    return ANONYMOUS_AREAS


def can_access(actor: ActorContext | None, category: RouteCategory) -> bool:
    return category in allowed_areas(actor.role if actor else None)


def sign_in_url(callback_path: str) -> str:
    return f"{SIGN_IN_PATH}?callbackUrl={quote(callback_path, safe='')}"


def evaluate(actor: ActorContext | None, path: str) -> AccessDecision:
    """
    Decide whether `actor` may open `path`.

    Denied staff and customers are sent to their own home area; anonymous
    visitors hitting a protected area go to sign-in with the requested path
    kept as the callback.
    """
    category = classify(path)
    if can_access(actor, category):
        return AccessDecision(allowed=True, category=category)
    if actor is None:
        return AccessDecision(allowed=False, category=category, redirect_to=sign_in_url(path))
    return AccessDecision(allowed=False, category=category, redirect_to=home_for(actor.role))
