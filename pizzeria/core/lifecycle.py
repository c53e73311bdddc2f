"""
Pizzeria POS — Order lifecycle rules

The transition table is the single place that decides which status moves
are legal, who may trigger them and for which order types. Database code
in pizzeria.db.order_ops calls check_transition() before every write.

    PLACED ──► PREPARING ──► READY ──► COMPLETED            (dine-in, takeout)
       │                       └────► DELIVERING ──► COMPLETED  (delivery)
       └────► CANCELLED
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from pizzeria.core.errors import InvalidTransition, Unauthorized
from pizzeria.models.order import OrderStatus, OrderType
from pizzeria.models.user import UserRole

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})
ACTIVE_STATUSES = frozenset(set(OrderStatus) - TERMINAL_STATUSES)

# ADMIN and MANAGER may drive any legal edge (supervisor override)
SUPERVISOR_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER})


@dataclass(frozen=True)
class TransitionRule:
    actors: frozenset[UserRole]
    order_types: frozenset[OrderType] = frozenset(OrderType)


# ── Legal transitions ────────────────────────────────────────────────────────
TRANSITIONS: dict[tuple[OrderStatus, OrderStatus], TransitionRule] = {
    (OrderStatus.PLACED, OrderStatus.PREPARING): TransitionRule(
        actors=frozenset({UserRole.KITCHEN, UserRole.SERVER}),
    ),
    (OrderStatus.PLACED, OrderStatus.CANCELLED): TransitionRule(
        actors=frozenset({UserRole.SERVER, UserRole.ADMIN}),
    ),
    (OrderStatus.PREPARING, OrderStatus.READY): TransitionRule(
        actors=frozenset({UserRole.KITCHEN}),
    ),
    (OrderStatus.READY, OrderStatus.DELIVERING): TransitionRule(
        actors=frozenset({UserRole.SERVER}),
        order_types=frozenset({OrderType.DELIVERY}),
    ),
    (OrderStatus.READY, OrderStatus.COMPLETED): TransitionRule(
        actors=frozenset({UserRole.SERVER}),
        order_types=frozenset({OrderType.DINE_IN, OrderType.TAKEOUT}),
    ),
    (OrderStatus.DELIVERING, OrderStatus.COMPLETED): TransitionRule(
        actors=frozenset({UserRole.SERVER}),
    ),
}


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_targets(current: OrderStatus, order_type: OrderType) -> list[OrderStatus]:
    """Targets reachable from `current` for this order type, in table order."""
    return [
        to for (frm, to), rule in TRANSITIONS.items()
        if frm == current and order_type in rule.order_types
    ]


def check_transition(
    current: OrderStatus,
    target: OrderStatus,
    order_type: OrderType,
    role: UserRole,
) -> TransitionRule:
    """
    Validate a requested move against the table.

    Raises InvalidTransition for pairs not in the table (or not valid for the
    order type) and Unauthorized when the role may not trigger the edge.
    Legality is checked first so the caller always learns an impossible move
    is impossible, whoever asks.
    """
    rule = TRANSITIONS.get((current, target))
    if rule is None:
        raise InvalidTransition(current, target)
    if order_type not in rule.order_types:
        raise InvalidTransition(
            current, target,
            reason=f"{order_type.value} orders cannot move from {current.value} to {target.value}.",
        )
    if role not in rule.actors and role not in SUPERVISOR_ROLES:
        raise Unauthorized(role, f"move orders from {current.value} to {target.value}")
    return rule


def estimate_completion(now: datetime | None = None, prep_minutes: int = 20) -> datetime:
    now = now or datetime.now(tz=timezone.utc)
    return now + timedelta(minutes=prep_minutes)


# ── Money ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    tax_cents: int
    tip_cents: int
    total_cents: int


def compute_tax(subtotal_cents: int, tax_rate: float) -> int:
    tax = Decimal(subtotal_cents) * Decimal(str(tax_rate))
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_totals(lines: list[tuple[int, int]], tax_rate: float, tip_cents: int = 0) -> Totals:
    """`lines` is a list of (unit_price_cents, quantity); the unit price already includes modifier adjustments."""
    subtotal = sum(price * qty for price, qty in lines)
    tax = compute_tax(subtotal, tax_rate)
    return Totals(
        subtotal_cents=subtotal,
        tax_cents=tax,
        tip_cents=tip_cents,
        total_cents=subtotal + tax + tip_cents,
    )
