"""
Pizzeria POS — Order lifecycle operations

Each write runs in one transaction: validate against the lifecycle rules,
compare-and-set the order row, re-derive the table's occupancy, commit.
Any error rolls the whole unit back, so a reader never sees an order in a
terminal status while its table still shows OCCUPIED.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.core.access_policy import ActorContext
from pizzeria.core.config import get_settings
from pizzeria.core.errors import InvalidTransition, NotFound, TableUnavailable, Unauthorized, ValidationError
from pizzeria.core.events import publish_order_event
from pizzeria.core.lifecycle import ACTIVE_STATUSES, Totals, check_transition, compute_totals, estimate_completion
from pizzeria.core.occupancy import check_can_seat
from pizzeria.db.repository import OrderRepository, PaymentRepository, TableRepository
from pizzeria.db.table_ops import sync_table_occupancy
from pizzeria.models.menu import MenuItem, Modifier, ModifierKind
from pizzeria.models.order import Order, OrderItem, OrderStatus, OrderType
from pizzeria.models.payment import PaymentStatus
from pizzeria.models.table import TableStatus
from pizzeria.models.user import UserRole
from pizzeria.schemas.order import OrderCreateRequest, OrderLineRequest

settings = get_settings()
logger = logging.getLogger(__name__)

ORDER_ENTRY_ROLES = frozenset({UserRole.SERVER, UserRole.ADMIN, UserRole.MANAGER, UserRole.CUSTOMER})
ITEM_EDIT_ROLES = frozenset({UserRole.SERVER, UserRole.ADMIN, UserRole.MANAGER})


def new_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(tz=timezone.utc)
    return f"ORD-{now:%y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def _validate_lines(lines: list[OrderLineRequest]) -> None:
    if not lines:
        raise ValidationError("An order needs at least one line item.")
    for line in lines:
        if line.quantity < 1:
            raise ValidationError(f"Quantity for '{line.menu_item_id}' must be at least 1.")


async def _snapshot_lines(db: AsyncSession, lines: list[OrderLineRequest]) -> list[OrderItem]:
    """
    Resolve menu items and modifiers and copy their current names and prices
    onto new order lines. Later menu edits never reach these copies.
    """
    ids = {line.menu_item_id for line in lines}
    result = await db.execute(select(MenuItem).where(MenuItem.id.in_(ids)))
    menu = {item.id: item for item in result.scalars().all()}

    modifier_ids = {mid for line in lines for mid in line.modifier_ids}
    options: dict[str, Modifier] = {}
    if modifier_ids:
        result = await db.execute(select(Modifier).where(Modifier.id.in_(modifier_ids)))
        options = {mod.id: mod for mod in result.scalars().all()}

    snapshot = []
    for position, line in enumerate(lines):
        item = menu.get(line.menu_item_id)
        if item is None:
            raise NotFound("MenuItem", line.menu_item_id)
        if not item.is_available:
            raise ValidationError(f"'{item.name}' is not available right now.")
        if item.price_cents <= 0:
            raise ValidationError(f"'{item.name}' has no valid price.")
        chosen = _resolve_modifiers(item, line.modifier_ids, options)
        snapshot.append(OrderItem(
            position=position,
            menu_item_id=item.id,
            name=item.name,
            unit_price_cents=item.price_cents,
            modifier_cents=sum(mod.price_adjustment_cents for mod in chosen),
            modifiers=[
                {
                    "id": mod.id,
                    "name": mod.name,
                    "kind": mod.kind.value,
                    "price_adjustment_cents": mod.price_adjustment_cents,
                }
                for mod in chosen
            ],
            quantity=line.quantity,
            customizations=list(line.customizations),
            notes=line.notes,
        ))
    return snapshot


def _resolve_modifiers(item: MenuItem, modifier_ids: list[str], options: dict[str, Modifier]) -> list[Modifier]:
    if len(set(modifier_ids)) != len(modifier_ids):
        raise ValidationError(f"The same option was chosen twice for '{item.name}'.")
    chosen = []
    for modifier_id in modifier_ids:
        mod = options.get(modifier_id)
        if mod is None:
            raise NotFound("Modifier", modifier_id)
        if not mod.is_available:
            raise ValidationError(f"'{mod.name}' is not available right now.")
        if mod.category_id is not None and mod.category_id != item.category_id:
            raise ValidationError(f"'{mod.name}' cannot be added to '{item.name}'.")
        chosen.append(mod)
    if sum(1 for mod in chosen if mod.kind == ModifierKind.CRUST) > 1:
        raise ValidationError(f"Choose at most one crust for '{item.name}'.")
    return chosen


def _totals(lines: list[OrderItem], tip_cents: int = 0) -> Totals:
    return compute_totals(
        [(line.unit_price_cents + line.modifier_cents, line.quantity) for line in lines],
        settings.TAX_RATE,
        tip_cents,
    )


def _check_viewer(actor: ActorContext, order: Order) -> None:
    if actor.role == UserRole.CUSTOMER and order.created_by != actor.user_id:
        raise Unauthorized(actor.role, "view another customer's order")


async def create_order(db: AsyncSession, actor: ActorContext, payload: OrderCreateRequest) -> Order:
    """
    Open a new order in PLACED.

    DINE_IN orders must name a table that can be seated (AVAILABLE, or
    RESERVED for this booking); the table flips to OCCUPIED in the same
    commit. Other order types must not reference a table.
    """
    if actor.role not in ORDER_ENTRY_ROLES:
        raise Unauthorized(actor.role, "create orders")
    _validate_lines(payload.items)

    if payload.order_type == OrderType.DINE_IN and not payload.table_id:
        raise ValidationError("Dine-in orders must reference a table.")
    if payload.order_type != OrderType.DINE_IN and payload.table_id:
        raise ValidationError(f"{payload.order_type.value} orders cannot reference a table.")

    orders = OrderRepository(db)
    tables = TableRepository(db)
    try:
        lines = await _snapshot_lines(db, payload.items)
        totals = _totals(lines)

        if payload.order_type == OrderType.DINE_IN:
            table = await tables.get_or_raise(payload.table_id)
            check_can_seat(table, payload.reservation_ref)
            seated = await tables.compare_and_set(
                table.id, table.status, status=TableStatus.OCCUPIED, reservation_ref=None,
            )
            if not seated:
                current = await tables.get(table.id)
                raise TableUnavailable(table.id, current.status)

        order = Order(
            order_number=new_order_number(),
            order_type=payload.order_type,
            status=OrderStatus.PLACED,
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            tip_cents=totals.tip_cents,
            total_cents=totals.total_cents,
            table_id=payload.table_id,
            reservation_ref=payload.reservation_ref,
            customer_name=payload.customer_name,
            special_notes=payload.special_notes,
            created_by=actor.user_id,
            items=lines,
        )
        db.add(order)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    order = await orders.get(order.id)
    logger.info(
        "Order %s created by %s (%s, %d items, total=%d)",
        order.order_number, actor.user_id, order.order_type.value, len(order.items), order.total_cents,
    )
    await publish_order_event(order)
    return order


async def transition_order(
    db: AsyncSession,
    actor: ActorContext,
    order_id: str,
    expected_status: OrderStatus,
    target: OrderStatus,
) -> Order:
    """
    Move an order along the lifecycle.

    `expected_status` is the status the actor last saw. If the stored status
    differs, or a concurrent request commits first, this raises
    InvalidTransition(stale=True) carrying the status actually stored.
    """
    orders = OrderRepository(db)
    try:
        order = await orders.get_or_raise(order_id)
        _check_viewer(actor, order)
        if order.status != expected_status:
            raise InvalidTransition(order.status, target, stale=True)
        check_transition(order.status, target, order.order_type, actor.role)

        values: dict = {"status": target}
        if target == OrderStatus.PREPARING:
            values["estimated_completion_time"] = estimate_completion(
                prep_minutes=settings.PREP_ESTIMATE_MINUTES,
            )

        if not await orders.compare_and_set(order.id, expected_status, **values):
            current = await orders.get(order.id)
            logger.warning(
                "Stale transition on %s: %s -> %s rejected, now %s",
                order.order_number, expected_status.value, target.value, current.status.value,
            )
            raise InvalidTransition(current.status, target, stale=True)

        if order.table_id:
            await sync_table_occupancy(db, order.table_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    updated = await orders.get(order_id)
    logger.info(
        "Order %s: %s -> %s by %s (%s)",
        updated.order_number, expected_status.value, target.value, actor.user_id, actor.role.value,
    )
    await publish_order_event(updated, previous_status=expected_status)
    return updated


async def replace_items(
    db: AsyncSession,
    actor: ActorContext,
    order_id: str,
    expected_version: int,
    items: list[OrderLineRequest],
) -> Order:
    """Replace all line items of a PLACED order and recompute its totals."""
    orders = OrderRepository(db)
    try:
        order = await orders.get_or_raise(order_id)
        if actor.role not in ITEM_EDIT_ROLES and order.created_by != actor.user_id:
            raise Unauthorized(actor.role, "edit this order")
        if order.status != OrderStatus.PLACED:
            raise InvalidTransition(
                order.status, OrderStatus.PLACED,
                reason=f"Line items can only change while the order is PLACED (it is {order.status.value}).",
            )
        if order.version_id != expected_version:
            raise InvalidTransition(order.status, OrderStatus.PLACED, stale=True)
        _validate_lines(items)

        lines = await _snapshot_lines(db, items)
        totals = _totals(lines, order.tip_cents)
        paid = await PaymentRepository(db).sum_for_order(
            order.id, PaymentStatus.COMPLETED, PaymentStatus.PENDING,
        )
        if paid > totals.total_cents:
            raise ValidationError(
                f"New total of {totals.total_cents} would be below the {paid} already paid on this order.",
            )
        replaced = await orders.compare_and_set(
            order.id, OrderStatus.PLACED, expected_version=expected_version,
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
        )
        if not replaced:
            current = await orders.get(order.id)
            raise InvalidTransition(current.status, OrderStatus.PLACED, stale=True)

        await db.execute(delete(OrderItem).where(OrderItem.order_id == order.id))
        for line in lines:
            line.order_id = order.id
            db.add(line)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    updated = await orders.get(order_id)
    logger.info("Order %s items replaced (%d lines, total=%d)", updated.order_number, len(lines), updated.total_cents)
    return updated


async def get_order(db: AsyncSession, actor: ActorContext, order_id: str) -> Order:
    order = await OrderRepository(db).get_or_raise(order_id)
    _check_viewer(actor, order)
    return order


async def list_orders(
    db: AsyncSession,
    actor: ActorContext,
    status: OrderStatus | None = None,
    order_type: OrderType | None = None,
    table_id: str | None = None,
) -> list[Order]:
    orders = await OrderRepository(db).list(status=status, order_type=order_type, table_id=table_id)
    if actor.role == UserRole.CUSTOMER:
        orders = [o for o in orders if o.created_by == actor.user_id]
    return orders


async def kitchen_board(db: AsyncSession) -> list[Order]:
    """Non-terminal orders, oldest first: the kitchen works the queue front to back."""
    return await OrderRepository(db).list(statuses=ACTIVE_STATUSES, newest_first=False)
