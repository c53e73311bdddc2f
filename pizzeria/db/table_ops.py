"""
Pizzeria POS — Table operations
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.core.access_policy import ActorContext
from pizzeria.core.errors import InvalidTransition, TableUnavailable, ValidationError
from pizzeria.core.occupancy import check_manual_change, derive_status
from pizzeria.db.repository import OrderRepository, TableRepository
from pizzeria.models.table import DiningTable, TableStatus
from pizzeria.schemas.table import TableCreateRequest, TableUpdateRequest

logger = logging.getLogger(__name__)


async def sync_table_occupancy(db: AsyncSession, table_id: str) -> TableStatus:
    """
    Re-derive a table's status from its active orders, inside the caller's
    transaction. Does not commit.
    """
    tables = TableRepository(db)
    table = await tables.get_or_raise(table_id)
    active = await OrderRepository(db).count_active_for_table(table_id)
    target = derive_status(table.status, active)
    if target == table.status:
        return target
    if not await tables.compare_and_set(table.id, table.status, status=target):
        current = await tables.get(table.id)
        raise InvalidTransition(current.status, target, stale=True)
    logger.info("Table %s: %s -> %s (%d active orders)", table.number, table.status.value, target.value, active)
    return target


async def create_table(db: AsyncSession, payload: TableCreateRequest) -> DiningTable:
    tables = TableRepository(db)
    if await tables.get_by_number(payload.number) is not None:
        raise ValidationError(f"Table number {payload.number} already exists.")
    table = DiningTable(
        number=payload.number,
        capacity=payload.capacity,
        location=payload.location,
        qr_code=payload.qr_code,
        status=TableStatus.AVAILABLE,
    )
    db.add(table)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError(f"Table number {payload.number} already exists.")
    return await tables.get(table.id)


async def update_table(db: AsyncSession, table_id: str, payload: TableUpdateRequest) -> DiningTable:
    tables = TableRepository(db)
    table = await tables.get_or_raise(table_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(table, field, value)
    table.version_id += 1
    await db.commit()
    return await tables.get(table_id)


async def set_table_status(
    db: AsyncSession,
    actor: ActorContext,
    table_id: str,
    expected_status: TableStatus,
    target: TableStatus,
    reservation_ref: str | None = None,
) -> DiningTable:
    """Explicit staff action (mark cleaned, reserve, release a reservation)."""
    tables = TableRepository(db)
    try:
        table = await tables.get_or_raise(table_id)
        if table.status != expected_status:
            raise InvalidTransition(table.status, target, stale=True)
        if not table.is_active:
            raise TableUnavailable(table.id, table.status, reason="Table is disabled.")
        check_manual_change(table.status, target, reservation_ref)

        values: dict = {"status": target}
        values["reservation_ref"] = reservation_ref if target == TableStatus.RESERVED else None
        if not await tables.compare_and_set(table.id, expected_status, **values):
            current = await tables.get(table.id)
            raise InvalidTransition(current.status, target, stale=True)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Table %s: %s -> %s by %s", table.number, expected_status.value, target.value, actor.user_id,
    )
    return await tables.get(table_id)


async def deactivate_table(db: AsyncSession, table_id: str) -> DiningTable:
    tables = TableRepository(db)
    table = await tables.get_or_raise(table_id)
    if table.status == TableStatus.OCCUPIED:
        raise TableUnavailable(table.id, table.status, reason="An occupied table cannot be disabled.")
    table.is_active = False
    table.version_id += 1
    await db.commit()
    logger.info("Table %s disabled", table.number)
    return await tables.get(table_id)
