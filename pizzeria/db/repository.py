"""
Pizzeria POS — Repositories

Thin get / list / compare_and_set wrappers over the async session. Every
state write goes through compare_and_set, which only touches the row when
it still holds the value the caller observed:

    UPDATE orders SET status = :new, version_id = version_id + 1
     WHERE id = :id AND status = :expected

A rowcount of 0 means another transaction got there first.
"""
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.core.errors import NotFound
from pizzeria.core.lifecycle import ACTIVE_STATUSES
from pizzeria.models.order import Order, OrderStatus, OrderType
from pizzeria.models.payment import Payment, PaymentStatus
from pizzeria.models.table import DiningTable, TableStatus


class OrderRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, order_id: str) -> Order | None:
        result = await self.db.execute(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_raise(self, order_id: str) -> Order:
        order = await self.get(order_id)
        if order is None:
            raise NotFound("Order", order_id)
        return order

    async def list(
        self,
        status: OrderStatus | None = None,
        order_type: OrderType | None = None,
        table_id: str | None = None,
        statuses: frozenset[OrderStatus] | None = None,
        newest_first: bool = True,
        limit: int | None = None,
    ) -> list[Order]:
        query = select(Order)
        if status is not None:
            query = query.where(Order.status == status)
        if statuses is not None:
            query = query.where(Order.status.in_(statuses))
        if order_type is not None:
            query = query.where(Order.order_type == order_type)
        if table_id is not None:
            query = query.where(Order.table_id == table_id)
        ordering = Order.created_at.desc() if newest_first else Order.created_at.asc()
        query = query.order_by(ordering, Order.order_number)
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def compare_and_set(
        self,
        order_id: str,
        expected_status: OrderStatus,
        expected_version: int | None = None,
        **values,
    ) -> bool:
        conditions = [Order.id == order_id, Order.status == expected_status]
        if expected_version is not None:
            conditions.append(Order.version_id == expected_version)
        result = await self.db.execute(
            update(Order)
            .where(*conditions)
            .values(version_id=Order.version_id + 1, updated_at=func.now(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def count_active_for_table(self, table_id: str) -> int:
        result = await self.db.execute(
            select(func.count(Order.id)).where(
                Order.table_id == table_id, Order.status.in_(ACTIVE_STATUSES)
            )
        )
        return result.scalar_one()

    async def active_for_table(self, table_id: str) -> Order | None:
        orders = await self.list(table_id=table_id, statuses=ACTIVE_STATUSES, limit=1)
        return orders[0] if orders else None

    async def count_by_status(self) -> dict[OrderStatus, int]:
        result = await self.db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))
        return {OrderStatus(status): count for status, count in result.all()}


class TableRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, table_id: str) -> DiningTable | None:
        result = await self.db.execute(
            select(DiningTable).where(DiningTable.id == table_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_raise(self, table_id: str) -> DiningTable:
        table = await self.get(table_id)
        if table is None:
            raise NotFound("Table", table_id)
        return table

    async def get_by_number(self, number: int) -> DiningTable | None:
        result = await self.db.execute(select(DiningTable).where(DiningTable.number == number))
        return result.scalar_one_or_none()

    async def list(
        self,
        status: TableStatus | None = None,
        location: str | None = None,
        include_inactive: bool = False,
    ) -> list[DiningTable]:
        query = select(DiningTable).order_by(DiningTable.number)
        if status is not None:
            query = query.where(DiningTable.status == status)
        if location is not None:
            query = query.where(func.lower(DiningTable.location) == location.lower())
        if not include_inactive:
            query = query.where(DiningTable.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def compare_and_set(self, table_id: str, expected_status: TableStatus, **values) -> bool:
        result = await self.db.execute(
            update(DiningTable)
            .where(DiningTable.id == table_id, DiningTable.status == expected_status)
            .values(version_id=DiningTable.version_id + 1, updated_at=func.now(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class PaymentRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, payment_id: str) -> Payment | None:
        result = await self.db.execute(
            select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_raise(self, payment_id: str) -> Payment:
        payment = await self.get(payment_id)
        if payment is None:
            raise NotFound("Payment", payment_id)
        return payment

    async def list_for_order(self, order_id: str) -> list[Payment]:
        result = await self.db.execute(
            select(Payment).where(Payment.order_id == order_id).order_by(Payment.created_at, Payment.id)
        )
        return list(result.scalars().all())

    async def sum_for_order(self, order_id: str, *statuses: PaymentStatus) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Payment.amount_cents), 0)).where(
                Payment.order_id == order_id, Payment.status.in_(statuses)
            )
        )
        return int(result.scalar_one())

    async def sum_all(self, status: PaymentStatus) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Payment.amount_cents), 0)).where(Payment.status == status)
        )
        return int(result.scalar_one())

    async def find_refund(self, payment_id: str) -> Payment | None:
        result = await self.db.execute(select(Payment).where(Payment.refund_of == payment_id))
        return result.scalar_one_or_none()

    async def compare_and_set(self, payment_id: str, expected_status: PaymentStatus, **values) -> bool:
        result = await self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
