"""
Pizzeria POS — Order DB models

[TRANSACTIONAL DATA] — orders are never deleted; they end in COMPLETED or CANCELLED.
"""
import uuid
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import JSON, String, Integer, DateTime, ForeignKey, func, Text, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from pizzeria.db.database import Base


class OrderStatus(str, PyEnum):
    PLACED = "PLACED"
    PREPARING = "PREPARING"
    READY = "READY"
    DELIVERING = "DELIVERING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OrderType(str, PyEnum):
    DINE_IN = "DINE_IN"
    TAKEOUT = "TAKEOUT"
    DELIVERY = "DELIVERY"


class Order(Base):
    """
    Monetary columns are integer cents. total_cents is only ever written
    together with its parts (see pizzeria.core.lifecycle.compute_totals).
    version_id is bumped on every write.
    """
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    order_type: Mapped[OrderType] = mapped_column(Enum(OrderType, name="order_type"), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"), default=OrderStatus.PLACED, nullable=False, index=True
    )
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tip_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    table_id: Mapped[str | None] = mapped_column(ForeignKey("dining_tables.id"), index=True, nullable=True)
    reservation_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    special_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    estimated_completion_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", lazy="selectin", cascade="all, delete-orphan", order_by="OrderItem.position"
    )


class OrderItem(Base):
    """
    Name, unit price and chosen modifiers are snapshots taken when the line
    was entered. Each unit costs unit_price_cents + modifier_cents.
    """
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), index=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    menu_item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    modifier_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    modifiers: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    customizations: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    order: Mapped[Order] = relationship(back_populates="items")
