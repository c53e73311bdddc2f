"""
Pizzeria POS — Dining table model

[CONFIG DATA] number/capacity/location, [TRANSACTIONAL DATA] status.
Tables are soft-disabled, never deleted, because orders reference them.
"""
import uuid
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import String, Integer, Boolean, DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column
from pizzeria.db.database import Base


class TableStatus(str, PyEnum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"
    CLEANING = "CLEANING"


class DiningTable(Base):
    __tablename__ = "dining_tables"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    number: Mapped[int] = mapped_column(Integer, unique=True, index=True, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    location: Mapped[str] = mapped_column(String(100), nullable=False, default="Main")
    status: Mapped[TableStatus] = mapped_column(
        Enum(TableStatus, name="table_status"), default=TableStatus.AVAILABLE, nullable=False
    )
    qr_code: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reservation_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)  # booking a RESERVED table is held for
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
