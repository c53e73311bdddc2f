"""
Pizzeria POS — Tables API
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import admin_area, server_area, staff_area
from pizzeria.core.access_policy import ActorContext
from pizzeria.db import table_ops
from pizzeria.db.database import get_db
from pizzeria.db.repository import OrderRepository, TableRepository
from pizzeria.models.table import TableStatus
from pizzeria.schemas.order import OrderResponse
from pizzeria.schemas.table import (
    TableCreateRequest,
    TableDetailResponse,
    TableResponse,
    TableStatusRequest,
    TableUpdateRequest,
)

router = APIRouter(prefix="/tables", tags=["tables"])


@router.get("", response_model=list[TableResponse])
async def list_tables(
    status: TableStatus | None = Query(None),
    location: str | None = Query(None, description="Zone label, case-insensitive"),
    include_inactive: bool = Query(False),
    actor: ActorContext = Depends(staff_area),
    db: AsyncSession = Depends(get_db),
):
    return await TableRepository(db).list(status=status, location=location, include_inactive=include_inactive)


@router.get("/{table_id}", response_model=TableDetailResponse)
async def get_table(
    table_id: str,
    actor: ActorContext = Depends(staff_area),
    db: AsyncSession = Depends(get_db),
):
    """Table with its current (non-terminal) order, if any."""
    table = await TableRepository(db).get_or_raise(table_id)
    active = await OrderRepository(db).active_for_table(table_id)
    return TableDetailResponse(
        **TableResponse.model_validate(table).model_dump(),
        active_order=OrderResponse.model_validate(active) if active else None,
    )


@router.post("", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
async def create_table(
    payload: TableCreateRequest,
    actor: ActorContext = Depends(admin_area),
    db: AsyncSession = Depends(get_db),
):
    return await table_ops.create_table(db, payload)


@router.patch("/{table_id}", response_model=TableResponse)
async def update_table(
    table_id: str,
    payload: TableUpdateRequest,
    actor: ActorContext = Depends(admin_area),
    db: AsyncSession = Depends(get_db),
):
    return await table_ops.update_table(db, table_id, payload)


@router.post("/{table_id}/status", response_model=TableResponse)
async def set_table_status(
    table_id: str,
    payload: TableStatusRequest,
    actor: ActorContext = Depends(server_area),
    db: AsyncSession = Depends(get_db),
):
    """Mark a table cleaned, reserve it, or release a reservation."""
    return await table_ops.set_table_status(
        db, actor, table_id, payload.expected_status, payload.target_status, payload.reservation_ref,
    )


@router.post("/{table_id}/deactivate", response_model=TableResponse)
async def deactivate_table(
    table_id: str,
    actor: ActorContext = Depends(admin_area),
    db: AsyncSession = Depends(get_db),
):
    """Soft-disable. Tables are never deleted because past orders reference them."""
    return await table_ops.deactivate_table(db, table_id)
