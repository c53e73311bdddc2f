"""
Pizzeria POS — Orders API

Flow:
  1. Actor resolved by ActorMiddleware (request.state.actor)
  2. Idempotency-Key replays handled by IdempotencyMiddleware
  3. Lifecycle rules and compare-and-set writes in pizzeria.db.order_ops
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import get_actor
from pizzeria.core.access_policy import ActorContext
from pizzeria.db import order_ops
from pizzeria.db.database import get_db
from pizzeria.models.order import OrderStatus, OrderType
from pizzeria.schemas.order import (
    OrderCreateRequest,
    OrderResponse,
    ReplaceItemsRequest,
    TransitionRequest,
)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreateRequest,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Open an order in PLACED. Dine-in orders occupy their table."""
    return await order_ops.create_order(db, actor, payload)


@router.get("", response_model=list[OrderResponse])
async def list_orders(
    status: OrderStatus | None = Query(None, description="Filter by status"),
    order_type: OrderType | None = Query(None),
    table_id: str | None = Query(None),
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Newest first. Customers only ever see their own orders."""
    return await order_ops.list_orders(db, actor, status=status, order_type=order_type, table_id=table_id)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await order_ops.get_order(db, actor, order_id)


@router.post("/{order_id}/transition", response_model=OrderResponse)
async def transition_order(
    order_id: str,
    payload: TransitionRequest,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Move an order to `target_status`. `expected_status` must be the status the
    caller last saw; a mismatch is rejected as a stale InvalidTransition (409).
    """
    return await order_ops.transition_order(
        db, actor, order_id, payload.expected_status, payload.target_status,
    )


@router.put("/{order_id}/items", response_model=OrderResponse)
async def replace_items(
    order_id: str,
    payload: ReplaceItemsRequest,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await order_ops.replace_items(db, actor, order_id, payload.expected_version, payload.items)
