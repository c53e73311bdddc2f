"""
Pizzeria POS — Kitchen display board
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import kitchen_area
from pizzeria.core.access_policy import ActorContext
from pizzeria.core.lifecycle import allowed_targets
from pizzeria.db import order_ops
from pizzeria.db.database import get_db
from pizzeria.schemas.order import OrderResponse

router = APIRouter(prefix="/kitchen", tags=["kitchen"])


class BoardEntry(OrderResponse):
    next_statuses: list[str]


@router.get("/board", response_model=list[BoardEntry])
async def kitchen_board(
    actor: ActorContext = Depends(kitchen_area),
    db: AsyncSession = Depends(get_db),
):
    """
    All PLACED, PREPARING, READY and DELIVERING orders, oldest first,
    each with the statuses it can legally move to next.
    """
    orders = await order_ops.kitchen_board(db)
    return [
        BoardEntry(
            **OrderResponse.model_validate(order).model_dump(),
            next_statuses=[s.value for s in allowed_targets(order.status, order.order_type)],
        )
        for order in orders
    ]
