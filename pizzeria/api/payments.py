"""
Pizzeria POS — Payments API
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import admin_area, checkout, get_actor
from pizzeria.core.access_policy import ActorContext
from pizzeria.db import order_ops, payment_ops
from pizzeria.db.database import get_db
from pizzeria.schemas.payment import PaymentRequest, PaymentResponse

router = APIRouter(tags=["payments"])


@router.post(
    "/orders/{order_id}/payments",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment(
    order_id: str,
    payload: PaymentRequest,
    actor: ActorContext = Depends(checkout),
    db: AsyncSession = Depends(get_db),
):
    """
    Record a checkout. The processor's verdict is stored as COMPLETED or
    FAILED; a declined card still returns 201 with status FAILED.
    Kitchen accounts cannot take payments.
    """
    await order_ops.get_order(db, actor, order_id)
    return await payment_ops.process_payment(
        db, actor, order_id, payload.amount_cents, payload.method, payload.tip_cents,
    )


@router.get("/orders/{order_id}/payments", response_model=list[PaymentResponse])
async def list_payments(
    order_id: str,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    await order_ops.get_order(db, actor, order_id)
    return await payment_ops.list_payments(db, order_id)


@router.post(
    "/payments/{payment_id}/refund",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def refund_payment(
    payment_id: str,
    actor: ActorContext = Depends(admin_area),
    db: AsyncSession = Depends(get_db),
):
    return await payment_ops.refund_payment(db, actor, payment_id)
