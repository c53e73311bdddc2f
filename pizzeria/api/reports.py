"""
Pizzeria POS — Admin reports
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import admin_area
from pizzeria.core.access_policy import ActorContext
from pizzeria.db.database import get_db
from pizzeria.db.repository import OrderRepository, PaymentRepository
from pizzeria.models.order import OrderStatus
from pizzeria.models.payment import PaymentStatus
from pizzeria.schemas.payment import ReportSummary

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/summary", response_model=ReportSummary)
async def summary(
    actor: ActorContext = Depends(admin_area),
    db: AsyncSession = Depends(get_db),
):
    counts = await OrderRepository(db).count_by_status()
    payments = PaymentRepository(db)
    gross = await payments.sum_all(PaymentStatus.COMPLETED)
    refunded = await payments.sum_all(PaymentStatus.REFUNDED)
    return ReportSummary(
        orders_by_status={s.value: counts.get(s, 0) for s in OrderStatus},
        gross_paid_cents=gross,
        refunded_cents=refunded,
        net_paid_cents=gross - refunded,
    )
