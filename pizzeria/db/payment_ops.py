"""
Pizzeria POS — Payment recording

A checkout runs in three steps:
  1. reserve: validate the balance, write a PENDING payment and bump the
              order's version_id in one commit (optimistic retry on conflict)
  2. charge: ask the processor (outside any transaction)
  3. settle: PENDING → COMPLETED or FAILED, exactly once

PENDING amounts count against the balance while they are in flight, so
concurrent checkouts can never push COMPLETED payments past the total.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.core import payment_processor
from pizzeria.core.access_policy import ActorContext
from pizzeria.core.errors import InvalidTransition, ValidationError
from pizzeria.core.optimistic_lock import StaleDataError, with_optimistic_retry
from pizzeria.db.repository import OrderRepository, PaymentRepository
from pizzeria.models.order import OrderStatus
from pizzeria.models.payment import Payment, PaymentMethod, PaymentStatus

logger = logging.getLogger(__name__)


@with_optimistic_retry()
async def reserve_payment(
    db: AsyncSession,
    actor: ActorContext,
    order_id: str,
    amount_cents: int,
    method: PaymentMethod,
    tip_cents: int | None = None,
) -> Payment:
    orders = OrderRepository(db)
    payments = PaymentRepository(db)

    order = await orders.get_or_raise(order_id)
    if order.status == OrderStatus.CANCELLED:
        raise ValidationError("Cancelled orders cannot take payments.")
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive.")

    tip = order.tip_cents if tip_cents is None else tip_cents
    if tip < 0:
        raise ValidationError("Tip cannot be negative.")
    total = order.subtotal_cents + order.tax_cents + tip

    committed = await payments.sum_for_order(order.id, PaymentStatus.COMPLETED, PaymentStatus.PENDING)
    if committed + amount_cents > total:
        raise ValidationError(
            f"Payment of {amount_cents} exceeds the outstanding balance of {max(total - committed, 0)}.",
        )

    bumped = await orders.compare_and_set(
        order.id, order.status, expected_version=order.version_id,
        tip_cents=tip, total_cents=total,
    )
    if not bumped:
        await db.rollback()
        raise StaleDataError(f"Order {order.id} changed while reserving a payment.")

    payment = Payment(
        order_id=order.id,
        amount_cents=amount_cents,
        method=method,
        status=PaymentStatus.PENDING,
        created_by=actor.user_id,
    )
    db.add(payment)
    await db.commit()
    return payment


async def settle_payment(db: AsyncSession, payment_id: str, result: payment_processor.ChargeResult) -> Payment:
    payments = PaymentRepository(db)
    outcome = PaymentStatus.COMPLETED if result.approved else PaymentStatus.FAILED
    settled = await payments.compare_and_set(
        payment_id, PaymentStatus.PENDING,
        status=outcome,
        transaction_id=result.transaction_id,
        processor_reference=result.reference,
    )
    if not settled:
        await db.rollback()
        current = await payments.get_or_raise(payment_id)
        raise InvalidTransition(current.status, outcome, stale=True)
    await db.commit()
    return await payments.get(payment_id)


async def process_payment(
    db: AsyncSession,
    actor: ActorContext,
    order_id: str,
    amount_cents: int,
    method: PaymentMethod,
    tip_cents: int | None = None,
) -> Payment:
    try:
        pending = await reserve_payment(db, actor, order_id, amount_cents, method, tip_cents)
    except Exception:
        await db.rollback()
        raise

    result = await payment_processor.charge(pending.id, order_id, amount_cents, method)
    payment = await settle_payment(db, pending.id, result)
    logger.info(
        "Payment %s for order %s: %s %d via %s",
        payment.id, order_id, payment.status.value, payment.amount_cents, method.value,
    )
    return payment


async def refund_payment(db: AsyncSession, actor: ActorContext, payment_id: str) -> Payment:
    """Record a REFUNDED row reversing a COMPLETED payment. The original is left untouched."""
    payments = PaymentRepository(db)
    original = await payments.get_or_raise(payment_id)
    if original.status != PaymentStatus.COMPLETED:
        raise ValidationError(f"Only completed payments can be refunded (this one is {original.status.value}).")
    if await payments.find_refund(original.id) is not None:
        raise ValidationError("Payment has already been refunded.")

    refund = Payment(
        order_id=original.order_id,
        amount_cents=original.amount_cents,
        method=original.method,
        status=PaymentStatus.REFUNDED,
        transaction_id=original.transaction_id,
        processor_reference=original.processor_reference,
        refund_of=original.id,
        created_by=actor.user_id,
    )
    db.add(refund)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError("Payment has already been refunded.")
    logger.info("Payment %s refunded by %s (%d)", original.id, actor.user_id, original.amount_cents)
    return await payments.get(refund.id)


async def list_payments(db: AsyncSession, order_id: str) -> list[Payment]:
    await OrderRepository(db).get_or_raise(order_id)
    return await PaymentRepository(db).list_for_order(order_id)
