"""
Pizzeria POS — Payment processor client

The POS only records outcomes. Card, mobile and gift-card payments are
charged through an external processor over HTTP; cash is settled at the
counter and never leaves the building.
"""
import logging
import uuid
from dataclasses import dataclass

import httpx

from pizzeria.core.config import get_settings
from pizzeria.models.payment import PaymentMethod

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    approved: bool
    transaction_id: str | None = None
    reference: str | None = None
    message: str | None = None


async def charge(payment_id: str, order_id: str, amount_cents: int, method: PaymentMethod) -> ChargeResult:
    """Charge `amount_cents`. Transport failures come back as a declined result, never raised."""
    if method == PaymentMethod.CASH:
        return ChargeResult(approved=True, reference="cash")

    if not settings.PAYMENT_PROCESSOR_URL:
        logger.warning("No payment processor configured; approving %s locally", payment_id)
        return ChargeResult(approved=True, transaction_id=f"SIM-{uuid.uuid4().hex[:12].upper()}", reference="simulated")

    headers = {"Idempotency-Key": payment_id}
    if settings.PAYMENT_PROCESSOR_API_KEY:
        headers["Authorization"] = f"Bearer {settings.PAYMENT_PROCESSOR_API_KEY}"

    try:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
            response = await client.post(
                f"{settings.PAYMENT_PROCESSOR_URL}/charges",
                json={
                    "payment_id": payment_id,
                    "order_id": order_id,
                    "amount_cents": amount_cents,
                    "method": method.value,
                },
                headers=headers,
            )
    except httpx.TimeoutException:
        logger.warning("Payment processor timed out for %s", payment_id)
        return ChargeResult(approved=False, reference="processor-timeout", message="Payment processor did not respond in time.")
    except httpx.RequestError as exc:
        logger.warning("Payment processor unreachable for %s: %s", payment_id, exc)
        return ChargeResult(approved=False, reference="processor-unreachable", message=str(exc)[:200])

    try:
        body = response.json()
    except ValueError:
        body = {}

    if not response.is_success:
        return ChargeResult(
            approved=False,
            reference=f"http-{response.status_code}",
            message=body.get("detail", "Payment declined."),
        )

    return ChargeResult(
        approved=bool(body.get("approved")),
        transaction_id=body.get("transaction_id"),
        reference=body.get("reference"),
        message=body.get("message"),
    )
