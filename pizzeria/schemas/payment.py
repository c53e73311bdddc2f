"""
Pizzeria POS — Payment Pydantic Schemas
"""
from datetime import datetime
from pydantic import BaseModel, Field

from pizzeria.models.payment import PaymentMethod, PaymentStatus


class PaymentRequest(BaseModel):
    amount_cents: int
    method: PaymentMethod
    tip_cents: int | None = Field(None, description="Replaces the order's tip; total is recomputed")


class PaymentResponse(BaseModel):
    id: str
    order_id: str
    amount_cents: int
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: str | None = None
    processor_reference: str | None = None
    refund_of: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ReportSummary(BaseModel):
    orders_by_status: dict[str, int]
    gross_paid_cents: int
    refunded_cents: int
    net_paid_cents: int
