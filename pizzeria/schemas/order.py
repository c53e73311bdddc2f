"""
Pizzeria POS — Order Pydantic Schemas

Quantities and line counts are checked by the lifecycle code so that they
come back as typed ValidationError bodies, not as request-parsing errors.
"""
from datetime import datetime
from pydantic import BaseModel, Field

from pizzeria.models.menu import ModifierKind
from pizzeria.models.order import OrderStatus, OrderType


class OrderLineRequest(BaseModel):
    menu_item_id: str = Field(..., examples=["item-001"])
    quantity: int = Field(..., le=50)
    modifier_ids: list[str] = Field(default_factory=list, max_length=15, description="Crust and topping ids")
    customizations: list[str] = Field(default_factory=list, max_length=10)
    notes: str | None = Field(None, max_length=255)


class OrderCreateRequest(BaseModel):
    order_type: OrderType
    items: list[OrderLineRequest] = Field(..., max_length=50)
    table_id: str | None = None
    reservation_ref: str | None = Field(None, max_length=64)
    customer_name: str | None = Field(None, max_length=255)
    special_notes: str | None = Field(None, max_length=500)


class TransitionRequest(BaseModel):
    expected_status: OrderStatus = Field(..., description="Status the actor last observed")
    target_status: OrderStatus


class ReplaceItemsRequest(BaseModel):
    expected_version: int = Field(..., ge=1)
    items: list[OrderLineRequest] = Field(..., max_length=50)


class ModifierSnapshot(BaseModel):
    id: str
    name: str
    kind: ModifierKind
    price_adjustment_cents: int


class OrderItemResponse(BaseModel):
    menu_item_id: str
    name: str
    unit_price_cents: int
    modifier_cents: int
    modifiers: list[ModifierSnapshot]
    quantity: int
    customizations: list[str]
    notes: str | None = None

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: str
    order_number: str
    order_type: OrderType
    status: OrderStatus
    items: list[OrderItemResponse]
    subtotal_cents: int
    tax_cents: int
    tip_cents: int
    total_cents: int
    table_id: str | None = None
    reservation_ref: str | None = None
    customer_name: str | None = None
    special_notes: str | None = None
    created_by: str
    estimated_completion_time: datetime | None = None
    version_id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
