"""
Pizzeria POS — Table Pydantic Schemas
"""
from pydantic import BaseModel, Field

from pizzeria.models.table import TableStatus
from pizzeria.schemas.order import OrderResponse


class TableCreateRequest(BaseModel):
    number: int = Field(..., ge=1)
    capacity: int = Field(..., ge=1, le=50)
    location: str = Field("Main", min_length=1, max_length=100)
    qr_code: str | None = Field(None, max_length=255)


class TableUpdateRequest(BaseModel):
    capacity: int | None = Field(None, ge=1, le=50)
    location: str | None = Field(None, min_length=1, max_length=100)
    qr_code: str | None = Field(None, max_length=255)


class TableStatusRequest(BaseModel):
    expected_status: TableStatus
    target_status: TableStatus
    reservation_ref: str | None = Field(None, max_length=64)


class TableResponse(BaseModel):
    id: str
    number: int
    capacity: int
    location: str
    status: TableStatus
    qr_code: str | None = None
    reservation_ref: str | None = None
    is_active: bool
    version_id: int

    model_config = {"from_attributes": True}


class TableDetailResponse(TableResponse):
    active_order: OrderResponse | None = None
