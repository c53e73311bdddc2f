"""
Pizzeria POS — Menu Pydantic Schemas
"""
from pydantic import BaseModel, Field

from pizzeria.models.menu import ModifierKind


class CategoryResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    display_order: int

    model_config = {"from_attributes": True}


class MenuItemCreateRequest(BaseModel):
    category_id: str
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    price_cents: int = Field(..., gt=0)
    is_vegetarian: bool = False
    is_vegan: bool = False
    is_gluten_free: bool = False
    is_available: bool = True
    display_order: int = 0


class MenuItemUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    price_cents: int | None = Field(None, gt=0)
    is_vegetarian: bool | None = None
    is_vegan: bool | None = None
    is_gluten_free: bool | None = None
    is_available: bool | None = None
    display_order: int | None = None


class MenuItemResponse(BaseModel):
    id: str
    category_id: str
    name: str
    description: str | None = None
    price_cents: int
    is_vegetarian: bool
    is_vegan: bool
    is_gluten_free: bool
    is_available: bool
    display_order: int

    model_config = {"from_attributes": True}


class ModifierCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    kind: ModifierKind
    price_adjustment_cents: int = Field(0, ge=0)
    category_id: str | None = None
    is_available: bool = True
    display_order: int = 0


class ModifierUpdateRequest(BaseModel):
    price_adjustment_cents: int | None = Field(None, ge=0)
    is_available: bool | None = None
    display_order: int | None = None


class ModifierResponse(BaseModel):
    id: str
    name: str
    kind: ModifierKind
    price_adjustment_cents: int
    category_id: str | None = None
    is_available: bool
    display_order: int

    model_config = {"from_attributes": True}
