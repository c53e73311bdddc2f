"""
Pizzeria POS — Menu lookup and admin edits
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import admin_area
from pizzeria.core.access_policy import ActorContext
from pizzeria.core.errors import NotFound
from pizzeria.db.database import get_db
from pizzeria.models.menu import Category, MenuItem, Modifier
from pizzeria.schemas.menu import (
    CategoryResponse,
    MenuItemCreateRequest,
    MenuItemResponse,
    MenuItemUpdateRequest,
    ModifierCreateRequest,
    ModifierResponse,
    ModifierUpdateRequest,
)

router = APIRouter(tags=["menu"])


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Category).order_by(Category.display_order, Category.name))
    return result.scalars().all()


@router.get("/menu", response_model=list[MenuItemResponse])
async def list_menu(
    category: str | None = Query(None, description="Category id or name (case-insensitive)"),
    include_unavailable: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Menu items in display order, optionally for one category."""
    query = select(MenuItem).order_by(MenuItem.display_order, MenuItem.name).limit(limit)
    if category:
        result = await db.execute(
            select(Category).where(
                (Category.id == category) | (func.lower(Category.name) == category.lower())
            )
        )
        found = result.scalar_one_or_none()
        if found is None:
            raise NotFound("Category", category)
        query = query.where(MenuItem.category_id == found.id)
    if not include_unavailable:
        query = query.where(MenuItem.is_available.is_(True))
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/menu/modifiers", response_model=list[ModifierResponse])
async def list_modifiers(
    category_id: str | None = Query(None, description="Only options offered for this category"),
    include_unavailable: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Crust and topping options. Options without a category apply to every item."""
    query = select(Modifier).order_by(Modifier.kind, Modifier.display_order, Modifier.name)
    if category_id:
        query = query.where((Modifier.category_id == category_id) | Modifier.category_id.is_(None))
    if not include_unavailable:
        query = query.where(Modifier.is_available.is_(True))
    result = await db.execute(query)
    return result.scalars().all()


@router.post("/menu/items", response_model=MenuItemResponse, status_code=status.HTTP_201_CREATED)
async def create_menu_item(
    payload: MenuItemCreateRequest,
    actor: ActorContext = Depends(admin_area),
    db: AsyncSession = Depends(get_db),
):
    category = await db.get(Category, payload.category_id)
    if category is None:
        raise NotFound("Category", payload.category_id)
    item = MenuItem(**payload.model_dump())
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


@router.patch("/menu/items/{item_id}", response_model=MenuItemResponse)
async def update_menu_item(
    item_id: str,
    payload: MenuItemUpdateRequest,
    actor: ActorContext = Depends(admin_area),
    db: AsyncSession = Depends(get_db),
):
    """Price edits only affect orders placed afterwards; existing lines keep their snapshot."""
    item = await db.get(MenuItem, item_id)
    if item is None:
        raise NotFound("MenuItem", item_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update.")
    for field, value in changes.items():
        setattr(item, field, value)
    await db.commit()
    await db.refresh(item)
    return item


@router.post("/menu/modifiers", response_model=ModifierResponse, status_code=status.HTTP_201_CREATED)
async def create_modifier(
    payload: ModifierCreateRequest,
    actor: ActorContext = Depends(admin_area),
    db: AsyncSession = Depends(get_db),
):
    if payload.category_id is not None and await db.get(Category, payload.category_id) is None:
        raise NotFound("Category", payload.category_id)
    existing = await db.execute(select(Modifier).where(func.lower(Modifier.name) == payload.name.lower()))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Modifier '{payload.name}' already exists.")
    modifier = Modifier(**payload.model_dump())
    db.add(modifier)
    await db.commit()
    await db.refresh(modifier)
    return modifier


@router.patch("/menu/modifiers/{modifier_id}", response_model=ModifierResponse)
async def update_modifier(
    modifier_id: str,
    payload: ModifierUpdateRequest,
    actor: ActorContext = Depends(admin_area),
    db: AsyncSession = Depends(get_db),
):
    modifier = await db.get(Modifier, modifier_id)
    if modifier is None:
        raise NotFound("Modifier", modifier_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update.")
    for field, value in changes.items():
        setattr(modifier, field, value)
    await db.commit()
    await db.refresh(modifier)
    return modifier
