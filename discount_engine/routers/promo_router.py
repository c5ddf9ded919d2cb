from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import datetime

from discount_engine.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from discount_engine.core.db import get_db
from discount_engine.schemas.discount_schemas import ToggleActive
from discount_engine.schemas.pricing_schemas import PromoPricingResult
from discount_engine.schemas.promo_schemas import (
    PromoCreate, PromoUpdate, PromoOut, PromoListResponse, ApplyPromoRequest,
)
from discount_engine.schemas.response_schemas import ResponseMessage
from discount_engine.services.promo_applicator import apply_promo
from discount_engine.services.promo_service import (
    upsert_promo, list_promos, get_promo, toggle_promo_active, delete_promo, restore_promo,
)
from discount_engine.utils.check_roles import ADMIN, MANAGER, require_role
from discount_engine.utils.get_user import get_current_user
from discount_engine.utils.time_utils import as_naive_utc, utcnow

router = APIRouter(prefix="/discounts/promo", tags=["Promo Codes"])


@router.post("", response_model=ResponseMessage[PromoOut])
@require_role([ADMIN])
async def route_create_promo(
    payload: PromoCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """Create a promo code; the code is stored upper-case."""
    promo = await upsert_promo(db, payload, _user)
    return {"message": "Promo code created successfully", "data": PromoOut.model_validate(promo)}


@router.put("/{promo_id}", response_model=ResponseMessage[PromoOut])
@require_role([ADMIN])
async def route_update_promo(
    promo_id: int,
    payload: PromoUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    promo = await upsert_promo(db, payload, _user, promo_id=promo_id)
    return {"message": "Promo code updated successfully", "data": PromoOut.model_validate(promo)}


@router.get("", response_model=PromoListResponse)
@require_role([ADMIN, MANAGER])
async def route_list_promos(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
    active_only: bool = Query(False),
    archived: bool = Query(False),
    search: Optional[str] = Query(None, description="Code, description, type or tag"),
    product_id: Optional[int] = Query(None),
    category_id: Optional[int] = Query(None),
    brand_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    fields: Optional[str] = Query(None),
):
    return await list_promos(
        db,
        active_only=active_only,
        archived=archived,
        search=search,
        product_id=product_id,
        category_id=category_id,
        brand_id=brand_id,
        start_date=as_naive_utc(start_date),
        end_date=as_naive_utc(end_date),
        page=page,
        page_size=page_size,
        fields=fields,
    )


@router.get("/{promo_id}", response_model=ResponseMessage[PromoOut])
@require_role([ADMIN, MANAGER])
async def route_get_promo(
    promo_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    promo = await get_promo(db, promo_id)
    return {"message": "Promo code fetched successfully", "data": PromoOut.model_validate(promo)}


@router.patch("/{promo_id}/toggle", response_model=ResponseMessage[PromoOut])
@require_role([ADMIN])
async def route_toggle_promo(
    promo_id: int,
    payload: ToggleActive,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    promo = await toggle_promo_active(db, promo_id, payload.is_active, _user)
    state = "activated" if promo.is_active else "deactivated"
    return {"message": f"Promo code {state}", "data": PromoOut.model_validate(promo)}


@router.delete("/{promo_id}", response_model=ResponseMessage[PromoOut])
@require_role([ADMIN])
async def route_delete_promo(
    promo_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    promo = await delete_promo(db, promo_id, _user)
    return {"message": "Promo code deleted", "data": PromoOut.model_validate(promo)}


@router.patch("/{promo_id}/restore", response_model=ResponseMessage[PromoOut])
@require_role([ADMIN])
async def route_restore_promo(
    promo_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    promo = await restore_promo(db, promo_id, _user)
    return {"message": "Promo code restored", "data": PromoOut.model_validate(promo)}


@router.post("/apply", response_model=ResponseMessage[PromoPricingResult])
async def route_apply_promo(payload: ApplyPromoRequest, db: AsyncSession = Depends(get_db)):
    """Stack a promo on top of rule pricing for a cart; usage is not counted here."""
    pricing = await apply_promo(db, payload.code, payload.items, payload.customer_id, utcnow())
    return {"message": "Promo code applied", "data": pricing}
