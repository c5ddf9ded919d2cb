from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import datetime

from discount_engine.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from discount_engine.core.db import get_db
from discount_engine.schemas.discount_schemas import (
    RuleCreate, RuleUpdate, RuleOut, RuleListResponse, ToggleActive,
    CatalogApplyResult, CatalogRemoveResult, AppliedDiscountOut,
)
from discount_engine.schemas.pricing_schemas import PreviewRequest, PricingResult
from discount_engine.schemas.response_schemas import ResponseMessage
from discount_engine.services.catalog_service import (
    apply_rule_to_catalog, remove_rule_from_catalog, list_applications,
)
from discount_engine.services.pricing_engine import preview_pricing
from discount_engine.services.rule_service import (
    upsert_rule, list_rules, get_rule, toggle_rule_active, delete_rule, restore_rule,
)
from discount_engine.utils.check_roles import ADMIN, MANAGER, require_role
from discount_engine.utils.get_user import get_current_user
from discount_engine.utils.time_utils import as_naive_utc, utcnow

router = APIRouter(prefix="/discounts", tags=["Discounts"])


# -----------------------------------------------------------
# RULES
# -----------------------------------------------------------
@router.post("/rules", response_model=ResponseMessage[RuleOut])
@require_role([ADMIN])
async def route_create_rule(
    payload: RuleCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """
    Create a discount rule (e.g., 10% off a category for a weekend).
    Validates strategy bounds, schedule and range constraints.
    """
    rule = await upsert_rule(db, payload, _user)
    return {"message": "Discount rule created successfully", "data": RuleOut.model_validate(rule)}


@router.put("/rules/{rule_id}", response_model=ResponseMessage[RuleOut])
@require_role([ADMIN])
async def route_update_rule(
    rule_id: int,
    payload: RuleUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    rule = await upsert_rule(db, payload, _user, rule_id=rule_id)
    return {"message": "Discount rule updated successfully", "data": RuleOut.model_validate(rule)}


@router.get("/rules", response_model=RuleListResponse)
@require_role([ADMIN, MANAGER])
async def route_list_rules(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
    active_only: bool = Query(False, description="Only rules flagged active"),
    archived: bool = Query(False, description="Only soft-deleted rules"),
    search: Optional[str] = Query(None, description="Name, description, type or tag"),
    product_id: Optional[int] = Query(None),
    category_id: Optional[int] = Query(None),
    brand_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None, description="Rules starting on/after this time"),
    end_date: Optional[datetime] = Query(None, description="Rules ending on/before this time"),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    fields: Optional[str] = Query(None, description="Comma-separated projection, e.g. id,name,priority"),
):
    """
    Example:
    /discounts/rules?active_only=true&category_id=4
    /discounts/rules?search=summer&fields=id,name,priority
    """
    return await list_rules(
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


@router.get("/rules/{rule_id}", response_model=ResponseMessage[RuleOut])
@require_role([ADMIN, MANAGER])
async def route_get_rule(
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    rule = await get_rule(db, rule_id)
    return {"message": "Discount rule fetched successfully", "data": RuleOut.model_validate(rule)}


@router.patch("/rules/{rule_id}/toggle", response_model=ResponseMessage[RuleOut])
@require_role([ADMIN])
async def route_toggle_rule(
    rule_id: int,
    payload: ToggleActive,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    rule = await toggle_rule_active(db, rule_id, payload.is_active, _user)
    state = "activated" if rule.is_active else "deactivated"
    return {"message": f"Discount rule {state}", "data": RuleOut.model_validate(rule)}


@router.delete("/rules/{rule_id}", response_model=ResponseMessage[RuleOut])
@require_role([ADMIN])
async def route_delete_rule(
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """Soft delete a rule; keeps the record for audit/history."""
    rule = await delete_rule(db, rule_id, _user)
    return {"message": "Discount rule deleted", "data": RuleOut.model_validate(rule)}


@router.patch("/rules/{rule_id}/restore", response_model=ResponseMessage[RuleOut])
@require_role([ADMIN])
async def route_restore_rule(
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    rule = await restore_rule(db, rule_id, _user)
    return {"message": "Discount rule restored", "data": RuleOut.model_validate(rule)}


# -----------------------------------------------------------
# PREVIEW
# -----------------------------------------------------------
@router.post("/preview/rules", response_model=ResponseMessage[PricingResult])
async def route_preview_pricing(payload: PreviewRequest, db: AsyncSession = Depends(get_db)):
    """Price a cart with the rules live right now; nothing is stored."""
    pricing = await preview_pricing(db, payload.items, utcnow())
    return {"message": "Pricing computed", "data": pricing}


# -----------------------------------------------------------
# CATALOG BAKING
# -----------------------------------------------------------
@router.post("/rules/{rule_id}/catalog/apply", response_model=ResponseMessage[CatalogApplyResult])
@require_role([ADMIN])
async def route_apply_to_catalog(
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    result = await apply_rule_to_catalog(db, rule_id)
    message = "Rule applied to catalog" if result.status == "applied" else "No matching products found"
    return {"message": message, "data": result}


@router.post("/rules/{rule_id}/catalog/remove", response_model=ResponseMessage[CatalogRemoveResult])
@require_role([ADMIN])
async def route_remove_from_catalog(
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    result = await remove_rule_from_catalog(db, rule_id)
    message = "Rule removed from catalog" if result.status == "removed" else "No active applications found"
    return {"message": message, "data": result}


@router.get("/rules/{rule_id}/catalog/applications", response_model=ResponseMessage[List[AppliedDiscountOut]])
@require_role([ADMIN, MANAGER])
async def route_list_applications(
    rule_id: int,
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    rows = await list_applications(db, rule_id, active_only)
    return {
        "message": "Catalog applications fetched successfully",
        "data": [AppliedDiscountOut.model_validate(r) for r in rows],
    }
