import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from discount_engine.core.config import DEFAULT_PAGE_SIZE
from discount_engine.core.db import transaction
from discount_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from discount_engine.models.promo_models import PromoCode, PromoCodeTarget, canonical_code
from discount_engine.schemas.common_schemas import check_discount_value, reject_explicit_nulls
from discount_engine.schemas.promo_schemas import PROMO_REQUIRED_FIELDS, PromoCreate, PromoUpdate, PromoOut
from discount_engine.services.query_helpers import paginate, parse_fields, project
from discount_engine.services.targeting import PRODUCT, CATEGORY, BRAND, TAG

logger = logging.getLogger(__name__)

PROMO_COLUMNS = (
    "code", "description", "discount_type", "discount_value",
    "min_order_value", "customer_limit", "global_usage_limit",
    "start_date", "end_date", "is_active", "exclusive",
)


async def _ensure_code_free(db: AsyncSession, code: str, promo_id: Optional[int] = None):
    # Codes stay reserved by soft-deleted promos too (unique column)
    stmt = select(PromoCode.id).where(PromoCode.code == code)
    if promo_id is not None:
        stmt = stmt.where(PromoCode.id != promo_id)
    if (await db.execute(stmt)).first():
        raise ConflictError(f"Promo code '{code}' already exists")


async def get_promo(db: AsyncSession, promo_id: int, include_deleted: bool = False) -> PromoCode:
    stmt = select(PromoCode).where(PromoCode.id == promo_id)
    if not include_deleted:
        stmt = stmt.where(PromoCode.is_deleted == False)
    promo = (await db.execute(stmt)).scalar_one_or_none()
    if not promo:
        raise NotFoundError(f"Promo code {promo_id} not found")
    return promo


async def get_promo_by_code(db: AsyncSession, code: str) -> Optional[PromoCode]:
    result = await db.execute(
        select(PromoCode).where(PromoCode.code == canonical_code(code), PromoCode.is_deleted == False)
    )
    return result.scalar_one_or_none()


async def list_promos(
    db: AsyncSession,
    active_only: bool = False,
    archived: bool = False,
    search: Optional[str] = None,
    product_id: Optional[int] = None,
    category_id: Optional[int] = None,
    brand_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    fields: Optional[str] = None,
) -> dict:
    filters = [PromoCode.is_deleted == archived]

    if active_only:
        filters.append(PromoCode.is_active == True)

    if search:
        pattern = f"%{search.strip()}%"
        filters.append(
            or_(
                PromoCode.code.ilike(pattern),
                PromoCode.description.ilike(pattern),
                PromoCode.discount_type.ilike(pattern),
                PromoCode.targets.any(
                    and_(PromoCodeTarget.kind == TAG, PromoCodeTarget.value.ilike(pattern))
                ),
            )
        )

    for kind, value in ((PRODUCT, product_id), (CATEGORY, category_id), (BRAND, brand_id)):
        if value is not None:
            filters.append(
                PromoCode.targets.any(
                    and_(PromoCodeTarget.kind == kind, PromoCodeTarget.value == str(value))
                )
            )

    if start_date:
        filters.append(PromoCode.start_date >= start_date)
    if end_date:
        filters.append(PromoCode.end_date <= end_date)

    promos, pagination = await paginate(
        db,
        PromoCode,
        filters,
        order_by=(PromoCode.start_date.desc(), PromoCode.id.asc()),
        page=page,
        page_size=page_size,
    )
    projection = parse_fields(fields)
    return {
        "message": "Promo codes fetched successfully",
        "promos": [project(PromoOut.model_validate(p), projection) for p in promos],
        "pagination": pagination,
    }


async def upsert_promo(
    db: AsyncSession,
    payload: Union[PromoCreate, PromoUpdate],
    current_user=None,
    promo_id: Optional[int] = None,
) -> PromoCode:
    """
    Create a promo code, or update promo `promo_id` with the fields set in
    `payload`. `used_count` is never writable from here.
    """
    username = getattr(current_user, "username", None)
    async with transaction(db):
        if promo_id is None:
            if not isinstance(payload, PromoCreate):
                raise ValidationError("A full promo payload is required to create a promo code")
            await _ensure_code_free(db, payload.code)
            promo = PromoCode(**payload.model_dump(include=set(PROMO_COLUMNS)), created_by=username)
            promo.targeting = payload.targeting.to_targeting()
            db.add(promo)
        else:
            promo = await get_promo(db, promo_id)
            try:
                reject_explicit_nulls(payload, PROMO_REQUIRED_FIELDS)
            except ValueError as e:
                raise ValidationError(str(e))
            update_data = payload.model_dump(exclude_unset=True, include=set(PROMO_COLUMNS))
            if "code" in update_data and update_data["code"] != promo.code:
                await _ensure_code_free(db, update_data["code"], promo_id)
            for key, value in update_data.items():
                setattr(promo, key, value)
            if payload.targeting is not None:
                promo.targeting = payload.targeting.to_targeting()
            promo.updated_by = username

            try:
                check_discount_value(promo.discount_type, promo.discount_value)
            except ValueError as e:
                raise ValidationError(str(e))
            if promo.start_date >= promo.end_date:
                raise ValidationError("Start date must be before end date")
            if promo.global_usage_limit is not None and promo.used_count > promo.global_usage_limit:
                raise ValidationError(
                    f"Usage limit cannot drop below the {promo.used_count} redemptions already made"
                )
        await db.flush()

    await db.refresh(promo)
    logger.info("Upserted promo code %s", promo.code)
    return promo


async def toggle_promo_active(db: AsyncSession, promo_id: int, is_active: bool, current_user=None) -> PromoCode:
    async with transaction(db):
        promo = await get_promo(db, promo_id)
        promo.set_active(is_active)
        promo.updated_by = getattr(current_user, "username", None)
    await db.refresh(promo)
    return promo


async def delete_promo(db: AsyncSession, promo_id: int, current_user=None) -> PromoCode:
    async with transaction(db):
        promo = await get_promo(db, promo_id)
        promo.soft_delete()
        promo.updated_by = getattr(current_user, "username", None)
    await db.refresh(promo)
    logger.info("Soft-deleted promo code %s", promo.code)
    return promo


async def restore_promo(db: AsyncSession, promo_id: int, current_user=None) -> PromoCode:
    async with transaction(db):
        promo = await get_promo(db, promo_id, include_deleted=True)
        promo.restore()
        promo.updated_by = getattr(current_user, "username", None)
    await db.refresh(promo)
    return promo
