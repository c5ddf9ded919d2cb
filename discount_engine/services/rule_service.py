import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from discount_engine.core.config import DEFAULT_PAGE_SIZE
from discount_engine.core.db import transaction
from discount_engine.core.exceptions import NotFoundError, ValidationError
from discount_engine.models.discount_models import DiscountRule, DiscountRuleTarget
from discount_engine.schemas.common_schemas import check_discount_value, reject_explicit_nulls
from discount_engine.schemas.discount_schemas import RULE_REQUIRED_FIELDS, RuleCreate, RuleUpdate, RuleOut
from discount_engine.services.query_helpers import paginate, parse_fields, project
from discount_engine.services.targeting import PRODUCT, CATEGORY, BRAND, TAG

logger = logging.getLogger(__name__)

RULE_COLUMNS = (
    "name", "description", "discount_type", "discount_value",
    "min_stock", "max_stock", "min_price", "max_price",
    "start_date", "end_date", "priority", "exclusive", "is_active",
)


def _username(current_user) -> Optional[str]:
    return getattr(current_user, "username", None)


def _check_merged(rule: DiscountRule):
    """Cross-field checks on the values a rule will hold after an update."""
    try:
        check_discount_value(rule.discount_type, rule.discount_value)
    except ValueError as e:
        raise ValidationError(str(e))
    if rule.start_date >= rule.end_date:
        raise ValidationError("Start date must be before end date")
    if rule.min_stock is not None and rule.max_stock is not None and rule.min_stock > rule.max_stock:
        raise ValidationError("min_stock cannot exceed max_stock")
    if rule.min_price is not None and rule.max_price is not None and rule.min_price > rule.max_price:
        raise ValidationError("min_price cannot exceed max_price")


# -----------------------
# READ
# -----------------------
async def get_rule(db: AsyncSession, rule_id: int, include_deleted: bool = False) -> DiscountRule:
    stmt = select(DiscountRule).where(DiscountRule.id == rule_id)
    if not include_deleted:
        stmt = stmt.where(DiscountRule.is_deleted == False)
    rule = (await db.execute(stmt)).scalar_one_or_none()
    if not rule:
        raise NotFoundError(f"Discount rule {rule_id} not found")
    return rule


async def list_rules(
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
    """
    Paginated rule listing.

    `archived` switches to soft-deleted rules only; otherwise they are hidden.
    `search` matches name, description, discount type or any tag target.
    `start_date`/`end_date` keep rules starting on/after and ending on/before.
    `fields` is a comma-separated projection; sensitive fields never appear.
    """
    filters = [DiscountRule.is_deleted == archived]

    if active_only:
        filters.append(DiscountRule.is_active == True)

    if search:
        pattern = f"%{search.strip()}%"
        filters.append(
            or_(
                DiscountRule.name.ilike(pattern),
                DiscountRule.description.ilike(pattern),
                DiscountRule.discount_type.ilike(pattern),
                DiscountRule.targets.any(
                    and_(DiscountRuleTarget.kind == TAG, DiscountRuleTarget.value.ilike(pattern))
                ),
            )
        )

    for kind, value in ((PRODUCT, product_id), (CATEGORY, category_id), (BRAND, brand_id)):
        if value is not None:
            filters.append(
                DiscountRule.targets.any(
                    and_(DiscountRuleTarget.kind == kind, DiscountRuleTarget.value == str(value))
                )
            )

    if start_date:
        filters.append(DiscountRule.start_date >= start_date)
    if end_date:
        filters.append(DiscountRule.end_date <= end_date)

    rules, pagination = await paginate(
        db,
        DiscountRule,
        filters,
        order_by=(DiscountRule.priority.asc(), DiscountRule.start_date.desc(), DiscountRule.id.asc()),
        page=page,
        page_size=page_size,
    )
    projection = parse_fields(fields)
    return {
        "message": "Discount rules fetched successfully",
        "rules": [project(RuleOut.model_validate(r), projection) for r in rules],
        "pagination": pagination,
    }


# -----------------------
# CREATE / UPDATE
# -----------------------
async def upsert_rule(
    db: AsyncSession,
    payload: Union[RuleCreate, RuleUpdate],
    current_user=None,
    rule_id: Optional[int] = None,
) -> DiscountRule:
    """Create a rule, or update rule `rule_id` with the fields set in `payload`."""
    async with transaction(db):
        if rule_id is None:
            if not isinstance(payload, RuleCreate):
                raise ValidationError("A full rule payload is required to create a rule")
            rule = DiscountRule(
                **payload.model_dump(include=set(RULE_COLUMNS)),
                created_by=_username(current_user),
            )
            rule.targeting = payload.targeting.to_targeting()
            db.add(rule)
        else:
            rule = await get_rule(db, rule_id)
            try:
                reject_explicit_nulls(payload, RULE_REQUIRED_FIELDS)
            except ValueError as e:
                raise ValidationError(str(e))
            update_data = payload.model_dump(exclude_unset=True, include=set(RULE_COLUMNS))
            for key, value in update_data.items():
                setattr(rule, key, value)
            if payload.targeting is not None:
                rule.targeting = payload.targeting.to_targeting()
            rule.updated_by = _username(current_user)
            _check_merged(rule)
            if rule.in_use:
                logger.warning(
                    "Rule %s is baked into the catalog; changes apply after it is re-applied", rule.id
                )
        await db.flush()

    await db.refresh(rule)
    logger.info("Upserted discount rule %s (%s)", rule.id, rule.name)
    return rule


# -----------------------
# STATE CHANGES
# -----------------------
async def toggle_rule_active(db: AsyncSession, rule_id: int, is_active: bool, current_user=None) -> DiscountRule:
    async with transaction(db):
        rule = await get_rule(db, rule_id)
        rule.set_active(is_active)
        rule.updated_by = _username(current_user)
    await db.refresh(rule)
    return rule


async def delete_rule(db: AsyncSession, rule_id: int, current_user=None) -> DiscountRule:
    """Soft delete; keeps the record for audit/history."""
    async with transaction(db):
        rule = await get_rule(db, rule_id)
        rule.soft_delete()
        rule.updated_by = _username(current_user)
    await db.refresh(rule)
    logger.info("Soft-deleted discount rule %s", rule_id)
    return rule


async def restore_rule(db: AsyncSession, rule_id: int, current_user=None) -> DiscountRule:
    async with transaction(db):
        rule = await get_rule(db, rule_id, include_deleted=True)
        rule.restore()
        rule.updated_by = _username(current_user)
    await db.refresh(rule)
    return rule
