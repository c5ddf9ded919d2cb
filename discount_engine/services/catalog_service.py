"""
Catalog baking: write a rule's discount straight into product price fields.

Apply and remove each run in one transaction. Apply leaves an
AppliedDiscount row per touched product, and remove restores exactly those
products, never re-matching by the rule's current targeting.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from discount_engine.core.config import PRICE_DECIMAL_PLACES
from discount_engine.core.db import transaction
from discount_engine.core.exceptions import (
    ConflictError, InactiveOrExpiredError, NotFoundError, ValidationError,
)
from discount_engine.models.discount_models import AppliedDiscount, DiscountRule
from discount_engine.models.product_models import Product, ProductTag
from discount_engine.schemas.discount_schemas import CatalogApplyResult, CatalogRemoveResult
from discount_engine.services.targeting import RangeBounds, Targeting
from discount_engine.utils.decimal_utils import to_decimal
from discount_engine.utils.time_utils import as_naive_utc, utcnow

logger = logging.getLogger(__name__)


# -----------------------
# SQL rendition of the targeting predicate
# -----------------------
def targeting_clause(targeting: Targeting):
    """SQL OR over the non-empty sets, or None when nothing is targeted."""
    conditions = []
    if targeting.product_ids:
        conditions.append(Product.id.in_(targeting.product_ids))
    if targeting.category_ids:
        conditions.append(Product.category_id.in_(targeting.category_ids))
    if targeting.brand_ids:
        conditions.append(Product.brand_id.in_(targeting.brand_ids))
    if targeting.tags:
        tagged = select(ProductTag.product_id).where(ProductTag.tag.in_(targeting.tags))
        conditions.append(Product.id.in_(tagged))
    if not conditions:
        return None
    return or_(*conditions)


def bounds_clauses(bounds: RangeBounds) -> list:
    clauses = []
    if bounds.min_stock is not None:
        clauses.append(Product.stock >= bounds.min_stock)
    if bounds.max_stock is not None:
        clauses.append(Product.stock <= bounds.max_stock)
    if bounds.min_price is not None:
        clauses.append(Product.base_price >= bounds.min_price)
    if bounds.max_price is not None:
        clauses.append(Product.base_price <= bounds.max_price)
    return clauses


def discounted_price_expr(discount_type: str, discount_value):
    """basePrice after the rule, rounded to currency precision, floored at 0."""
    value = to_decimal(discount_value)
    if discount_type == "percentage":
        raw = func.round(Product.base_price - Product.base_price * value / 100, PRICE_DECIMAL_PLACES)
    elif discount_type == "fixed":
        raw = Product.base_price - value
    else:
        raise ValidationError(f"Unknown discount type '{discount_type}'")
    return case((raw < 0, 0), else_=raw)


async def _lock_rule(db: AsyncSession, rule_id: int) -> DiscountRule:
    # Row lock serialises concurrent apply/remove of the same rule (no-op on SQLite)
    result = await db.execute(
        select(DiscountRule)
        .where(DiscountRule.id == rule_id, DiscountRule.is_deleted == False)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    rule = result.scalar_one_or_none()
    if not rule:
        raise NotFoundError(f"Discount rule {rule_id} not found")
    return rule


# -----------------------
# APPLY
# -----------------------
async def apply_rule_to_catalog(
    db: AsyncSession, rule_id: int, now: Optional[datetime] = None
) -> CatalogApplyResult:
    now = as_naive_utc(now) or utcnow()

    async with transaction(db):
        rule = await _lock_rule(db, rule_id)
        if not rule.is_active:
            raise InactiveOrExpiredError(f"Discount rule {rule_id} is inactive")
        if rule.in_use:
            raise ConflictError(f"Discount rule {rule_id} is already applied to the catalog")

        clause = targeting_clause(rule.targeting)
        if clause is None:
            raise ValidationError(f"Discount rule {rule_id} has no targets configured")

        # One baked rule per product
        baked_elsewhere = select(AppliedDiscount.product_id).where(
            AppliedDiscount.is_active == True,
            AppliedDiscount.rule_id != rule.id,
        )
        result = await db.execute(
            select(Product.id)
            .where(
                clause,
                Product.is_deleted == False,
                Product.id.not_in(baked_elsewhere),
                *bounds_clauses(rule.bounds),
            )
            .order_by(Product.id)
            .with_for_update()
        )
        product_ids = list(result.scalars().all())

        if not product_ids:
            logger.info("Rule %s matched no products; catalog unchanged", rule_id)
            return CatalogApplyResult(rule_id=rule_id, status="no_match", affected_count=0)

        new_price = discounted_price_expr(rule.discount_type, rule.discount_value)
        await db.execute(
            update(Product)
            .where(Product.id.in_(product_ids))
            .values(
                final_price=new_price,
                sale_price=new_price,
                discount=Product.base_price - new_price,
                discount_type=rule.discount_type,
                discount_value=rule.discount_value,
            )
            .execution_options(synchronize_session=False)
        )

        await db.execute(
            insert(AppliedDiscount),
            [
                {"rule_id": rule.id, "product_id": pid, "applied_at": now, "is_active": True}
                for pid in product_ids
            ],
        )

        rule.mark_applied()

    logger.info("Applied rule %s to %d products", rule_id, len(product_ids))
    return CatalogApplyResult(rule_id=rule_id, status="applied", affected_count=len(product_ids))


# -----------------------
# REMOVE
# -----------------------
async def remove_rule_from_catalog(
    db: AsyncSession, rule_id: int, now: Optional[datetime] = None
) -> CatalogRemoveResult:
    """
    Undo a bake. Only flips `in_use`; the rule's `is_active` flag is left
    as the operator set it.
    """
    now = as_naive_utc(now) or utcnow()

    async with transaction(db):
        rule = await _lock_rule(db, rule_id)

        result = await db.execute(
            select(AppliedDiscount.product_id).where(
                AppliedDiscount.rule_id == rule.id,
                AppliedDiscount.is_active == True,
            )
        )
        product_ids = list(result.scalars().all())

        if not product_ids:
            logger.info("Rule %s has no active catalog applications", rule_id)
            return CatalogRemoveResult(rule_id=rule_id, status="no_active_applications", restored_count=0)

        await db.execute(
            update(Product)
            .where(Product.id.in_(product_ids))
            .values(
                final_price=Product.base_price,
                sale_price=Product.base_price,
                discount=0,
                discount_type="none",
                discount_value=None,
            )
            .execution_options(synchronize_session=False)
        )

        await db.execute(
            update(AppliedDiscount)
            .where(AppliedDiscount.rule_id == rule.id, AppliedDiscount.is_active == True)
            .values(is_active=False, removed_at=now)
            .execution_options(synchronize_session=False)
        )

        rule.mark_removed()

    logger.info("Removed rule %s from %d products", rule_id, len(product_ids))
    return CatalogRemoveResult(rule_id=rule_id, status="removed", restored_count=len(product_ids))


async def list_applications(
    db: AsyncSession, rule_id: int, active_only: bool = True
) -> List[AppliedDiscount]:
    rule = (await db.execute(select(DiscountRule.id).where(DiscountRule.id == rule_id))).first()
    if not rule:
        raise NotFoundError(f"Discount rule {rule_id} not found")

    stmt = select(AppliedDiscount).where(AppliedDiscount.rule_id == rule_id)
    if active_only:
        stmt = stmt.where(AppliedDiscount.is_active == True)
    # rows may have been flipped by a bulk UPDATE in this session
    stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt.order_by(AppliedDiscount.applied_at.desc(), AppliedDiscount.id))
    return list(result.scalars().all())
