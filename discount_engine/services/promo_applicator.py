import logging
from datetime import datetime
from typing import Mapping, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from discount_engine.core.exceptions import (
    InactiveOrExpiredError, LimitExceededError, NotFoundError, OrderConstraintError,
)
from discount_engine.models.promo_models import PromoCode, PromoRedemption
from discount_engine.schemas.common_schemas import CartItem
from discount_engine.schemas.pricing_schemas import (
    PricingResult, PromoApplication, PromoInfo, PromoPricingResult,
)
from discount_engine.services.pricing_engine import apply_strategy, load_pricing_inputs, price_cart
from discount_engine.services.promo_service import get_promo_by_code
from discount_engine.services.targeting import matches_targeting
from discount_engine.utils.decimal_utils import ZERO, clamp_non_negative, to_decimal
from discount_engine.utils.time_utils import as_naive_utc

logger = logging.getLogger(__name__)


async def resolve_promo(db: AsyncSession, code: str, now: datetime) -> PromoCode:
    promo = await get_promo_by_code(db, code)
    if not promo:
        raise NotFoundError("Invalid promo code")
    if not promo.is_live(now):
        raise InactiveOrExpiredError(f"Promo code {promo.code} is inactive or expired")
    return promo


async def count_customer_redemptions(db: AsyncSession, promo_id: int, customer_id: str) -> int:
    result = await db.execute(
        select(func.count(PromoRedemption.id)).where(
            PromoRedemption.promo_id == promo_id,
            PromoRedemption.customer_id == customer_id,
        )
    )
    return result.scalar() or 0


async def check_customer_limit(db: AsyncSession, promo: PromoCode, customer_id: Optional[str]):
    if promo.customer_limit is None or not customer_id:
        return
    used = await count_customer_redemptions(db, promo.id, customer_id)
    if used >= promo.customer_limit:
        logger.info("Customer %s reached the limit for promo %s", customer_id, promo.code)
        raise LimitExceededError(f"Promo code {promo.code} already used the maximum number of times")


def stack_promo(promo: PromoCode, priced: PricingResult, products: Mapping[int, object]) -> PromoPricingResult:
    """
    Layer the promo over rule-adjusted lines. Every promo discounts the
    rule-adjusted unit price; `exclusive` is reported back, not applied.
    """
    targeting = promo.targeting
    lines = [line.model_copy(deep=True) for line in priced.items]
    applications = []

    for line in lines:
        product = products.get(line.product_id)
        if product is None or not matches_targeting(targeting, product):
            continue

        before = line.unit_rule_price
        after = apply_strategy(before, promo.discount_type, promo.discount_value)
        unit_promo_discount = before - after
        line_promo_discount = unit_promo_discount * line.quantity

        line.unit_final_price = after
        line.line_total = after * line.quantity
        line.line_discount = line.line_subtotal - line.line_total
        line.promo_discount = line_promo_discount

        if line_promo_discount > 0:
            applications.append(
                PromoApplication(
                    product_id=line.product_id,
                    before=before,
                    after=after,
                    unit_promo_discount=unit_promo_discount,
                    line_promo_discount=line_promo_discount,
                )
            )

    cart_subtotal = sum((line.line_subtotal for line in lines), ZERO)
    rule_discount = sum(
        ((line.unit_base_price - line.unit_rule_price) * line.quantity for line in lines), ZERO
    )
    promo_discount_total = sum((line.promo_discount for line in lines), ZERO)
    cart_total_after_rules = cart_subtotal - rule_discount

    return PromoPricingResult(
        items=lines,
        cart_subtotal=cart_subtotal,
        cart_discount_from_rules=rule_discount,
        cart_total_after_rules=cart_total_after_rules,
        promo=PromoInfo(
            code=promo.code,
            discount_type=promo.discount_type,
            discount_value=to_decimal(promo.discount_value),
            exclusive=promo.exclusive,
        ),
        promo_discount_total=promo_discount_total,
        cart_total_after_promo=clamp_non_negative(cart_total_after_rules - promo_discount_total),
        promo_applications=applications,
    )


def check_order_constraints(promo: PromoCode, result: PromoPricingResult):
    # Compared against the total after rules AND the promo
    if promo.min_order_value is not None and result.cart_total_after_promo < promo.min_order_value:
        raise OrderConstraintError(
            f"Minimum order value {promo.min_order_value} not met for promo {promo.code}"
        )


async def price_with_promo(
    db: AsyncSession,
    code: str,
    items: Sequence[CartItem],
    customer_id: Optional[str],
    now: datetime,
) -> Tuple[PromoCode, PromoPricingResult]:
    now = as_naive_utc(now)
    promo = await resolve_promo(db, code, now)

    # Optimistic; the authoritative check is the conditional increment at checkout
    if promo.is_exhausted:
        raise LimitExceededError(f"Promo code {promo.code} usage limit reached")
    await check_customer_limit(db, promo, customer_id)

    products, rules = await load_pricing_inputs(db, items, now)
    priced = price_cart(items, products, rules)
    result = stack_promo(promo, priced, products)
    check_order_constraints(promo, result)
    return promo, result


async def apply_promo(
    db: AsyncSession,
    code: str,
    items: Sequence[CartItem],
    customer_id: Optional[str],
    now: datetime,
) -> PromoPricingResult:
    """Price a cart with rules, then stack promo `code` on top. Reads only."""
    _, result = await price_with_promo(db, code, items, customer_id, now)
    return result
