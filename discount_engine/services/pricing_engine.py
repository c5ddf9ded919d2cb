"""
Rule-based cart pricing.

The core (`price_cart`) is a pure function of cart items, products and
rules, so identical inputs always price identically. `preview_pricing` only
adds loading: products by id and the rules live at the caller-supplied `now`.

Rounding policy: every intermediate unit price is quantized to
PRICE_DECIMAL_PLACES with ROUND_HALF_UP and clamped at zero; line and cart
amounts are exact products/sums of those quantized unit prices.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from discount_engine.core.exceptions import ValidationError
from discount_engine.models.discount_models import DiscountRule
from discount_engine.models.product_models import Product
from discount_engine.schemas.common_schemas import CartItem
from discount_engine.schemas.pricing_schemas import AppliedRule, PricedLine, PricingResult
from discount_engine.services.targeting import matches
from discount_engine.utils.decimal_utils import (
    HUNDRED, ZERO, clamp_non_negative, quantize_money, to_decimal,
)
from discount_engine.utils.time_utils import as_naive_utc

logger = logging.getLogger(__name__)


def apply_strategy(price, discount_type: str, discount_value) -> Decimal:
    """One discount step: percentage of the running price, or a fixed amount."""
    price = to_decimal(price)
    value = to_decimal(discount_value)
    if discount_type == "percentage":
        reduction = price * value / HUNDRED
    elif discount_type == "fixed":
        reduction = value
    else:
        raise ValidationError(f"Unknown discount type '{discount_type}'")
    return clamp_non_negative(quantize_money(price - reduction))


def order_rules(rules: Iterable) -> list:
    # ties on priority fall back to id so the order is total
    return sorted(rules, key=lambda r: (r.priority, r.id))


def price_line(product, quantity: int, compiled_rules: Sequence) -> PricedLine:
    """Price one line. `compiled_rules` is [(rule, targeting, bounds)] in priority order."""
    base = quantize_money(product.base_price)
    running = base
    applied: List[AppliedRule] = []

    for rule, targeting, bounds in compiled_rules:
        if not matches(targeting, product, bounds):
            continue
        new_price = apply_strategy(running, rule.discount_type, rule.discount_value)
        applied.append(
            AppliedRule(
                rule_id=rule.id,
                name=rule.name,
                discount_type=rule.discount_type,
                discount_value=to_decimal(rule.discount_value),
                before=running,
                after=new_price,
            )
        )
        running = new_price
        if rule.exclusive:
            break

    line_subtotal = base * quantity
    line_total = running * quantity
    return PricedLine(
        product_id=product.id,
        name=getattr(product, "name", None),
        quantity=quantity,
        unit_base_price=base,
        unit_rule_price=running,
        unit_final_price=running,
        line_subtotal=line_subtotal,
        line_total=line_total,
        line_discount=line_subtotal - line_total,
        applied_rules=applied,
    )


def summarize(lines: List[PricedLine]) -> PricingResult:
    cart_subtotal = sum((line.line_subtotal for line in lines), ZERO)
    rule_discount = sum(
        ((line.unit_base_price - line.unit_rule_price) * line.quantity for line in lines), ZERO
    )
    return PricingResult(
        items=lines,
        cart_subtotal=cart_subtotal,
        cart_discount_from_rules=rule_discount,
        cart_total_after_rules=cart_subtotal - rule_discount,
    )


def price_cart(items: Sequence[CartItem], products: Mapping[int, object], rules: Iterable) -> PricingResult:
    """
    Price a cart against rules that are already known to be live.

    Products missing from `products` are skipped without a line. Each line
    walks the rules in ascending priority; an exclusive match stops that
    line only.
    """
    compiled = [(rule, rule.targeting, rule.bounds) for rule in order_rules(rules)]
    lines = []
    for item in items:
        product = products.get(item.product_id)
        if product is None:
            continue
        lines.append(price_line(product, item.quantity, compiled))
    return summarize(lines)


# -----------------------
# Loading
# -----------------------
async def load_products(db: AsyncSession, product_ids: Iterable[int]) -> dict:
    ids = set(product_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(Product).where(Product.id.in_(ids), Product.is_deleted == False)
    )
    return {p.id: p for p in result.scalars().all()}


async def load_live_rules(db: AsyncSession, now: datetime) -> List[DiscountRule]:
    result = await db.execute(
        select(DiscountRule)
        .where(
            DiscountRule.is_active == True,
            DiscountRule.is_deleted == False,
            DiscountRule.start_date <= now,
            DiscountRule.end_date >= now,
        )
        .order_by(DiscountRule.priority.asc(), DiscountRule.id.asc())
    )
    return list(result.scalars().all())


async def load_pricing_inputs(db: AsyncSession, items: Sequence[CartItem], now: datetime):
    now = as_naive_utc(now)
    products = await load_products(db, (i.product_id for i in items))
    rules = await load_live_rules(db, now)
    return products, rules


async def preview_pricing(db: AsyncSession, items: Sequence[CartItem], now: datetime) -> PricingResult:
    """Rule-only pricing for a cart at `now`. Reads only."""
    products, rules = await load_pricing_inputs(db, items, now)
    result = price_cart(items, products, rules)
    logger.debug(
        "Priced %d/%d lines with %d live rules", len(result.items), len(items), len(rules)
    )
    return result
