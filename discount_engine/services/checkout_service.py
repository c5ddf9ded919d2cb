import logging
from datetime import datetime

from sqlalchemy import update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from discount_engine.core.exceptions import PromoLimitReachedError
from discount_engine.models.promo_models import PromoCode, PromoRedemption
from discount_engine.schemas.pricing_schemas import PromoPricingResult
from discount_engine.schemas.promo_schemas import CheckoutOrder
from discount_engine.services.pricing_engine import preview_pricing
from discount_engine.services.promo_applicator import check_customer_limit, price_with_promo
from discount_engine.utils.time_utils import as_naive_utc

logger = logging.getLogger(__name__)


async def claim_promo_usage(db: AsyncSession, promo_id: int, now: datetime) -> None:
    """
    Count one redemption with a single conditional UPDATE.

    The limit check and the increment happen in the same statement, so
    two checkouts racing for the last use cannot both succeed. Zero rows
    affected means the promo ran out (or expired) since it was priced.
    """
    now = as_naive_utc(now)
    stmt = (
        update(PromoCode)
        .where(
            PromoCode.id == promo_id,
            PromoCode.is_active == True,
            PromoCode.is_deleted == False,
            PromoCode.start_date <= now,
            PromoCode.end_date >= now,
            or_(
                PromoCode.global_usage_limit.is_(None),
                PromoCode.global_usage_limit > PromoCode.used_count,
            ),
        )
        .values(used_count=PromoCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        logger.warning("Promo %s could not be claimed at checkout", promo_id)
        raise PromoLimitReachedError("Promo usage could not be updated (limit reached or expired)")


async def finalize_checkout(db: AsyncSession, order: CheckoutOrder, now: datetime) -> PromoPricingResult:
    """
    Recompute the order's pricing server-side and account for promo usage.

    Must run inside the caller's transaction: nothing is committed here, and
    the caller persists the order in the same transaction before committing.
    Any exception means the caller has to roll back.
    """
    now = as_naive_utc(now)

    if not order.promo_code:
        pricing = await preview_pricing(db, order.items, now)
        return PromoPricingResult(
            **pricing.model_dump(),
            cart_total_after_promo=pricing.cart_total_after_rules,
        )

    promo, pricing = await price_with_promo(db, order.promo_code, order.items, order.customer_id, now)
    await claim_promo_usage(db, promo.id, now)

    if order.customer_id:
        # re-checked inside the checkout transaction
        await check_customer_limit(db, promo, order.customer_id)
        db.add(PromoRedemption(promo_id=promo.id, customer_id=order.customer_id, redeemed_at=now))
        await db.flush()

    logger.info("Promo %s redeemed at checkout", promo.code)
    return pricing
