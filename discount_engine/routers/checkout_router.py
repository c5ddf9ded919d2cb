from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from discount_engine.core.db import get_db, transaction
from discount_engine.schemas.pricing_schemas import PromoPricingResult
from discount_engine.schemas.promo_schemas import CheckoutOrder
from discount_engine.schemas.response_schemas import ResponseMessage
from discount_engine.services.checkout_service import finalize_checkout
from discount_engine.utils.time_utils import utcnow

router = APIRouter(prefix="/discounts/checkout", tags=["Checkout"])


@router.post("", response_model=ResponseMessage[PromoPricingResult])
async def route_checkout(order: CheckoutOrder, db: AsyncSession = Depends(get_db)):
    """
    Finalize discounts for an order. Client totals are ignored; pricing is
    recomputed and the promo redemption is committed atomically.
    """
    async with transaction(db):
        pricing = await finalize_checkout(db, order, utcnow())
        # The order service writes the order on this same session before commit.
    return {"message": "Checkout pricing finalized", "data": pricing}
