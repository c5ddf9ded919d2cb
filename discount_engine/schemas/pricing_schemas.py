# discount_engine/schemas/pricing_schemas.py
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from discount_engine.schemas.common_schemas import CartItem


class PreviewRequest(BaseModel):
    items: List[CartItem] = Field(..., min_length=1)


class AppliedRule(BaseModel):
    rule_id: int
    name: str
    discount_type: str
    discount_value: Decimal
    before: Decimal
    after: Decimal


class PricedLine(BaseModel):
    product_id: int
    name: Optional[str] = None
    quantity: int
    unit_base_price: Decimal
    unit_rule_price: Decimal
    unit_final_price: Decimal
    line_subtotal: Decimal
    line_total: Decimal
    line_discount: Decimal
    promo_discount: Decimal = Decimal("0")
    applied_rules: List[AppliedRule] = Field(default_factory=list)


class PricingResult(BaseModel):
    items: List[PricedLine]
    cart_subtotal: Decimal
    cart_discount_from_rules: Decimal
    cart_total_after_rules: Decimal


class PromoInfo(BaseModel):
    code: str
    discount_type: str
    discount_value: Decimal
    exclusive: bool


class PromoApplication(BaseModel):
    product_id: int
    before: Decimal
    after: Decimal
    unit_promo_discount: Decimal
    line_promo_discount: Decimal


class PromoPricingResult(PricingResult):
    promo: Optional[PromoInfo] = None
    promo_discount_total: Decimal = Decimal("0")
    cart_total_after_promo: Decimal
    promo_applications: List[PromoApplication] = Field(default_factory=list)
