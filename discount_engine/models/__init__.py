# discount_engine/models/__init__.py
from discount_engine.models.product_models import Product, ProductTag
from discount_engine.models.discount_models import DiscountRule, DiscountRuleTarget, AppliedDiscount
from discount_engine.models.promo_models import PromoCode, PromoCodeTarget, PromoRedemption
