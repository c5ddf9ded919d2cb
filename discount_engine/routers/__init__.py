# discount_engine/routers/__init__.py

from .discount_router import router as discount_router
from .promo_router import router as promo_router
from .checkout_router import router as checkout_router

__all__ = [
    "discount_router",
    "promo_router",
    "checkout_router",
]
