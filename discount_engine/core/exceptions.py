# discount_engine/core/exceptions.py
from fastapi import HTTPException


class PricingError(HTTPException):
    """Base for every business error raised by the pricing services."""
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(status_code=self.status_code, detail=detail)


class ValidationError(PricingError):
    status_code = 400


class NotFoundError(PricingError):
    status_code = 404


class InactiveOrExpiredError(PricingError):
    status_code = 410


class LimitExceededError(PricingError):
    status_code = 409


class PromoLimitReachedError(LimitExceededError):
    """The promo ran out between pricing and the usage increment."""


class OrderConstraintError(PricingError):
    status_code = 422


class ConflictError(PricingError):
    status_code = 409


class InternalError(HTTPException):
    """Storage-layer failure; deliberately outside the PricingError tree."""

    def __init__(self, detail: str = "Internal error"):
        super().__init__(status_code=500, detail=detail)
