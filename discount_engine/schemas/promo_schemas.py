from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from decimal import Decimal

from discount_engine.models.promo_models import canonical_code
from discount_engine.schemas.common_schemas import (
    CartItem, DiscountType, NonNegativeDecimal, TargetingSchema, Pagination, check_discount_value,
    reject_explicit_nulls,
)
from discount_engine.services.targeting import Targeting
from discount_engine.utils.time_utils import as_naive_utc


class PromoBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: NonNegativeDecimal
    targeting: TargetingSchema = Field(default_factory=TargetingSchema)
    min_order_value: Optional[NonNegativeDecimal] = None
    customer_limit: Optional[int] = Field(None, ge=0)
    global_usage_limit: Optional[int] = Field(None, ge=0)
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    exclusive: bool = False

    @field_validator("code")
    @classmethod
    def canonicalize(cls, value: str) -> str:
        return canonical_code(value)

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, value: datetime) -> datetime:
        return as_naive_utc(value)

    @model_validator(mode="after")
    def check_consistency(self):
        check_discount_value(self.discount_type, self.discount_value)
        if self.start_date >= self.end_date:
            raise ValueError("Start date must be before end date")
        return self


class PromoCreate(PromoBase):
    pass


class PromoUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[NonNegativeDecimal] = None
    targeting: Optional[TargetingSchema] = None
    min_order_value: Optional[NonNegativeDecimal] = None
    customer_limit: Optional[int] = Field(None, ge=0)
    global_usage_limit: Optional[int] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    exclusive: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def canonicalize(cls, value: Optional[str]) -> Optional[str]:
        return canonical_code(value) if value is not None else None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value)

    @model_validator(mode="after")
    def check_not_null(self):
        reject_explicit_nulls(self, PROMO_REQUIRED_FIELDS)
        return self


PROMO_REQUIRED_FIELDS = (
    "code", "discount_type", "discount_value", "targeting", "start_date", "end_date",
    "is_active", "exclusive",
)


class PromoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    description: Optional[str] = None
    discount_type: str
    discount_value: Decimal
    targeting: TargetingSchema
    min_order_value: Optional[Decimal] = None
    customer_limit: Optional[int] = None
    global_usage_limit: Optional[int] = None
    used_count: int
    start_date: datetime
    end_date: datetime
    is_active: bool
    exclusive: bool
    is_deleted: bool
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("targeting", mode="before")
    @classmethod
    def unpack_targeting(cls, value):
        if isinstance(value, Targeting):
            return value.as_dict()
        return value


class PromoListResponse(BaseModel):
    message: str
    promos: List[Dict[str, Any]]
    pagination: Pagination


class ApplyPromoRequest(BaseModel):
    code: str = Field(..., min_length=1)
    items: List[CartItem] = Field(..., min_length=1)
    customer_id: Optional[str] = None


class CheckoutOrder(BaseModel):
    """Client-submitted order; only the items and the promo code are trusted."""
    items: List[CartItem] = Field(..., min_length=1)
    promo_code: Optional[str] = None
    customer_id: Optional[str] = None
