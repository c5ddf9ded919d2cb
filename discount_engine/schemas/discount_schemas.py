from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from decimal import Decimal

from discount_engine.core.config import DEFAULT_RULE_PRIORITY
from discount_engine.schemas.common_schemas import (
    DiscountType, NonNegativeDecimal, TargetingSchema, Pagination, check_discount_value,
    reject_explicit_nulls,
)
from discount_engine.services.targeting import Targeting
from discount_engine.utils.time_utils import as_naive_utc


class RuleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: NonNegativeDecimal
    targeting: TargetingSchema = Field(default_factory=TargetingSchema)
    min_stock: Optional[int] = Field(None, ge=0)
    max_stock: Optional[int] = Field(None, ge=0)
    min_price: Optional[NonNegativeDecimal] = None
    max_price: Optional[NonNegativeDecimal] = None
    start_date: datetime
    end_date: datetime
    priority: int = DEFAULT_RULE_PRIORITY
    exclusive: bool = False
    is_active: bool = True

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, value: datetime) -> datetime:
        return as_naive_utc(value)

    @model_validator(mode="after")
    def check_consistency(self):
        check_discount_value(self.discount_type, self.discount_value)
        if self.start_date >= self.end_date:
            raise ValueError("Start date must be before end date")
        if self.min_stock is not None and self.max_stock is not None and self.min_stock > self.max_stock:
            raise ValueError("min_stock cannot exceed max_stock")
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price cannot exceed max_price")
        return self


class RuleCreate(RuleBase):
    pass


class RuleUpdate(BaseModel):
    """Partial update; cross-field checks run in the service against merged values."""
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[NonNegativeDecimal] = None
    targeting: Optional[TargetingSchema] = None
    min_stock: Optional[int] = Field(None, ge=0)
    max_stock: Optional[int] = Field(None, ge=0)
    min_price: Optional[NonNegativeDecimal] = None
    max_price: Optional[NonNegativeDecimal] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    priority: Optional[int] = None
    exclusive: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value)

    @model_validator(mode="after")
    def check_not_null(self):
        reject_explicit_nulls(self, RULE_REQUIRED_FIELDS)
        return self


RULE_REQUIRED_FIELDS = (
    "name", "discount_type", "discount_value", "targeting", "start_date", "end_date",
    "priority", "exclusive", "is_active",
)


class ToggleActive(BaseModel):
    is_active: bool


class RuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    discount_type: str
    discount_value: Decimal
    targeting: TargetingSchema
    min_stock: Optional[int] = None
    max_stock: Optional[int] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    start_date: datetime
    end_date: datetime
    priority: int
    exclusive: bool
    is_active: bool
    in_use: bool
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


class RuleListResponse(BaseModel):
    message: str
    rules: List[Dict[str, Any]]
    pagination: Pagination


# --------------------------
# Catalog mutation
# --------------------------
class CatalogApplyResult(BaseModel):
    rule_id: int
    status: str  # applied | no_match
    affected_count: int


class CatalogRemoveResult(BaseModel):
    rule_id: int
    status: str  # removed | no_active_applications
    restored_count: int


class AppliedDiscountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    rule_id: int
    product_id: int
    applied_at: datetime
    removed_at: Optional[datetime] = None
    is_active: bool
