# discount_engine/schemas/common_schemas.py
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from typing_extensions import Annotated

from discount_engine.core.config import MAX_PERCENTAGE_DISCOUNT
from discount_engine.services.targeting import Targeting

DiscountType = Literal["percentage", "fixed"]
NonNegativeDecimal = Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]

# Never returned by list endpoints, whatever projection is requested
SENSITIVE_FIELDS = frozenset({"created_by", "updated_by"})


def check_discount_value(discount_type: Optional[str], discount_value: Optional[Decimal]):
    """Shared strategy bound: percentage in [0, MAX], fixed >= 0."""
    if discount_value is None:
        return
    if discount_value < 0:
        raise ValueError("Discount value must be non-negative")
    if discount_type == "percentage" and discount_value > MAX_PERCENTAGE_DISCOUNT:
        raise ValueError(f"Percentage discount must be between 0 and {MAX_PERCENTAGE_DISCOUNT}")


def reject_explicit_nulls(model: BaseModel, required: tuple):
    """Partial updates may omit a required column but never null it."""
    nulled = sorted(f for f in required if f in model.model_fields_set and getattr(model, f) is None)
    if nulled:
        raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")


class TargetingSchema(BaseModel):
    product_ids: List[int] = Field(default_factory=list)
    category_ids: List[int] = Field(default_factory=list)
    brand_ids: List[int] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    @field_validator("product_ids", "category_ids", "brand_ids", "tags", mode="before")
    @classmethod
    def sort_sets(cls, value):
        if isinstance(value, (set, frozenset)):
            return sorted(value)
        return value

    def to_targeting(self) -> Targeting:
        return Targeting.build(self.product_ids, self.category_ids, self.brand_ids, self.tags)

    @classmethod
    def from_targeting(cls, targeting: Targeting) -> "TargetingSchema":
        return cls(**targeting.as_dict())


class Pagination(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int


class CartItem(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)
