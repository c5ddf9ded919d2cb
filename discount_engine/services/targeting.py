"""
Product targeting shared by discount rules and promo codes.

A Targeting is four optional sets. An empty set is "not a criterion"; a
product matches when it hits ANY non-empty set. A Targeting with every set
empty matches nothing.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple


PRODUCT = "product"
CATEGORY = "category"
BRAND = "brand"
TAG = "tag"
TARGET_KINDS = (PRODUCT, CATEGORY, BRAND, TAG)


@dataclass(frozen=True)
class Targeting:
    product_ids: frozenset = field(default_factory=frozenset)
    category_ids: frozenset = field(default_factory=frozenset)
    brand_ids: frozenset = field(default_factory=frozenset)
    tags: frozenset = field(default_factory=frozenset)

    @classmethod
    def build(cls, product_ids=(), category_ids=(), brand_ids=(), tags=()) -> "Targeting":
        return cls(
            product_ids=frozenset(int(i) for i in product_ids or ()),
            category_ids=frozenset(int(i) for i in category_ids or ()),
            brand_ids=frozenset(int(i) for i in brand_ids or ()),
            tags=frozenset(t.strip() for t in tags or () if t and t.strip()),
        )

    @classmethod
    def from_rows(cls, rows: Iterable) -> "Targeting":
        """Rebuild from target rows exposing `.kind` and `.value`."""
        buckets = {kind: [] for kind in TARGET_KINDS}
        for row in rows:
            buckets[row.kind].append(row.value)
        return cls.build(
            product_ids=buckets[PRODUCT],
            category_ids=buckets[CATEGORY],
            brand_ids=buckets[BRAND],
            tags=buckets[TAG],
        )

    def to_rows(self) -> List[Tuple[str, str]]:
        rows = [(PRODUCT, str(i)) for i in sorted(self.product_ids)]
        rows += [(CATEGORY, str(i)) for i in sorted(self.category_ids)]
        rows += [(BRAND, str(i)) for i in sorted(self.brand_ids)]
        rows += [(TAG, t) for t in sorted(self.tags)]
        return rows

    @property
    def is_empty(self) -> bool:
        return not (self.product_ids or self.category_ids or self.brand_ids or self.tags)

    def as_dict(self) -> dict:
        return {
            "product_ids": sorted(self.product_ids),
            "category_ids": sorted(self.category_ids),
            "brand_ids": sorted(self.brand_ids),
            "tags": sorted(self.tags),
        }


@dataclass(frozen=True)
class RangeBounds:
    min_stock: Optional[int] = None
    max_stock: Optional[int] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None

    def contains(self, stock, price) -> bool:
        if self.min_stock is not None and stock < self.min_stock:
            return False
        if self.max_stock is not None and stock > self.max_stock:
            return False
        if self.min_price is not None and price < self.min_price:
            return False
        if self.max_price is not None and price > self.max_price:
            return False
        return True


def matches_targeting(targeting: Targeting, product) -> bool:
    """OR across whichever targeting sets are non-empty."""
    if product.id in targeting.product_ids:
        return True
    if product.category_id is not None and product.category_id in targeting.category_ids:
        return True
    if product.brand_id is not None and product.brand_id in targeting.brand_ids:
        return True
    return bool(targeting.tags & product.tag_names)


def matches(targeting: Targeting, product, bounds: Optional[RangeBounds] = None) -> bool:
    if not matches_targeting(targeting, product):
        return False
    return bounds is None or bounds.contains(product.stock, product.base_price)

