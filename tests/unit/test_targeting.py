"""
Unit Tests - Targeting matcher
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from discount_engine.services.targeting import (
    RangeBounds,
    Targeting,
    matches,
    matches_targeting,
)


def product(id=1, category_id=None, brand_id=None, tags=(), stock=10, base_price="100"):
    return SimpleNamespace(
        id=id,
        category_id=category_id,
        brand_id=brand_id,
        tag_names=frozenset(tags),
        stock=stock,
        base_price=Decimal(base_price),
    )


class TestTargeting:
    """Tests for the OR-across-present-sets matcher"""

    def test_empty_targeting_matches_nothing(self):
        assert Targeting().is_empty
        assert not matches_targeting(Targeting(), product(id=1, category_id=1, tags=("sale",)))

    @pytest.mark.parametrize(
        "targeting",
        [
            Targeting.build(product_ids=[7]),
            Targeting.build(category_ids=[3]),
            Targeting.build(brand_ids=[9]),
            Targeting.build(tags=["summer"]),
        ],
    )
    def test_any_single_set_can_match(self, targeting):
        p = product(id=7, category_id=3, brand_id=9, tags=("summer",))
        assert matches_targeting(targeting, p)

    def test_sets_are_ored(self):
        targeting = Targeting.build(product_ids=[1], category_ids=[42])
        assert matches_targeting(targeting, product(id=99, category_id=42))
        assert matches_targeting(targeting, product(id=1, category_id=5))
        assert not matches_targeting(targeting, product(id=2, category_id=5))

    def test_missing_product_attributes_do_not_match(self):
        targeting = Targeting.build(category_ids=[1], brand_ids=[1])
        assert not matches_targeting(targeting, product(id=5))

    def test_tags_are_trimmed_and_blank_tags_dropped(self):
        targeting = Targeting.build(tags=[" clearance ", "", "  "])
        assert targeting.tags == frozenset({"clearance"})

    def test_rows_round_trip(self):
        targeting = Targeting.build(product_ids=[2, 1], category_ids=[5], tags=["a"])
        rows = [SimpleNamespace(kind=k, value=v) for k, v in targeting.to_rows()]
        assert Targeting.from_rows(rows) == targeting


class TestRangeBounds:
    """Tests for optional stock/price bounds"""

    def test_no_bounds_always_contains(self):
        assert RangeBounds().contains(0, Decimal("0"))

    def test_zero_minimum_is_a_real_bound(self):
        bounds = RangeBounds(min_stock=0)
        assert bounds.contains(0, Decimal("10"))

    def test_stock_bounds(self):
        bounds = RangeBounds(min_stock=5, max_stock=10)
        assert bounds.contains(5, Decimal("1"))
        assert bounds.contains(10, Decimal("1"))
        assert not bounds.contains(4, Decimal("1"))
        assert not bounds.contains(11, Decimal("1"))

    def test_price_bounds_gate_a_targeting_hit(self):
        targeting = Targeting.build(category_ids=[1])
        bounds = RangeBounds(max_price=Decimal("50"))
        assert matches(targeting, product(category_id=1, base_price="50"), bounds)
        assert not matches(targeting, product(category_id=1, base_price="50.01"), bounds)
