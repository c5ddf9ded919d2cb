"""
Integration Tests - Rule preview against the database
"""
from datetime import timedelta
from decimal import Decimal

from discount_engine.schemas.common_schemas import CartItem
from discount_engine.services.pricing_engine import preview_pricing
from discount_engine.services.rule_service import delete_rule


class TestPreviewPricing:
    """Tests for loading live rules and pricing a cart"""

    async def test_percentage_rule(self, db, make_product, make_rule, now):
        p1 = await make_product(base_price="100")
        await make_rule(discount_type="percentage", discount_value="10", priority=1, targeting={"product_ids": [p1.id]})

        result = await preview_pricing(db, [CartItem(product_id=p1.id, quantity=1)], now)

        line = result.items[0]
        assert line.unit_final_price == Decimal("90")
        assert line.line_discount == Decimal("10")

    async def test_exclusive_rule_wins(self, db, make_product, make_rule, now):
        p1 = await make_product(base_price="100")
        await make_rule(discount_type="fixed", discount_value="20", priority=1, exclusive=True,
                        targeting={"product_ids": [p1.id]})
        await make_rule(discount_type="percentage", discount_value="50", priority=2,
                        targeting={"product_ids": [p1.id]})

        result = await preview_pricing(db, [CartItem(product_id=p1.id, quantity=1)], now)

        assert result.items[0].unit_final_price == Decimal("80")
        assert len(result.items[0].applied_rules) == 1

    async def test_only_live_rules_are_used(self, db, make_product, make_rule, admin, now):
        product = await make_product(base_price="50", category_id=1)
        targeting = {"category_ids": [1]}
        await make_rule(name="inactive", is_active=False, targeting=targeting)
        await make_rule(
            name="future",
            start_date=now + timedelta(days=1),
            end_date=now + timedelta(days=2),
            targeting=targeting,
        )
        await make_rule(
            name="expired",
            start_date=now - timedelta(days=2),
            end_date=now - timedelta(days=1),
            targeting=targeting,
        )
        deleted = await make_rule(name="deleted", targeting=targeting)
        await delete_rule(db, deleted.id, admin)

        result = await preview_pricing(db, [CartItem(product_id=product.id, quantity=2)], now)

        assert result.items[0].applied_rules == []
        assert result.cart_total_after_rules == Decimal("100")

    async def test_rule_is_live_on_its_boundaries(self, db, make_product, make_rule, now):
        product = await make_product(base_price="10", tags=("edge",))
        await make_rule(start_date=now, end_date=now + timedelta(hours=1), targeting={"tags": ["edge"]})

        result = await preview_pricing(db, [CartItem(product_id=product.id, quantity=1)], now)

        assert result.items[0].unit_final_price == Decimal("9")

    async def test_stock_and_price_ranges(self, db, make_product, make_rule, now):
        cheap = await make_product(name="cheap", base_price="20", category_id=3, stock=50)
        pricey = await make_product(name="pricey", base_price="500", category_id=3, stock=50)
        scarce = await make_product(name="scarce", base_price="20", category_id=3, stock=1)
        await make_rule(
            targeting={"category_ids": [3]},
            min_stock=10,
            max_price=Decimal("100"),
        )

        items = [CartItem(product_id=p.id, quantity=1) for p in (cheap, pricey, scarce)]
        result = await preview_pricing(db, items, now)

        discounted = {line.product_id for line in result.items if line.applied_rules}
        assert discounted == {cheap.id}

    async def test_unknown_products_are_skipped(self, db, make_product, now):
        product = await make_product(base_price="5")

        result = await preview_pricing(
            db, [CartItem(product_id=product.id, quantity=3), CartItem(product_id=4040, quantity=1)], now
        )

        assert len(result.items) == 1
        assert result.cart_subtotal == Decimal("15")

    async def test_preview_is_repeatable(self, db, make_product, make_rule, now):
        product = await make_product(base_price="19.99", brand_id=8)
        await make_rule(discount_value="15", targeting={"brand_ids": [8]})
        await make_rule(discount_type="fixed", discount_value="0.50", priority=200, targeting={"brand_ids": [8]})
        items = [CartItem(product_id=product.id, quantity=4)]

        first = await preview_pricing(db, items, now)
        second = await preview_pricing(db, items, now)

        assert first == second
        # 19.99 -> 16.99 -> 16.49
        assert first.items[0].unit_final_price == Decimal("16.49")
        assert first.cart_total_after_rules == Decimal("65.96")
