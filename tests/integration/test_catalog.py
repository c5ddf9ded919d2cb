"""
Integration Tests - Baking rules into catalog prices
"""
from decimal import Decimal

import pytest
from sqlalchemy import select

from discount_engine.core.exceptions import (
    ConflictError,
    InactiveOrExpiredError,
    NotFoundError,
    ValidationError,
)
from discount_engine.models.discount_models import AppliedDiscount
from discount_engine.models.product_models import Product
from discount_engine.schemas.common_schemas import TargetingSchema
from discount_engine.schemas.discount_schemas import RuleUpdate
from discount_engine.services.catalog_service import (
    apply_rule_to_catalog,
    list_applications,
    remove_rule_from_catalog,
)
from discount_engine.services.rule_service import delete_rule, get_rule, toggle_rule_active, upsert_rule


async def reload(db, product):
    await db.refresh(product)
    return product


class TestApplyRule:
    """Tests for writing a rule's discount into product prices"""

    async def test_apply_and_remove_category_rule(self, db, make_product, make_rule, now):
        products = [await make_product(name=f"C{i}", base_price="200", category_id=9) for i in range(3)]
        other = await make_product(name="other", base_price="200", category_id=1)
        rule = await make_rule(discount_value="25", targeting={"category_ids": [9]})

        applied = await apply_rule_to_catalog(db, rule.id, now)

        assert applied.status == "applied"
        assert applied.affected_count == 3
        for product in products:
            await reload(db, product)
            assert product.final_price == Decimal("150")
            assert product.sale_price == Decimal("150")
            assert product.discount == Decimal("50")
            assert product.discount_type == "percentage"
        assert (await reload(db, other)).final_price == Decimal("200")
        assert len(await list_applications(db, rule.id)) == 3
        assert (await get_rule(db, rule.id)).in_use is True

        removed = await remove_rule_from_catalog(db, rule.id, now)

        assert removed.status == "removed"
        assert removed.restored_count == 3
        for product in products:
            await reload(db, product)
            assert product.final_price == Decimal("200")
            assert product.sale_price == Decimal("200")
            assert product.discount == Decimal("0")
            assert product.discount_type == "none"
        assert await list_applications(db, rule.id) == []
        history = await list_applications(db, rule.id, active_only=False)
        assert len(history) == 3
        assert all(not a.is_active and a.removed_at == now for a in history)

        rule = await get_rule(db, rule.id)
        assert rule.in_use is False
        assert rule.is_active is True

    async def test_fixed_discount_clamps_at_zero(self, db, make_product, make_rule, now):
        product = await make_product(base_price="15", tags=("cheap",))
        rule = await make_rule(discount_type="fixed", discount_value="40", targeting={"tags": ["cheap"]})

        await apply_rule_to_catalog(db, rule.id, now)

        await reload(db, product)
        assert product.final_price == Decimal("0")
        assert product.discount == Decimal("15")

    async def test_percentage_is_rounded_to_cents(self, db, make_product, make_rule, now):
        product = await make_product(base_price="19.99", brand_id=4)
        rule = await make_rule(discount_value="15", targeting={"brand_ids": [4]})

        await apply_rule_to_catalog(db, rule.id, now)

        assert (await reload(db, product)).final_price == Decimal("16.99")

    async def test_respects_ranges(self, db, make_product, make_rule, now):
        stocked = await make_product(name="stocked", base_price="50", category_id=2, stock=100)
        scarce = await make_product(name="scarce", base_price="50", category_id=2, stock=1)
        rule = await make_rule(discount_value="10", targeting={"category_ids": [2]}, min_stock=10)

        result = await apply_rule_to_catalog(db, rule.id, now)

        assert result.affected_count == 1
        assert (await reload(db, stocked)).final_price == Decimal("45")
        assert (await reload(db, scarce)).final_price == Decimal("50")


class TestApplyGuards:
    """Tests for rejected and no-op catalog mutations"""

    async def test_missing_rule(self, db):
        with pytest.raises(NotFoundError):
            await apply_rule_to_catalog(db, 12345)

    async def test_inactive_rule(self, db, make_product, make_rule, admin, now):
        await make_product(category_id=1)
        rule = await make_rule(targeting={"category_ids": [1]})
        await toggle_rule_active(db, rule.id, False, admin)

        with pytest.raises(InactiveOrExpiredError):
            await apply_rule_to_catalog(db, rule.id, now)

    async def test_rule_without_targets(self, db, make_product, make_rule, now):
        await make_product()
        rule = await make_rule()

        with pytest.raises(ValidationError):
            await apply_rule_to_catalog(db, rule.id, now)

    async def test_double_apply_conflicts(self, db, make_product, make_rule, now):
        await make_product(category_id=1)
        rule = await make_rule(targeting={"category_ids": [1]})
        rule_id = rule.id
        await apply_rule_to_catalog(db, rule_id, now)

        # the failed apply rolls back and expires `rule`
        with pytest.raises(ConflictError):
            await apply_rule_to_catalog(db, rule_id, now)

        assert len(await list_applications(db, rule_id)) == 1

    async def test_no_match_leaves_rule_unapplied(self, db, make_product, make_rule, now):
        await make_product(category_id=1)
        rule = await make_rule(targeting={"category_ids": [99]})

        result = await apply_rule_to_catalog(db, rule.id, now)

        assert result.status == "no_match"
        assert result.affected_count == 0
        assert (await get_rule(db, rule.id)).in_use is False

    async def test_remove_without_applications(self, db, make_rule, now):
        rule = await make_rule(targeting={"category_ids": [1]})

        result = await remove_rule_from_catalog(db, rule.id, now)

        assert result.status == "no_active_applications"
        assert result.restored_count == 0

    async def test_baked_rule_cannot_be_deleted(self, db, make_product, make_rule, admin, now):
        await make_product(category_id=1)
        rule = await make_rule(targeting={"category_ids": [1]})
        await apply_rule_to_catalog(db, rule.id, now)

        with pytest.raises(ConflictError):
            await delete_rule(db, rule.id, admin)

    async def test_deactivating_does_not_unbake(self, db, make_product, make_rule, admin, now):
        product = await make_product(base_price="100", category_id=1)
        rule = await make_rule(discount_value="10", targeting={"category_ids": [1]})
        await apply_rule_to_catalog(db, rule.id, now)

        await toggle_rule_active(db, rule.id, False, admin)

        assert (await reload(db, product)).final_price == Decimal("90")
        result = await remove_rule_from_catalog(db, rule.id, now)
        assert result.restored_count == 1
        assert (await reload(db, product)).final_price == Decimal("100")


class TestRemoveRule:
    """Tests for exact reversal"""

    async def test_remove_restores_audited_products_after_targeting_changes(
        self, db, make_product, make_rule, admin, now
    ):
        first = await make_product(name="first", base_price="100", category_id=1)
        second = await make_product(name="second", base_price="100", category_id=2)
        rule = await make_rule(discount_value="10", targeting={"category_ids": [1]})
        await apply_rule_to_catalog(db, rule.id, now)

        await upsert_rule(db, RuleUpdate(targeting=TargetingSchema(category_ids=[2])), admin, rule_id=rule.id)
        result = await remove_rule_from_catalog(db, rule.id, now)

        assert result.restored_count == 1
        assert (await reload(db, first)).final_price == Decimal("100")
        assert (await reload(db, second)).final_price == Decimal("100")

    async def test_one_baked_rule_per_product(self, db, make_product, make_rule, now):
        shared = await make_product(name="shared", base_price="100", category_id=1, tags=("sale",))
        tagged_only = await make_product(name="tagged", base_price="100", tags=("sale",))
        by_category = await make_rule(name="by-category", discount_value="10", targeting={"category_ids": [1]})
        by_tag = await make_rule(name="by-tag", discount_value="50", targeting={"tags": ["sale"]})

        await apply_rule_to_catalog(db, by_category.id, now)
        result = await apply_rule_to_catalog(db, by_tag.id, now)

        assert result.affected_count == 1
        assert (await reload(db, shared)).final_price == Decimal("90")
        assert (await reload(db, tagged_only)).final_price == Decimal("50")

        await remove_rule_from_catalog(db, by_tag.id, now)
        assert (await reload(db, shared)).final_price == Decimal("90")

    async def test_reapply_after_remove(self, db, make_product, make_rule, now):
        product = await make_product(base_price="80", category_id=5)
        rule = await make_rule(discount_type="fixed", discount_value="30", targeting={"category_ids": [5]})

        await apply_rule_to_catalog(db, rule.id, now)
        await remove_rule_from_catalog(db, rule.id, now)
        await apply_rule_to_catalog(db, rule.id, now)

        assert (await reload(db, product)).final_price == Decimal("50")
        rows = (
            await db.execute(select(AppliedDiscount).where(AppliedDiscount.product_id == product.id))
        ).scalars().all()
        assert sorted(r.is_active for r in rows) == [False, True]

    async def test_deleted_products_are_skipped(self, db, make_product, make_rule, now):
        live = await make_product(name="live", category_id=6)
        gone = await make_product(name="gone", category_id=6)
        gone.is_deleted = True
        await db.commit()
        rule = await make_rule(targeting={"category_ids": [6]})

        result = await apply_rule_to_catalog(db, rule.id, now)

        assert result.affected_count == 1
        baked = await list_applications(db, rule.id)
        assert [a.product_id for a in baked] == [live.id]
        assert (await db.get(Product, gone.id)).final_price == Decimal("100")
