"""
Unit Tests - Rule and promo lifecycle
"""
import pytest
from sqlalchemy import inspect
from sqlalchemy.orm import configure_mappers

from discount_engine.core.exceptions import ConflictError
from discount_engine.models.discount_models import AppliedDiscount, DiscountRule
from discount_engine.models.promo_models import PromoCode


def make_rule(**state):
    values = {"id": 1, "is_active": True, "in_use": False, "is_deleted": False}
    values.update(state)
    return DiscountRule(**values)


def make_promo(**state):
    values = {"id": 1, "code": "X", "is_active": True, "is_deleted": False, "used_count": 0}
    values.update(state)
    return PromoCode(**values)


class TestRuleTransitions:
    """Tests for DiscountRule state changes"""

    def test_apply_then_remove(self):
        rule = make_rule()
        rule.mark_applied()
        assert rule.in_use
        rule.mark_removed()
        assert not rule.in_use

    def test_double_apply_conflicts(self):
        with pytest.raises(ConflictError):
            make_rule(in_use=True).mark_applied()

    def test_remove_when_not_applied_conflicts(self):
        with pytest.raises(ConflictError):
            make_rule().mark_removed()

    def test_remove_keeps_active_flag(self):
        rule = make_rule(in_use=True, is_active=True)
        rule.mark_removed()
        assert rule.is_active

    def test_soft_delete_deactivates(self):
        rule = make_rule()
        rule.soft_delete()
        assert rule.is_deleted
        assert not rule.is_active

    def test_baked_rule_cannot_be_deleted(self):
        with pytest.raises(ConflictError):
            make_rule(in_use=True).soft_delete()

    def test_restore_requires_deleted(self):
        with pytest.raises(ConflictError):
            make_rule().restore()

    def test_restore_leaves_rule_inactive(self):
        rule = make_rule()
        rule.soft_delete()
        rule.restore()
        assert not rule.is_deleted
        assert not rule.is_active

    def test_deleted_rule_cannot_be_activated(self):
        with pytest.raises(ConflictError):
            make_rule(is_deleted=True, is_active=False).set_active(True)


class TestPromoTransitions:
    """Tests for PromoCode state and usage checks"""

    def test_unlimited_promo_is_never_exhausted(self):
        assert not make_promo(global_usage_limit=None, used_count=10_000).is_exhausted

    def test_zero_limit_is_exhausted_from_the_start(self):
        assert make_promo(global_usage_limit=0).is_exhausted

    def test_limit_reached(self):
        assert make_promo(global_usage_limit=3, used_count=3).is_exhausted
        assert not make_promo(global_usage_limit=3, used_count=2).is_exhausted

    def test_double_delete_conflicts(self):
        promo = make_promo()
        promo.soft_delete()
        with pytest.raises(ConflictError):
            promo.soft_delete()


class TestMappings:
    """Tests for ORM relationship wiring"""

    def test_audit_rows_are_not_reachable_from_rules(self):
        configure_mappers()
        assert set(inspect(DiscountRule).relationships.keys()) == {"targets"}
        assert set(inspect(AppliedDiscount).relationships.keys()) == set()
