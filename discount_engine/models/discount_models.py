from sqlalchemy import (
    Column, Integer, String, Text, Numeric, DateTime, Boolean, ForeignKey,
    CheckConstraint, Index, func
)
from sqlalchemy.orm import relationship

from discount_engine.core.config import DEFAULT_RULE_PRIORITY, MAX_PERCENTAGE_DISCOUNT
from discount_engine.core.db import Base
from discount_engine.core.exceptions import ConflictError
from discount_engine.services.targeting import Targeting, RangeBounds


class DiscountRule(Base):
    __tablename__ = "discount_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)

    # Strategy
    discount_type = Column(String(20), nullable=False)  # 'percentage' or 'fixed'
    discount_value = Column(Numeric(12, 2), nullable=False)

    # Ranges (all optional)
    min_stock = Column(Integer, nullable=True)
    max_stock = Column(Integer, nullable=True)
    min_price = Column(Numeric(12, 2), nullable=True)
    max_price = Column(Numeric(12, 2), nullable=True)

    # Scheduling (naive UTC)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    # Engine controls
    priority = Column(Integer, nullable=False, default=DEFAULT_RULE_PRIORITY)  # lower = first
    exclusive = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Owned by the catalog mutator only
    in_use = Column(Boolean, nullable=False, default=False)

    # Soft delete flag
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, onupdate=func.now())

    targets = relationship(
        "DiscountRuleTarget",
        back_populates="rule",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    __table_args__ = (
        CheckConstraint("discount_type IN ('percentage', 'fixed')", name="ck_rule_discount_type"),
        CheckConstraint("discount_value >= 0", name="ck_rule_discount_value_non_negative"),
        CheckConstraint(
            f"discount_type != 'percentage' OR discount_value <= {MAX_PERCENTAGE_DISCOUNT}",
            name="ck_rule_percentage_bound",
        ),
        CheckConstraint("end_date >= start_date", name="ck_rule_date_range"),
        Index("ix_rule_active_window", "is_active", "start_date", "end_date", "priority"),
    )

    @property
    def targeting(self) -> Targeting:
        return Targeting.from_rows(self.targets)

    @targeting.setter
    def targeting(self, value: Targeting):
        self.targets = [DiscountRuleTarget(kind=k, value=v) for k, v in value.to_rows()]

    @property
    def bounds(self) -> RangeBounds:
        return RangeBounds(
            min_stock=self.min_stock,
            max_stock=self.max_stock,
            min_price=self.min_price,
            max_price=self.max_price,
        )

    # -----------------------
    # State transitions
    # -----------------------
    def mark_applied(self):
        if self.in_use:
            raise ConflictError(f"Discount rule {self.id} is already applied to the catalog")
        self.in_use = True

    def mark_removed(self):
        if not self.in_use:
            raise ConflictError(f"Discount rule {self.id} is not applied to the catalog")
        self.in_use = False

    def soft_delete(self):
        if self.is_deleted:
            raise ConflictError(f"Discount rule {self.id} is already deleted")
        if self.in_use:
            raise ConflictError("Remove the rule from the catalog before deleting it")
        self.is_deleted = True
        self.is_active = False

    def restore(self):
        if not self.is_deleted:
            raise ConflictError(f"Discount rule {self.id} is not deleted")
        self.is_deleted = False

    def set_active(self, is_active: bool):
        if self.is_deleted and is_active:
            raise ConflictError("Cannot activate a deleted discount rule")
        self.is_active = is_active

    def __repr__(self):
        return f"<DiscountRule id={self.id} name={self.name!r} priority={self.priority}>"


class DiscountRuleTarget(Base):
    __tablename__ = "discount_rule_targets"

    id = Column(Integer, primary_key=True)
    rule_id = Column(Integer, ForeignKey("discount_rules.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(20), nullable=False)  # product | category | brand | tag
    value = Column(String(100), nullable=False)

    rule = relationship("DiscountRule", back_populates="targets")

    __table_args__ = (
        Index("ix_rule_target_lookup", "kind", "value"),
    )


class AppliedDiscount(Base):
    """One row per (rule, product) baked into the catalog; drives exact reversal."""
    __tablename__ = "applied_discounts"

    id = Column(Integer, primary_key=True)
    rule_id = Column(Integer, ForeignKey("discount_rules.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    applied_at = Column(DateTime, nullable=False)
    removed_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_applied_discount_active", "rule_id", "is_active"),
    )
