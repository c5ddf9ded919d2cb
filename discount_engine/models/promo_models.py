from sqlalchemy import (
    Column, Integer, String, Text, Numeric, DateTime, Boolean, ForeignKey,
    CheckConstraint, Index, func
)
from sqlalchemy.orm import relationship

from discount_engine.core.config import MAX_PERCENTAGE_DISCOUNT
from discount_engine.core.db import Base
from discount_engine.core.exceptions import ConflictError
from discount_engine.services.targeting import Targeting


def canonical_code(code: str) -> str:
    return (code or "").strip().upper()


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)  # stored upper-case
    description = Column(Text, nullable=True)

    discount_type = Column(String(20), nullable=False)  # 'percentage' or 'fixed'
    discount_value = Column(Numeric(12, 2), nullable=False)

    # Order-level constraints
    min_order_value = Column(Numeric(12, 2), nullable=True)
    customer_limit = Column(Integer, nullable=True)
    global_usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    exclusive = Column(Boolean, nullable=False, default=False)  # no stacking with rules
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, onupdate=func.now())

    targets = relationship(
        "PromoCodeTarget",
        back_populates="promo",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("discount_type IN ('percentage', 'fixed')", name="ck_promo_discount_type"),
        CheckConstraint("discount_value >= 0", name="ck_promo_discount_value_non_negative"),
        CheckConstraint(
            f"discount_type != 'percentage' OR discount_value <= {MAX_PERCENTAGE_DISCOUNT}",
            name="ck_promo_percentage_bound",
        ),
        CheckConstraint("used_count >= 0", name="ck_promo_used_count_non_negative"),
        CheckConstraint(
            "global_usage_limit IS NULL OR used_count <= global_usage_limit",
            name="ck_promo_usage_limit",
        ),
        CheckConstraint("end_date >= start_date", name="ck_promo_date_range"),
        Index("ix_promo_active_window", "is_active", "start_date", "end_date"),
    )

    @property
    def targeting(self) -> Targeting:
        return Targeting.from_rows(self.targets)

    @targeting.setter
    def targeting(self, value: Targeting):
        self.targets = [PromoCodeTarget(kind=k, value=v) for k, v in value.to_rows()]

    def is_live(self, now) -> bool:
        return (
            self.is_active
            and not self.is_deleted
            and self.start_date <= now <= self.end_date
        )

    @property
    def is_exhausted(self) -> bool:
        return self.global_usage_limit is not None and self.used_count >= self.global_usage_limit

    def soft_delete(self):
        if self.is_deleted:
            raise ConflictError(f"Promo code {self.code} is already deleted")
        self.is_deleted = True
        self.is_active = False

    def restore(self):
        if not self.is_deleted:
            raise ConflictError(f"Promo code {self.code} is not deleted")
        self.is_deleted = False

    def set_active(self, is_active: bool):
        if self.is_deleted and is_active:
            raise ConflictError("Cannot activate a deleted promo code")
        self.is_active = is_active

    def __repr__(self):
        return f"<PromoCode id={self.id} code={self.code} type={self.discount_type}>"


class PromoCodeTarget(Base):
    __tablename__ = "promo_code_targets"

    id = Column(Integer, primary_key=True)
    promo_id = Column(Integer, ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(20), nullable=False)
    value = Column(String(100), nullable=False)

    promo = relationship("PromoCode", back_populates="targets")

    __table_args__ = (
        Index("ix_promo_target_lookup", "kind", "value"),
    )


class PromoRedemption(Base):
    """Written in the checkout transaction; backs the per-customer limit."""
    __tablename__ = "promo_redemptions"

    id = Column(Integer, primary_key=True)
    promo_id = Column(Integer, ForeignKey("promo_codes.id"), nullable=False)
    customer_id = Column(String(100), nullable=False)
    redeemed_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_promo_redemption_customer", "promo_id", "customer_id"),
    )
