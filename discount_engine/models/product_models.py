# discount_engine/models/product_models.py
from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, CheckConstraint, Index,
    ForeignKey, DateTime, func
)
from sqlalchemy.orm import relationship
from discount_engine.core.db import Base


class Product(Base):
    """
    Catalog record owned by the product service. Only the price and targeting
    columns are read or written here.
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), index=True, nullable=False)
    category_id = Column(Integer, nullable=True, index=True)
    brand_id = Column(Integer, nullable=True, index=True)
    stock = Column(Integer, default=0, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)

    # basePrice is the immutable reference; the rest is engine-controlled
    base_price = Column(Numeric(12, 2), nullable=False)
    final_price = Column(Numeric(12, 2), nullable=True)
    sale_price = Column(Numeric(12, 2), nullable=True)

    # Display fields stamped by catalog baking
    discount_type = Column(String(20), default="none", nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=True)
    discount = Column(Numeric(12, 2), default=0, nullable=False)

    tags = relationship(
        "ProductTag",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        CheckConstraint(base_price >= 0, name="check_product_base_price_non_negative"),
        CheckConstraint("final_price IS NULL OR final_price >= 0", name="check_product_final_price_non_negative"),
        CheckConstraint(stock >= 0, name="check_product_stock_non_negative"),
    )

    @property
    def tag_names(self) -> frozenset:
        return frozenset(t.tag for t in self.tags)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}')>"


class ProductTag(Base):
    __tablename__ = "product_tags"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    tag = Column(String(100), nullable=False)

    product = relationship("Product", back_populates="tags")

    __table_args__ = (
        Index("ix_product_tags_tag", "tag"),
        Index("uq_product_tag", "product_id", "tag", unique=True),
    )
