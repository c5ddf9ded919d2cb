"""
Test Suite Configuration
"""
import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DB_TYPE", "sqlite")

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import discount_engine.models  # noqa: F401
from discount_engine.core.db import Base
from discount_engine.models.product_models import Product, ProductTag
from discount_engine.schemas.auth_schemas import CurrentUser
from discount_engine.schemas.common_schemas import TargetingSchema
from discount_engine.schemas.discount_schemas import RuleCreate
from discount_engine.schemas.promo_schemas import PromoCreate
from discount_engine.services.promo_service import upsert_promo
from discount_engine.services.rule_service import upsert_rule

NOW = datetime(2026, 6, 1, 12, 0, 0)
WINDOW_START = NOW - timedelta(days=1)
WINDOW_END = NOW + timedelta(days=30)

ADMIN = CurrentUser(username="admin@shop.test", role="admin")


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so separate sessions get separate connections"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pricing.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_product(db):
    async def _make(name="Widget", base_price="100", category_id=None, brand_id=None, tags=(), stock=10):
        product = Product(
            name=name,
            base_price=Decimal(str(base_price)),
            final_price=Decimal(str(base_price)),
            category_id=category_id,
            brand_id=brand_id,
            stock=stock,
        )
        product.tags = [ProductTag(tag=t) for t in tags]
        db.add(product)
        await db.commit()
        await db.refresh(product)
        return product

    return _make


@pytest.fixture
def make_rule(db):
    async def _make(
        name="Rule",
        discount_type="percentage",
        discount_value="10",
        priority=100,
        exclusive=False,
        is_active=True,
        start_date=WINDOW_START,
        end_date=WINDOW_END,
        targeting=None,
        **ranges,
    ):
        payload = RuleCreate(
            name=name,
            discount_type=discount_type,
            discount_value=Decimal(str(discount_value)),
            priority=priority,
            exclusive=exclusive,
            is_active=is_active,
            start_date=start_date,
            end_date=end_date,
            targeting=TargetingSchema(**(targeting or {})),
            **ranges,
        )
        return await upsert_rule(db, payload, ADMIN)

    return _make


@pytest.fixture
def make_promo(db):
    async def _make(
        code="SAVE10",
        discount_type="percentage",
        discount_value="10",
        targeting=None,
        start_date=WINDOW_START,
        end_date=WINDOW_END,
        **extra,
    ):
        payload = PromoCreate(
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(str(discount_value)),
            start_date=start_date,
            end_date=end_date,
            targeting=TargetingSchema(**(targeting or {})),
            **extra,
        )
        return await upsert_promo(db, payload, ADMIN)

    return _make


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def admin():
    return ADMIN
