"""
Test Suite Configuration
"""
import pytest
from datetime import date
from typing import AsyncGenerator, Callable, Dict, List

import polars as pl
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from salesopt.config import Settings
from salesopt.data.generators import generate_transactions
from salesopt.database.models import Base
from salesopt.ingestion.batch_loader import TRANSACTION_SCHEMA


BASE_ROW = {
    "row_id": 1,
    "order_id": "EU-2012-100001",
    "order_date": date(2012, 3, 1),
    "ship_date": date(2012, 3, 5),
    "ship_mode": "Standard Class",
    "customer_id": "AB-10000",
    "customer_name": "Ann Baker",
    "segment": "Consumer",
    "city": "Paris",
    "state": "Ile-de-France",
    "country": "France",
    "market": "EU",
    "region": "Central",
    "product_id": "OFF-BI-10000001",
    "category": "Office Supplies",
    "subcategory": "Binders",
    "product_name": "Cardinal Binder",
    "sales": 100.0,
    "quantity": 2,
    "discount": 0.0,
    "profit": 20.0,
    "shipping_cost": 8.0,
    "order_priority": "Medium",
}


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def make_transactions() -> Callable[[List[Dict]], pl.DataFrame]:
    """Build a typed transactions frame; each dict overrides BASE_ROW"""
    def _make(rows: List[Dict]) -> pl.DataFrame:
        records = [{**BASE_ROW, "row_id": i + 1, **row} for i, row in enumerate(rows)]
        return pl.DataFrame(records, schema=TRANSACTION_SCHEMA)
    return _make


@pytest.fixture
def misfiled_df(make_transactions) -> pl.DataFrame:
    """Austria and Mongolia filed under EMEA, Staples filed under Binders"""
    return make_transactions([
        {"country": "Austria", "market": "EU", "city": "Vienna"},
        {"country": "Austria", "market": "EMEA", "city": "Graz"},
        {"country": "France", "market": "EU"},
        {"country": "Mongolia", "market": "EMEA", "region": "EMEA"},
        {"country": "Mongolia", "market": "APAC", "region": "Central Asia"},
        {"product_name": "Staples", "subcategory": "Binders", "product_id": "OFF-FA-1"},
        {"product_name": "Staples", "subcategory": "Fasteners", "product_id": "OFF-FA-1"},
        {"product_name": "Staples", "subcategory": "Fasteners", "product_id": "OFF-FA-1"},
    ])


@pytest.fixture(scope="session")
def generated_df() -> pl.DataFrame:
    """Seeded Superstore-shaped transactions with the known mis-filings"""
    return generate_transactions(n=1500, seed=7)


@pytest.fixture
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()
