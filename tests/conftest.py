"""Pytest configuration and fixtures for catalogsync tests.

Provides an in-memory SQLite database (aiosqlite, one shared connection),
session factory and a few seeded records.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from catalogsync.db.connection import create_session_factory, init_db, session_scope
from catalogsync.db.models import GlobalSupplierModel, ProductModel
from catalogsync.matching.fuzzy_ranker import FuzzyRanker
from catalogsync.matching.matcher import ProductMatcher
from catalogsync.models import ImportRow

GAUZE_GTIN = "4006381333931"


@pytest.fixture(autouse=True)
def _database_url(monkeypatch):
    """Keep config loading deterministic inside tests."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite://")


@pytest_asyncio.fixture()
async def engine() -> AsyncIterator[AsyncEngine]:
    """Create in-memory database for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture()
async def supplier_id(session_factory) -> UUID:
    async with session_scope(session_factory) as session:
        supplier = GlobalSupplierModel(name="MedSupply BV")
        session.add(supplier)
        await session.flush()
        return supplier.id


@pytest_asyncio.fixture()
async def gauze_product(session_factory) -> ProductModel:
    async with session_scope(session_factory) as session:
        product = ProductModel(
            gtin=GAUZE_GTIN,
            name="Sterile Gauze Swab 10x10cm",
            brand="Hartmann",
        )
        session.add(product)
        await session.flush()
        return product


@pytest.fixture
def matcher() -> ProductMatcher:
    return ProductMatcher(FuzzyRanker(min_score=0.5), max_candidates=25)


@pytest.fixture
def make_row():
    """Factory for ImportRow with sensible defaults."""

    def _make(name: str = "Sterile Gauze Swab", row_index: int = 0, **fields) -> ImportRow:
        return ImportRow(row_index=row_index, name=name, **fields)

    return _make
