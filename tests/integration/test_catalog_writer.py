"""Integration tests for catalog writes and the one-active-link constraint."""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from catalogsync.catalog.repository import find_active_link, get_or_create_supplier, get_product
from catalogsync.catalog.writer import CatalogWriter
from catalogsync.db.connection import session_scope
from catalogsync.db.models import SupplierItemModel
from catalogsync.exceptions import DuplicateProductError, RecordNotFoundError
from catalogsync.models import ImportRow, MatchMethod, ProductData

GAUZE_GTIN = "4006381333931"


@pytest.mark.asyncio
async def test_active_link_unique_index(session_factory, supplier_id, gauze_product):
    """Two non-ignored links for one (supplier, product) are rejected."""
    async with session_scope(session_factory) as session:
        session.add(SupplierItemModel(global_supplier_id=supplier_id, product_id=gauze_product.id))

    with pytest.raises(IntegrityError):
        async with session_scope(session_factory) as session:
            session.add(SupplierItemModel(global_supplier_id=supplier_id, product_id=gauze_product.id))


@pytest.mark.asyncio
async def test_ignored_links_do_not_count(session_factory, supplier_id, gauze_product):
    async with session_scope(session_factory) as session:
        session.add(
            SupplierItemModel(global_supplier_id=supplier_id, product_id=gauze_product.id, ignored=True)
        )
        session.add(
            SupplierItemModel(global_supplier_id=supplier_id, product_id=gauze_product.id, ignored=True)
        )
        session.add(SupplierItemModel(global_supplier_id=supplier_id, product_id=gauze_product.id))

    async with session_scope(session_factory) as session:
        active = await find_active_link(session, supplier_id, gauze_product.id)

    assert active is not None
    assert active.ignored is False


@pytest.mark.asyncio
async def test_create_new_links_product(session_factory, supplier_id):
    writer = CatalogWriter(actor="importer")
    row = ImportRow(name="Unknown Widget", sku="W-1", unit_price=Decimal("3.50"), currency="EUR")

    async with session_scope(session_factory) as session:
        product, link = await writer.create_new(session, supplier_id, row)

    assert product.name == "Unknown Widget"
    assert link.product_id == product.id
    assert link.match_method == MatchMethod.NONE.value
    assert link.match_confidence == 1.0
    assert link.needs_review is False
    assert link.matched_by == "importer"


@pytest.mark.asyncio
async def test_create_product_duplicate_gtin(session_factory, gauze_product):
    writer = CatalogWriter()

    with pytest.raises(DuplicateProductError):
        async with session_scope(session_factory) as session:
            await writer.create_product(session, ProductData(gtin=GAUZE_GTIN, name="Copy"))


@pytest.mark.asyncio
async def test_upsert_link_updates_in_place(session_factory, supplier_id, gauze_product):
    writer = CatalogWriter()
    first = ImportRow(name="Gauze", sku="GZ-1", unit_price=Decimal("1.00"), stock_level=10)
    second = ImportRow(name="Gauze v2", unit_price=Decimal("1.20"))

    async with session_scope(session_factory) as session:
        link, created = await writer.upsert_link(
            session, supplier_id, gauze_product.id, first, MatchMethod.GTIN_EXACT, 1.0, False
        )
    assert created is True

    async with session_scope(session_factory) as session:
        updated, created = await writer.upsert_link(
            session, supplier_id, gauze_product.id, second, MatchMethod.FUZZY_NAME, 0.7, True
        )

    assert created is False
    assert updated.id == link.id
    assert updated.supplier_name == "Gauze v2"
    assert updated.unit_price == Decimal("1.20")
    # Omitted optional fields keep the stored value
    assert updated.supplier_sku == "GZ-1"
    assert updated.stock_level == 10
    assert updated.needs_review is True

    async with session_scope(session_factory) as session:
        count = await session.scalar(select(func.count()).select_from(SupplierItemModel))
    assert count == 1


@pytest.mark.asyncio
async def test_upsert_link_clamps_confidence(session_factory, supplier_id, gauze_product):
    async with session_scope(session_factory) as session:
        link, _ = await CatalogWriter().upsert_link(
            session, supplier_id, gauze_product.id, ImportRow(name="Gauze"), MatchMethod.MANUAL, 1.7, False
        )

    assert link.match_confidence == 1.0


@pytest.mark.asyncio
async def test_repository_lookups(session_factory, supplier_id):
    async with session_scope(session_factory) as session:
        again = await get_or_create_supplier(session, " MedSupply BV ")
        created = await get_or_create_supplier(session, "New Supplier")

        assert again.id == supplier_id
        assert created.id != supplier_id

        with pytest.raises(RecordNotFoundError, match="Product"):
            await get_product(session, created.id)
