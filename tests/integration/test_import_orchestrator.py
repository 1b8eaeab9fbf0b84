"""Integration tests for the catalog import pipeline.

End-to-end: CSV text -> parser -> matcher -> decision policy -> writer,
with upload audit records and per-row results.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from catalogsync.db.connection import session_scope
from catalogsync.db.models import ProductModel, SupplierItemModel
from catalogsync.exceptions import CatalogError
from catalogsync.imports.orchestrator import ImportOrchestrator
from catalogsync.models import (
    EnrichmentResult,
    ImportOptions,
    MatchMethod,
    UploadStatus,
)

GAUZE_GTIN = "4006381333931"

CATALOG = (
    "sku;ean;name;brand;price;currency\n"
    f"GZ-100;{GAUZE_GTIN};Sterile Gauze Swab 10x10cm;Hartmann;12,50;EUR\n"
    "W-1;;Unknown Widget;Acme;3,00;\n"
)


async def _count(session_factory, model) -> int:
    async with session_scope(session_factory) as session:
        return await session.scalar(select(func.count()).select_from(model))


@pytest.fixture
def orchestrator(session_factory, matcher) -> ImportOrchestrator:
    return ImportOrchestrator(session_factory, matcher)


class FakeEnrichment:
    """Records enrich calls and reports success."""

    def __init__(self):
        self.calls = []

    async def enrich(self, product_id):
        self.calls.append(product_id)
        return EnrichmentResult(success=True, product_id=product_id, warnings=["no media"])


@pytest.mark.asyncio
async def test_import_matches_and_creates(orchestrator, session_factory, supplier_id, gauze_product):
    result = await orchestrator.import_csv(supplier_id, CATALOG, filename="medsupply.csv")

    assert result.status == UploadStatus.COMPLETED
    assert result.total_rows == 2
    assert result.success_count == 2
    assert result.failed_count == 0
    assert result.review_count == 0

    gauze, widget = result.items
    assert gauze.product_id == gauze_product.id
    assert gauze.match_method == MatchMethod.GTIN_EXACT
    assert gauze.match_confidence == 1.0
    assert gauze.needs_review is False

    assert widget.success is True
    assert widget.match_method == MatchMethod.NONE
    assert widget.match_confidence == 1.0
    assert widget.needs_review is False

    assert await _count(session_factory, ProductModel) == 2
    async with session_scope(session_factory) as session:
        link = await session.get(SupplierItemModel, widget.supplier_item_id)
    assert link.currency == "EUR"
    assert link.supplier_sku == "W-1"


@pytest.mark.asyncio
async def test_reimport_is_idempotent(orchestrator, session_factory, supplier_id, gauze_product):
    await orchestrator.import_csv(supplier_id, CATALOG)

    second = await orchestrator.import_csv(
        supplier_id, CATALOG, options=ImportOptions(create_new_products=False)
    )

    assert second.status == UploadStatus.COMPLETED
    assert second.success_count == 2
    assert [item.match_method for item in second.items] == [MatchMethod.GTIN_EXACT, MatchMethod.SKU_EXACT]
    assert await _count(session_factory, ProductModel) == 2
    assert await _count(session_factory, SupplierItemModel) == 2


@pytest.mark.asyncio
async def test_low_confidence_match_needs_review(orchestrator, session_factory, supplier_id, gauze_product, make_row):
    row = make_row(name="Sterile Gauze Swabs 10x10cm", brand="Hartmann")

    result = await orchestrator.import_catalog(
        supplier_id, [row], options=ImportOptions(min_auto_match_confidence=0.99)
    )

    item = result.items[0]
    assert item.success is True
    assert item.match_method == MatchMethod.FUZZY_NAME
    assert item.match_confidence < 0.99
    assert item.needs_review is True
    assert result.review_count == 1

    async with session_scope(session_factory) as session:
        link = await session.get(SupplierItemModel, item.supplier_item_id)
    assert link.product_id == gauze_product.id
    assert link.needs_review is True


@pytest.mark.asyncio
async def test_unmatched_row_without_creation_fails_for_review(orchestrator, session_factory, supplier_id, make_row):
    result = await orchestrator.import_catalog(
        supplier_id,
        [make_row(name="Nitrile Examination Gloves")],
        options=ImportOptions(create_new_products=False),
    )

    item = result.items[0]
    assert result.status == UploadStatus.COMPLETED
    assert item.success is False
    assert item.needs_review is True
    assert "creation is disabled" in item.errors[0]
    assert result.failed_count == 1
    assert result.review_count == 1
    assert await _count(session_factory, SupplierItemModel) == 0


@pytest.mark.asyncio
async def test_rejected_rows_count_as_failures(orchestrator, supplier_id):
    content = "sku,name\nA-1,Gauze Pad\nA-2,\n"

    result = await orchestrator.import_csv(supplier_id, content)

    assert result.total_rows == 2
    assert result.success_count == 1
    assert result.failed_count == 1
    rejected = [item for item in result.items if not item.success]
    assert rejected[0].row_index == 1
    assert rejected[0].errors == ["Name is required"]


@pytest.mark.asyncio
async def test_strict_mode_fails_run_before_rows(orchestrator, supplier_id):
    content = "sku,name\nA-1,Gauze Pad\nA-2,\n"

    result = await orchestrator.import_csv(
        supplier_id, content, options=ImportOptions(skip_invalid_rows=False)
    )

    assert result.status == UploadStatus.FAILED
    assert "Name is required" in result.error_message
    upload = await orchestrator.uploads.get(result.upload_id)
    assert upload.status == UploadStatus.FAILED.value


@pytest.mark.asyncio
async def test_unexpected_error_fails_run(orchestrator, session_factory, supplier_id, make_row):
    orchestrator.matcher.match = AsyncMock(side_effect=RuntimeError("database went away"))

    result = await orchestrator.import_catalog(
        supplier_id, [make_row(name="Gauze Pad"), make_row(name="Paper Tape", row_index=1)]
    )

    assert result.status == UploadStatus.FAILED
    assert result.error_message == "database went away"
    assert result.completed_at is not None
    assert result.total_rows == 2
    assert [item.row_index for item in result.items] == [0]
    assert result.items[0].success is False
    assert result.items[0].errors == ["Processing error: database went away"]
    assert result.failed_count == 1
    assert result.success_count == 0

    upload = await orchestrator.uploads.get(result.upload_id)
    assert upload.status == UploadStatus.FAILED.value
    assert upload.error_message == "database went away"
    assert upload.completed_at is not None


@pytest.mark.asyncio
async def test_upload_audit_record(orchestrator, supplier_id, gauze_product):
    result = await orchestrator.import_csv(
        supplier_id, CATALOG, filename="medsupply.csv", options=ImportOptions(actor="jane")
    )

    upload = await orchestrator.uploads.get(result.upload_id)
    assert upload.status == UploadStatus.COMPLETED.value
    assert upload.filename == "medsupply.csv"
    assert upload.raw_content == CATALOG
    assert upload.row_count == 2
    assert upload.success_count == 2
    assert upload.uploaded_by == "jane"
    assert upload.completed_at is not None

    recent = await orchestrator.uploads.find_by_supplier(supplier_id)
    assert [u.id for u in recent] == [result.upload_id]


@pytest.mark.asyncio
async def test_replay_upload(orchestrator, session_factory, supplier_id, gauze_product):
    first = await orchestrator.import_csv(supplier_id, CATALOG)

    replay = await orchestrator.replay_upload(first.upload_id)

    assert replay.upload_id != first.upload_id
    assert replay.status == UploadStatus.COMPLETED
    assert replay.success_count == 2
    assert await _count(session_factory, SupplierItemModel) == 2


@pytest.mark.asyncio
async def test_replay_requires_raw_content(orchestrator, supplier_id, make_row):
    direct = await orchestrator.import_catalog(supplier_id, [make_row(name="Gauze Pad")])

    with pytest.raises(CatalogError, match="no retained raw content"):
        await orchestrator.replay_upload(direct.upload_id)


@pytest.mark.asyncio
async def test_enrichment_runs_for_products_with_gtin(session_factory, matcher, supplier_id, gauze_product):
    enrichment = FakeEnrichment()
    orchestrator = ImportOrchestrator(session_factory, matcher, enrichment=enrichment)

    result = await orchestrator.import_csv(supplier_id, CATALOG)

    # Only the gauze product carries a GTIN
    assert enrichment.calls == [gauze_product.id]
    assert result.enriched_count == 1
    assert result.items[0].enriched is True
    assert "no media" in result.items[0].warnings


@pytest.mark.asyncio
async def test_enrichment_disabled_by_option(session_factory, matcher, supplier_id, gauze_product):
    enrichment = FakeEnrichment()
    orchestrator = ImportOrchestrator(session_factory, matcher, enrichment=enrichment)

    result = await orchestrator.import_csv(supplier_id, CATALOG, options=ImportOptions(auto_enrich=False))

    assert enrichment.calls == []
    assert result.enriched_count == 0


@pytest.mark.asyncio
async def test_invalid_gtin_on_direct_rows_is_not_stored(orchestrator, session_factory, supplier_id, make_row):
    rows = [
        make_row(name="Nitrile Gloves", gtin="1234567890123"),
        make_row(name="Paper Tape", gtin="4006-381-333931", row_index=1),
    ]

    result = await orchestrator.import_catalog(supplier_id, rows)

    assert result.status == UploadStatus.COMPLETED
    assert result.success_count == 2
    assert any("Invalid GTIN" in warning for warning in result.items[0].warnings)

    async with session_scope(session_factory) as session:
        gtins = {
            name: gtin
            for name, gtin in (await session.execute(select(ProductModel.name, ProductModel.gtin))).all()
        }
    assert gtins == {"Nitrile Gloves": None, "Paper Tape": GAUZE_GTIN}
