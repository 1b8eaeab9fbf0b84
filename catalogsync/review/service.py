"""Manual review actions on supplier links (confirm, change, create, ignore)."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalogsync.catalog.repository import find_active_link, get_product, get_supplier_item
from catalogsync.catalog.writer import CatalogWriter
from catalogsync.db.connection import session_scope
from catalogsync.db.models import SupplierItemModel, utcnow
from catalogsync.enrichment.trigger import EnrichmentTrigger
from catalogsync.exceptions import CatalogError, DuplicateLinkError
from catalogsync.models import EnrichmentResult, MatchMethod, ProductData

logger = logging.getLogger(__name__)


class ReviewService:
    """State transitions a reviewer applies to supplier items.

    Every method runs in its own transaction and records the acting reviewer
    in matched_by.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        enrichment: EnrichmentTrigger | None = None,
    ):
        self.session_factory = session_factory
        self.enrichment = enrichment

    async def confirm_match(self, supplier_item_id: UUID, actor: str) -> SupplierItemModel:
        """Accept the current product link as correct."""
        async with session_scope(self.session_factory) as session:
            item = await self._active_item(session, supplier_item_id)
            item.needs_review = False
            item.matched_by = actor
            item.reviewed_at = utcnow()

        logger.info(f"{actor} confirmed supplier item {supplier_item_id} -> product {item.product_id}")
        return item

    async def change_product(
        self, supplier_item_id: UUID, new_product_id: UUID, actor: str
    ) -> SupplierItemModel:
        """Re-point the link to another product (MANUAL, confidence 1.0).

        Raises:
            RecordNotFoundError: If the item or product does not exist
            DuplicateLinkError: If the supplier already links to that product
        """
        async with session_scope(self.session_factory) as session:
            item = await self._change_product(session, supplier_item_id, new_product_id, actor)

        logger.info(f"{actor} re-linked supplier item {supplier_item_id} -> product {new_product_id}")
        return item

    async def create_product_and_link(
        self, supplier_item_id: UUID, product_data: ProductData, actor: str
    ) -> tuple[SupplierItemModel, EnrichmentResult | None]:
        """Create a product, re-point the link to it and enrich it if it has a GTIN.

        Product creation and re-linking share one transaction. Enrichment runs
        afterwards and never fails the action.
        """
        writer = CatalogWriter(actor=actor)
        async with session_scope(self.session_factory) as session:
            await self._active_item(session, supplier_item_id)
            product = await writer.create_product(session, product_data)
            item = await self._change_product(session, supplier_item_id, product.id, actor)

        logger.info(f"{actor} created product {product.id} for supplier item {supplier_item_id}")

        enrichment = None
        if product.gtin and self.enrichment is not None:
            enrichment = await self.enrichment.enrich(product.id)
            if not enrichment.success:
                logger.warning(
                    f"Enrichment of new product {product.id} incomplete: "
                    f"{enrichment.errors + enrichment.warnings}"
                )
        return item, enrichment

    async def mark_ignored(self, supplier_item_id: UUID, actor: str) -> SupplierItemModel:
        """Retire the link; it leaves the review queue and uniqueness checks."""
        async with session_scope(self.session_factory) as session:
            item = await get_supplier_item(session, supplier_item_id)
            item.ignored = True
            item.needs_review = False
            item.matched_by = actor
            item.reviewed_at = utcnow()

        logger.info(f"{actor} ignored supplier item {supplier_item_id}")
        return item

    async def _change_product(
        self,
        session: AsyncSession,
        supplier_item_id: UUID,
        new_product_id: UUID,
        actor: str,
    ) -> SupplierItemModel:
        item = await self._active_item(session, supplier_item_id)
        await get_product(session, new_product_id)

        if item.product_id != new_product_id:
            clash = await find_active_link(
                session, item.global_supplier_id, new_product_id, exclude_id=item.id
            )
            if clash is not None:
                raise DuplicateLinkError(
                    f"Supplier already links product {new_product_id} via item {clash.id}"
                )

        item.product_id = new_product_id
        item.match_method = MatchMethod.MANUAL.value
        item.match_confidence = 1.0
        item.needs_review = False
        item.matched_by = actor
        item.reviewed_at = utcnow()
        await session.flush()
        return item

    @staticmethod
    async def _active_item(session: AsyncSession, supplier_item_id: UUID) -> SupplierItemModel:
        item = await get_supplier_item(session, supplier_item_id)
        if item.ignored:
            raise CatalogError(f"Supplier item {supplier_item_id} is ignored")
        return item
