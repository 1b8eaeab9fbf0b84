"""Idempotent catalog writes: canonical products and supplier links.

All methods work inside the caller's transaction; the caller commits or
rolls back. Creating a product and its first link therefore either both
persist or neither does.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from catalogsync.catalog.repository import find_active_link
from catalogsync.db.models import ProductModel, SupplierItemModel
from catalogsync.exceptions import DuplicateLinkError, DuplicateProductError
from catalogsync.models import ImportRow, MatchMethod, ProductData

logger = logging.getLogger(__name__)


class CatalogWriter:
    """Writes match outcomes to products and supplier_items."""

    def __init__(self, actor: str = "system"):
        self.actor = actor

    async def create_product(self, session: AsyncSession, data: ProductData) -> ProductModel:
        """Insert a canonical product.

        Raises:
            DuplicateProductError: If the GTIN is already taken
        """
        product = ProductModel(
            gtin=data.gtin,
            name=data.name,
            brand=data.brand,
            description=data.description,
        )
        session.add(product)
        try:
            await session.flush()
        except IntegrityError as exc:
            if data.gtin:
                raise DuplicateProductError(f"Product with GTIN {data.gtin} already exists") from exc
            raise

        logger.info(f"Created product {product.id} ({product.name!r}, gtin={product.gtin})")
        return product

    async def create_new(
        self,
        session: AsyncSession,
        global_supplier_id: UUID,
        row: ImportRow,
    ) -> tuple[ProductModel, SupplierItemModel]:
        """Create a product from row fields and link the supplier to it.

        The fresh product is authoritative, so the link carries match
        method NONE with confidence 1.0 and needs no review.
        """
        product = await self.create_product(
            session,
            ProductData(gtin=row.gtin, name=row.name, brand=row.brand, description=row.description),
        )
        link, _ = await self.upsert_link(
            session,
            global_supplier_id=global_supplier_id,
            product_id=product.id,
            row=row,
            match_method=MatchMethod.NONE,
            match_confidence=1.0,
            needs_review=False,
        )
        return product, link

    async def upsert_link(
        self,
        session: AsyncSession,
        global_supplier_id: UUID,
        product_id: UUID,
        row: ImportRow,
        match_method: MatchMethod,
        match_confidence: float,
        needs_review: bool,
    ) -> tuple[SupplierItemModel, bool]:
        """Update the active (supplier, product) link in place, or create it.

        Returns:
            Tuple of (link, created)

        Raises:
            DuplicateLinkError: If a concurrent writer created the link between
                the lookup and the insert (the unique index rejected ours)
        """
        link = await find_active_link(session, global_supplier_id, product_id)
        created = link is None

        if link is None:
            link = SupplierItemModel(global_supplier_id=global_supplier_id, product_id=product_id)
            session.add(link)

        self._apply_row(link, row)
        link.match_method = match_method.value
        link.match_confidence = max(0.0, min(1.0, match_confidence))
        link.needs_review = needs_review
        link.matched_by = self.actor

        try:
            await session.flush()
        except IntegrityError as exc:
            raise DuplicateLinkError(
                f"Supplier {global_supplier_id} already has an active link to product {product_id}"
            ) from exc

        action = "Created" if created else "Updated"
        logger.debug(
            f"{action} supplier item {link.id} -> product {product_id} "
            f"({match_method.value}, {link.match_confidence:.2f}, review={needs_review})"
        )
        return link, created

    @staticmethod
    def _apply_row(link: SupplierItemModel, row: ImportRow) -> None:
        # Blank optional fields in a re-import keep the stored value
        if row.sku is not None:
            link.supplier_sku = row.sku
        link.supplier_name = row.name
        if row.description is not None:
            link.supplier_description = row.description
        if row.unit_price is not None:
            link.unit_price = row.unit_price
        if row.currency is not None:
            link.currency = row.currency
        link.min_order_qty = row.min_order_qty
        if row.stock_level is not None:
            link.stock_level = row.stock_level
        if row.lead_time_days is not None:
            link.lead_time_days = row.lead_time_days
