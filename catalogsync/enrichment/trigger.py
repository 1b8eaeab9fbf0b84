"""Best-effort product enrichment.

Looks a product up in the external source under a timeout, applies returned
core fields, records media/document references and hands them to the asset
queue for deferred download. Never raises: every failure ends up in the
returned EnrichmentResult.
"""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalogsync.assets.queue import AssetJobQueue
from catalogsync.db.connection import session_scope
from catalogsync.db.models import ProductDocumentModel, ProductMediaModel, ProductModel, utcnow
from catalogsync.enrichment.source import EnrichmentSource, ExternalProductData
from catalogsync.models import AssetJobType, EnrichmentResult, VerificationStatus

logger = logging.getLogger(__name__)


class EnrichmentTrigger:
    """Runs one enrichment lookup per product."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        source: EnrichmentSource,
        queue: AssetJobQueue | None = None,
        timeout_seconds: float = 10.0,
    ):
        self.session_factory = session_factory
        self.source = source
        self.queue = queue
        self.timeout_seconds = timeout_seconds

    async def enrich(self, product_id: UUID) -> EnrichmentResult:
        result = EnrichmentResult(product_id=product_id)

        try:
            async with session_scope(self.session_factory) as session:
                product = await session.get(ProductModel, product_id)
                gtin = product.gtin if product is not None else None

            if product is None:
                result.errors.append("Product not found")
                return result
            if not gtin:
                result.warnings.append("Product has no GTIN, cannot enrich")
                return result

            data = await asyncio.wait_for(self.source.lookup(gtin), timeout=self.timeout_seconds)

            if data is None:
                await self._set_status(product_id, VerificationStatus.FAILED_LOOKUP)
                result.warnings.append("Product not found in external source")
                return result

            assets = await self._apply(product_id, data, result)
            result.success = True

        except asyncio.TimeoutError:
            result.errors.append(f"Enrichment timed out after {self.timeout_seconds:.0f}s")
            logger.warning(f"Enrichment of product {product_id} timed out")
            return result
        except Exception as exc:
            result.errors.append(f"Enrichment failed: {exc}")
            logger.warning(f"Enrichment of product {product_id} failed: {exc}")
            return result

        # Product data is committed; queue problems only degrade to warnings
        if self.queue is not None:
            for job_type, asset_id, url in assets:
                try:
                    await self.queue.enqueue(job_type, asset_id, product_id, url)
                except Exception as exc:
                    result.warnings.append(f"Could not queue download for {url}: {exc}")
                    logger.warning(f"Failed to enqueue asset {asset_id}: {exc}")

        logger.info(
            f"Enriched product {product_id}: fields={result.enriched_fields} "
            f"media={len(result.media_urls)} documents={len(result.document_urls)}"
        )
        return result

    async def _apply(
        self,
        product_id: UUID,
        data: ExternalProductData,
        result: EnrichmentResult,
    ) -> list[tuple[AssetJobType, UUID, str]]:
        """Write core fields and asset references; return assets needing download."""
        needs_download: list[tuple[AssetJobType, UUID, str]] = []

        async with session_scope(self.session_factory) as session:
            product = await session.get(ProductModel, product_id)
            if product is None:
                raise LookupError(f"Product {product_id} disappeared during enrichment")

            for field_name in ("name", "brand", "description"):
                value = getattr(data, field_name)
                if value and value != getattr(product, field_name):
                    setattr(product, field_name, value)
                    result.enriched_fields.append(field_name)

            for job_type, model, urls, collected in (
                (AssetJobType.MEDIA_DOWNLOAD, ProductMediaModel, data.media_urls, result.media_urls),
                (AssetJobType.DOCUMENT_DOWNLOAD, ProductDocumentModel, data.document_urls, result.document_urls),
            ):
                for url in urls:
                    asset = await self._get_or_add_asset(session, model, product_id, url)
                    collected.append(url)
                    if asset.storage_key is None:
                        needs_download.append((job_type, asset.id, url))

            if data.media_urls:
                result.enriched_fields.append(f"media ({len(data.media_urls)} assets)")
            if data.document_urls:
                result.enriched_fields.append(f"documents ({len(data.document_urls)} docs)")

            product.verification_status = VerificationStatus.VERIFIED.value
            product.verified_at = utcnow()
            product.external_data = data.raw
            result.enriched_fields.append("verification_status")

        return needs_download

    @staticmethod
    async def _get_or_add_asset(session: AsyncSession, model, product_id: UUID, url: str):
        stmt = select(model).where(model.product_id == product_id, model.url == url)
        asset = (await session.execute(stmt)).scalar_one_or_none()
        if asset is None:
            asset = model(product_id=product_id, url=url)
            session.add(asset)
            await session.flush()
        return asset

    async def _set_status(self, product_id: UUID, status: VerificationStatus) -> None:
        async with session_scope(self.session_factory) as session:
            product = await session.get(ProductModel, product_id)
            if product is not None:
                product.verification_status = status.value
