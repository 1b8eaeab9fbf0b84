"""Composition root: build the pipeline services from configuration.

Entry points (CLI, worker) call build_services() once and pass the
resulting objects around; library code never reaches for global state.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from catalogsync.assets.downloader import AssetDownloader, profiles_from_config
from catalogsync.assets.queue import AssetJobQueue
from catalogsync.config import AppConfig
from catalogsync.db.connection import create_engine, create_session_factory
from catalogsync.enrichment.source import HttpEnrichmentSource
from catalogsync.enrichment.trigger import EnrichmentTrigger
from catalogsync.imports.audit import CatalogUploadRepository
from catalogsync.imports.orchestrator import ImportOrchestrator
from catalogsync.matching.fuzzy_ranker import FuzzyRanker
from catalogsync.matching.matcher import ProductMatcher
from catalogsync.models import ImportOptions
from catalogsync.review.service import ReviewService
from catalogsync.storage import build_storage_provider


@dataclass
class Services:
    config: AppConfig
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    uploads: CatalogUploadRepository
    queue: AssetJobQueue
    downloader: AssetDownloader
    enrichment_source: HttpEnrichmentSource | None
    enrichment: EnrichmentTrigger | None
    orchestrator: ImportOrchestrator
    review: ReviewService

    async def aclose(self) -> None:
        await self.downloader.aclose()
        if self.enrichment_source is not None:
            await self.enrichment_source.aclose()
        await self.engine.dispose()


def default_import_options(config: AppConfig, actor: str = "system") -> ImportOptions:
    imports = config.imports
    return ImportOptions(
        auto_enrich=imports.auto_enrich,
        create_new_products=imports.create_new_products,
        skip_invalid_rows=imports.skip_invalid_rows,
        min_auto_match_confidence=imports.min_auto_match_confidence,
        default_currency=imports.default_currency,
        actor=actor,
    )


def build_services(config: AppConfig) -> Services:
    engine = create_engine(config.db)
    session_factory = create_session_factory(engine)

    storage = build_storage_provider(config.storage)
    downloader = AssetDownloader(storage, user_agent=config.assets.user_agent)
    media_profile, document_profile = profiles_from_config(config.assets)
    queue = AssetJobQueue(
        session_factory,
        downloader=downloader,
        max_attempts=config.assets.max_attempts,
        media_profile=media_profile,
        document_profile=document_profile,
    )

    source = None
    enrichment = None
    if config.enrichment.enabled:
        source = HttpEnrichmentSource(
            config.enrichment.base_url,
            api_key=config.enrichment.api_key,
            timeout_seconds=config.enrichment.timeout_seconds,
        )
        enrichment = EnrichmentTrigger(
            session_factory,
            source,
            queue=queue,
            timeout_seconds=config.enrichment.timeout_seconds,
        )

    matcher = ProductMatcher(
        FuzzyRanker(
            min_score=config.imports.fuzzy_min_score,
            name_weight=config.imports.fuzzy_name_weight,
            brand_weight=config.imports.fuzzy_brand_weight,
        ),
        max_candidates=config.imports.max_candidates,
    )
    uploads = CatalogUploadRepository(session_factory)
    orchestrator = ImportOrchestrator(
        session_factory,
        matcher,
        uploads=uploads,
        enrichment=enrichment,
        defaults=default_import_options(config),
    )

    return Services(
        config=config,
        engine=engine,
        session_factory=session_factory,
        uploads=uploads,
        queue=queue,
        downloader=downloader,
        enrichment_source=source,
        enrichment=enrichment,
        orchestrator=orchestrator,
        review=ReviewService(session_factory, enrichment=enrichment),
    )
