"""Durable asset download job queue.

Jobs live in the asset_jobs table. Any number of workers may call
process_batch concurrently: a job is claimed by a conditional UPDATE that
only succeeds while the job still has the status and attempt count the
worker observed, so exactly one worker wins each job.

Lifecycle: PENDING -> PROCESSING -> COMPLETED | FAILED. FAILED jobs are
picked up again until they have used max_attempts attempts.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalogsync.assets.downloader import (
    DOCUMENT_PROFILE,
    MEDIA_PROFILE,
    AssetDownloader,
    DownloadProfile,
)
from catalogsync.db.connection import session_scope
from catalogsync.db.models import (
    AssetJobModel,
    ProductDocumentModel,
    ProductMediaModel,
    utcnow,
)
from catalogsync.exceptions import AssetDownloadError, RecordNotFoundError
from catalogsync.models import AssetJobResult, AssetJobType, JobStatus

logger = logging.getLogger(__name__)

_ACTIVE = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)

_ASSET_MODELS = {
    AssetJobType.MEDIA_DOWNLOAD.value: ProductMediaModel,
    AssetJobType.DOCUMENT_DOWNLOAD.value: ProductDocumentModel,
}


class AssetJobQueue:
    """Enqueue, claim, run and clean up asset download jobs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        downloader: AssetDownloader | None = None,
        max_attempts: int = 3,
        media_profile: DownloadProfile = MEDIA_PROFILE,
        document_profile: DownloadProfile = DOCUMENT_PROFILE,
    ):
        """Initialize queue.

        Args:
            session_factory: Session factory for queue transactions
            downloader: Required for process_batch; enqueue-only callers may omit it
            max_attempts: Attempts after which a FAILED job is terminal
            media_profile: Limits for MEDIA_DOWNLOAD jobs
            document_profile: Limits for DOCUMENT_DOWNLOAD jobs
        """
        self.session_factory = session_factory
        self.downloader = downloader
        self.max_attempts = max_attempts
        self.profiles = {
            AssetJobType.MEDIA_DOWNLOAD.value: media_profile,
            AssetJobType.DOCUMENT_DOWNLOAD.value: document_profile,
        }

    async def enqueue(
        self,
        job_type: AssetJobType,
        asset_id: UUID,
        product_id: UUID,
        source_url: str,
    ) -> UUID | None:
        """Insert a PENDING job unless the asset already has an active one.

        Returns:
            New job id, or None when an active job already exists
        """
        async with session_scope(self.session_factory) as session:
            stmt = (
                select(AssetJobModel.id)
                .where(
                    AssetJobModel.asset_id == asset_id,
                    AssetJobModel.type == job_type.value,
                    AssetJobModel.status.in_(_ACTIVE),
                )
                .limit(1)
            )
            existing = (await session.execute(stmt)).scalar_one_or_none()
            if existing is not None:
                logger.info(f"Asset {asset_id} already has active job {existing}, skipping")
                return None

            job = AssetJobModel(
                type=job_type.value,
                asset_id=asset_id,
                product_id=product_id,
                source_url=source_url,
                status=JobStatus.PENDING.value,
                attempts=0,
            )
            session.add(job)
            await session.flush()
            job_id = job.id

        logger.info(f"Enqueued {job_type.value} job {job_id} for asset {asset_id} ({source_url})")
        return job_id

    async def enqueue_for_product(self, product_id: UUID) -> int:
        """Enqueue downloads for every media/document of a product lacking stored content."""
        pending: list[tuple[AssetJobType, UUID, str]] = []
        async with session_scope(self.session_factory) as session:
            for job_type, model in (
                (AssetJobType.MEDIA_DOWNLOAD, ProductMediaModel),
                (AssetJobType.DOCUMENT_DOWNLOAD, ProductDocumentModel),
            ):
                stmt = select(model.id, model.url).where(
                    model.product_id == product_id, model.storage_key.is_(None)
                )
                for asset_id, url in (await session.execute(stmt)).all():
                    pending.append((job_type, asset_id, url))

        enqueued = 0
        for job_type, asset_id, url in pending:
            if await self.enqueue(job_type, asset_id, product_id, url) is not None:
                enqueued += 1
        return enqueued

    async def process_batch(self, batch_size: int = 10) -> AssetJobResult:
        """Claim and run up to batch_size jobs, oldest first.

        Never raises for job failures; they are counted in the result.
        """
        if self.downloader is None:
            raise RuntimeError("AssetJobQueue.process_batch requires a downloader")

        result = AssetJobResult()
        jobs = await self._select_pickable(batch_size)
        if not jobs:
            return result

        for job in jobs:
            if not await self._claim(job):
                logger.debug(f"Job {job.id} claimed by another worker, skipping")
                continue

            attempt = job.attempts + 1
            logger.info(f"Processing {job.type} job {job.id} (attempt {attempt}/{self.max_attempts})")

            try:
                await self._run(job)
            except Exception as exc:
                result.errors += 1
                message = str(exc) or type(exc).__name__
                if not isinstance(exc, AssetDownloadError):
                    logger.exception(f"Unexpected error in asset job {job.id}")
                else:
                    logger.error(f"Asset job {job.id} failed: {message}")
                await self._finish(job.id, JobStatus.FAILED, last_error=message)
                continue

            await self._finish(job.id, JobStatus.COMPLETED, last_error=None)
            result.processed += 1
            if job.type == AssetJobType.MEDIA_DOWNLOAD.value:
                result.media_downloaded += 1
            else:
                result.documents_downloaded += 1

        logger.info(
            f"Asset batch done: processed={result.processed} errors={result.errors} "
            f"media={result.media_downloaded} documents={result.documents_downloaded}"
        )
        return result

    async def cleanup(self, days_old: int = 7) -> int:
        """Delete COMPLETED jobs processed more than days_old days ago."""
        cutoff = utcnow() - timedelta(days=days_old)
        stmt = delete(AssetJobModel).where(
            AssetJobModel.status == JobStatus.COMPLETED.value,
            AssetJobModel.processed_at < cutoff,
        )
        async with session_scope(self.session_factory) as session:
            deleted = (await session.execute(stmt)).rowcount or 0

        if deleted:
            logger.info(f"Cleaned up {deleted} completed asset jobs older than {days_old} days")
        return deleted

    async def stats(self) -> dict[str, int]:
        """Job counts per status (all statuses present, zero-filled)."""
        stmt = select(AssetJobModel.status, func.count()).group_by(AssetJobModel.status)
        async with session_scope(self.session_factory) as session:
            rows = (await session.execute(stmt)).all()

        counts = {status.value.lower(): 0 for status in JobStatus}
        for status, count in rows:
            counts[status.lower()] = count
        return counts

    async def release_stale(self, minutes: int) -> int:
        """Mark jobs stuck in PROCESSING longer than `minutes` as FAILED.

        Operator action for crashed workers; released jobs re-enter the retry
        budget (their attempt was already counted when claimed).
        """
        if minutes <= 0:
            raise ValueError("minutes must be positive")

        cutoff = utcnow() - timedelta(minutes=minutes)
        stmt = (
            update(AssetJobModel)
            .where(
                AssetJobModel.status == JobStatus.PROCESSING.value,
                AssetJobModel.processed_at < cutoff,
            )
            .values(
                status=JobStatus.FAILED.value,
                last_error=f"Released after {minutes} minutes in PROCESSING",
            )
        )
        async with session_scope(self.session_factory) as session:
            released = (await session.execute(stmt)).rowcount or 0

        if released:
            logger.warning(f"Released {released} stale PROCESSING asset jobs")
        return released

    async def _select_pickable(self, batch_size: int) -> list[AssetJobModel]:
        stmt = (
            select(AssetJobModel)
            .where(
                or_(
                    AssetJobModel.status == JobStatus.PENDING.value,
                    (AssetJobModel.status == JobStatus.FAILED.value)
                    & (AssetJobModel.attempts < self.max_attempts),
                )
            )
            .order_by(AssetJobModel.created_at.asc())
            .limit(batch_size)
        )
        async with session_scope(self.session_factory) as session:
            return list((await session.execute(stmt)).scalars().all())

    async def _claim(self, job: AssetJobModel) -> bool:
        # Test-and-set on the observed (status, attempts)
        stmt = (
            update(AssetJobModel)
            .where(
                AssetJobModel.id == job.id,
                AssetJobModel.status == job.status,
                AssetJobModel.attempts == job.attempts,
            )
            .values(
                status=JobStatus.PROCESSING.value,
                attempts=AssetJobModel.attempts + 1,
                processed_at=utcnow(),
            )
        )
        async with session_scope(self.session_factory) as session:
            return (await session.execute(stmt)).rowcount == 1

    async def _run(self, job: AssetJobModel) -> None:
        model = _ASSET_MODELS.get(job.type)
        if model is None:
            raise AssetDownloadError(f"Unknown job type: {job.type}")

        async with session_scope(self.session_factory) as session:
            if await session.get(model, job.asset_id) is None:
                raise RecordNotFoundError(model.__name__, job.asset_id)

        downloaded = await self.downloader.download(job.source_url, self.profiles[job.type])

        try:
            async with session_scope(self.session_factory) as session:
                asset = await session.get(model, job.asset_id)
                if asset is None:
                    raise RecordNotFoundError(model.__name__, job.asset_id)
                asset.storage_provider = downloaded.storage_provider
                asset.storage_key = downloaded.storage_key
                asset.filename = downloaded.filename
                asset.mime_type = downloaded.mime_type
                asset.file_size = downloaded.file_size
        except Exception:
            # Nothing references the stored object any more
            await self._discard(downloaded.storage_key)
            raise

    async def _discard(self, storage_key: str) -> None:
        try:
            await self.downloader.storage.delete(storage_key)
        except Exception:
            logger.exception(f"Could not delete orphaned object {storage_key}")
        else:
            logger.info(f"Deleted orphaned object {storage_key}")

    async def _finish(self, job_id: UUID, status: JobStatus, last_error: str | None) -> None:
        stmt = (
            update(AssetJobModel)
            .where(AssetJobModel.id == job_id)
            .values(status=status.value, last_error=last_error, processed_at=utcnow())
        )
        async with session_scope(self.session_factory) as session:
            await session.execute(stmt)
        logger.info(f"Asset job {job_id} -> {status.value}")
