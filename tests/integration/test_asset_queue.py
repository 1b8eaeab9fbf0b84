"""Integration tests for the durable asset download queue."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from catalogsync.assets.downloader import DownloadedAsset
from catalogsync.assets.queue import AssetJobQueue
from catalogsync.db.connection import session_scope
from catalogsync.db.models import AssetJobModel, ProductDocumentModel, ProductMediaModel, utcnow
from catalogsync.exceptions import AssetDownloadError
from catalogsync.models import AssetJobType, JobStatus

IMAGE_URL = "https://cdn.example.com/img/gauze.jpg"


class FakeStorage:
    def __init__(self):
        self.deleted = []

    async def delete(self, storage_key):
        self.deleted.append(storage_key)


class FakeDownloader:
    """Returns a stored asset, or raises AssetDownloadError when failing."""

    def __init__(self, fail: bool = False, on_download=None):
        self.fail = fail
        self.on_download = on_download
        self.storage = FakeStorage()
        self.calls = []

    async def download(self, url, profile):
        self.calls.append((url, profile.folder))
        if self.fail:
            raise AssetDownloadError("HTTP error: 503 Service Unavailable")
        if self.on_download is not None:
            await self.on_download()
        return DownloadedAsset(
            storage_provider="local",
            storage_key=f"{profile.folder}/stored.jpg",
            url=f"/assets/{profile.folder}/stored.jpg",
            filename="gauze.jpg",
            mime_type="image/jpeg",
            file_size=1024,
        )


async def _media(session_factory, product_id, url=IMAGE_URL, storage_key=None) -> ProductMediaModel:
    async with session_scope(session_factory) as session:
        media = ProductMediaModel(product_id=product_id, url=url, storage_key=storage_key)
        session.add(media)
    return media


async def _job(session_factory, job_id) -> AssetJobModel:
    async with session_scope(session_factory) as session:
        return await session.get(AssetJobModel, job_id)


@pytest.mark.asyncio
async def test_enqueue_is_idempotent_per_active_asset(session_factory, gauze_product):
    queue = AssetJobQueue(session_factory)
    media = await _media(session_factory, gauze_product.id)

    first = await queue.enqueue(AssetJobType.MEDIA_DOWNLOAD, media.id, gauze_product.id, IMAGE_URL)
    second = await queue.enqueue(AssetJobType.MEDIA_DOWNLOAD, media.id, gauze_product.id, IMAGE_URL)

    assert first is not None
    assert second is None
    job = await _job(session_factory, first)
    assert job.status == JobStatus.PENDING.value
    assert job.attempts == 0


@pytest.mark.asyncio
async def test_enqueue_for_product_skips_stored_assets(session_factory, gauze_product):
    queue = AssetJobQueue(session_factory)
    await _media(session_factory, gauze_product.id)
    await _media(session_factory, gauze_product.id, url="https://cdn.example.com/a.png", storage_key="media/a.png")
    async with session_scope(session_factory) as session:
        session.add(ProductDocumentModel(product_id=gauze_product.id, url="https://cdn.example.com/ifu.pdf"))

    assert await queue.enqueue_for_product(gauze_product.id) == 2
    assert await queue.enqueue_for_product(gauze_product.id) == 0


@pytest.mark.asyncio
async def test_successful_download_updates_asset(session_factory, gauze_product):
    downloader = FakeDownloader()
    queue = AssetJobQueue(session_factory, downloader=downloader)
    media = await _media(session_factory, gauze_product.id)
    job_id = await queue.enqueue(AssetJobType.MEDIA_DOWNLOAD, media.id, gauze_product.id, IMAGE_URL)

    result = await queue.process_batch(batch_size=10)

    assert result.processed == 1
    assert result.errors == 0
    assert result.media_downloaded == 1
    assert downloader.calls == [(IMAGE_URL, "media")]

    job = await _job(session_factory, job_id)
    assert job.status == JobStatus.COMPLETED.value
    assert job.attempts == 1
    assert job.last_error is None
    assert job.processed_at is not None

    async with session_scope(session_factory) as session:
        stored = await session.get(ProductMediaModel, media.id)
    assert stored.storage_key == "media/stored.jpg"
    assert stored.storage_provider == "local"
    assert stored.mime_type == "image/jpeg"
    assert stored.file_size == 1024


@pytest.mark.asyncio
async def test_failed_job_retries_until_max_attempts(session_factory, gauze_product):
    downloader = FakeDownloader(fail=True)
    queue = AssetJobQueue(session_factory, downloader=downloader, max_attempts=3)
    media = await _media(session_factory, gauze_product.id)
    job_id = await queue.enqueue(AssetJobType.MEDIA_DOWNLOAD, media.id, gauze_product.id, IMAGE_URL)

    for _ in range(3):
        result = await queue.process_batch()
        assert result.errors == 1
        assert result.processed == 0

    job = await _job(session_factory, job_id)
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 3
    assert job.last_error == "HTTP error: 503 Service Unavailable"

    exhausted = await queue.process_batch()
    assert exhausted.errors == 0
    assert exhausted.processed == 0
    assert len(downloader.calls) == 3


@pytest.mark.asyncio
async def test_missing_asset_row_fails_job(session_factory, gauze_product):
    downloader = FakeDownloader()
    queue = AssetJobQueue(session_factory, downloader=downloader)
    media = await _media(session_factory, gauze_product.id)
    job_id = await queue.enqueue(AssetJobType.MEDIA_DOWNLOAD, media.id, gauze_product.id, IMAGE_URL)
    async with session_scope(session_factory) as session:
        await session.delete(await session.get(ProductMediaModel, media.id))

    result = await queue.process_batch()

    assert result.errors == 1
    assert downloader.calls == []
    job = await _job(session_factory, job_id)
    assert job.status == JobStatus.FAILED.value
    assert "not found" in job.last_error


@pytest.mark.asyncio
async def test_asset_removed_during_download_discards_stored_object(session_factory, gauze_product):
    media = await _media(session_factory, gauze_product.id)

    async def remove_media():
        async with session_scope(session_factory) as session:
            await session.delete(await session.get(ProductMediaModel, media.id))

    downloader = FakeDownloader(on_download=remove_media)
    queue = AssetJobQueue(session_factory, downloader=downloader)
    job_id = await queue.enqueue(AssetJobType.MEDIA_DOWNLOAD, media.id, gauze_product.id, IMAGE_URL)

    result = await queue.process_batch()

    assert result.errors == 1
    assert downloader.storage.deleted == ["media/stored.jpg"]
    job = await _job(session_factory, job_id)
    assert job.status == JobStatus.FAILED.value


@pytest.mark.asyncio
async def test_claim_is_exclusive(session_factory, gauze_product):
    queue = AssetJobQueue(session_factory)
    media = await _media(session_factory, gauze_product.id)
    job_id = await queue.enqueue(AssetJobType.MEDIA_DOWNLOAD, media.id, gauze_product.id, IMAGE_URL)
    observed = await _job(session_factory, job_id)

    # Two workers observed the same PENDING job; only one claim succeeds
    assert await queue._claim(observed) is True
    assert await queue._claim(observed) is False

    job = await _job(session_factory, job_id)
    assert job.status == JobStatus.PROCESSING.value
    assert job.attempts == 1


@pytest.mark.asyncio
async def test_process_batch_requires_downloader(session_factory):
    with pytest.raises(RuntimeError):
        await AssetJobQueue(session_factory).process_batch()


@pytest.mark.asyncio
async def test_cleanup_removes_old_completed_jobs(session_factory, gauze_product):
    queue = AssetJobQueue(session_factory, downloader=FakeDownloader())
    old_media = await _media(session_factory, gauze_product.id)
    new_media = await _media(session_factory, gauze_product.id, url="https://cdn.example.com/b.jpg")
    old_job = await queue.enqueue(AssetJobType.MEDIA_DOWNLOAD, old_media.id, gauze_product.id, IMAGE_URL)
    new_job = await queue.enqueue(AssetJobType.MEDIA_DOWNLOAD, new_media.id, gauze_product.id, IMAGE_URL)
    await queue.process_batch()

    async with session_scope(session_factory) as session:
        await session.execute(
            update(AssetJobModel)
            .where(AssetJobModel.id == old_job)
            .values(processed_at=utcnow() - timedelta(days=10))
        )

    assert await queue.cleanup(days_old=7) == 1

    async with session_scope(session_factory) as session:
        remaining = (await session.execute(select(AssetJobModel.id))).scalars().all()
    assert remaining == [new_job]


@pytest.mark.asyncio
async def test_stats_and_release_stale(session_factory, gauze_product):
    queue = AssetJobQueue(session_factory)
    media = await _media(session_factory, gauze_product.id)
    job_id = await queue.enqueue(AssetJobType.MEDIA_DOWNLOAD, media.id, gauze_product.id, IMAGE_URL)
    await queue._claim(await _job(session_factory, job_id))

    assert await queue.stats() == {"pending": 0, "processing": 1, "completed": 0, "failed": 0}
    assert await queue.release_stale(minutes=30) == 0

    async with session_scope(session_factory) as session:
        await session.execute(
            update(AssetJobModel)
            .where(AssetJobModel.id == job_id)
            .values(processed_at=utcnow() - timedelta(minutes=45))
        )

    assert await queue.release_stale(minutes=30) == 1
    job = await _job(session_factory, job_id)
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 1
    assert await queue.stats() == {"pending": 0, "processing": 0, "completed": 0, "failed": 1}

    with pytest.raises(ValueError):
        await queue.release_stale(minutes=0)

    async with session_scope(session_factory) as session:
        assert await session.scalar(select(func.count()).select_from(AssetJobModel)) == 1
