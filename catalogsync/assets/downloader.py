"""Asset downloader: fetch media/document files and hand them to storage.

Each asset kind has a DownloadProfile bounding time, size and accepted
content types. Failures raise AssetDownloadError; the job queue turns them
into FAILED jobs.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from urllib.parse import unquote, urlparse

import httpx

from catalogsync.config import AssetQueueConfig
from catalogsync.exceptions import AssetDownloadError
from catalogsync.storage.provider import (
    StorageProvider,
    extension_from_mime_type,
    extension_from_url,
    generate_unique_filename,
    mime_type_from_extension,
)

logger = logging.getLogger(__name__)

GENERIC_BINARY = "application/octet-stream"


@dataclass(frozen=True)
class DownloadProfile:
    folder: str
    max_bytes: int
    timeout_seconds: float
    allowed_mime_types: frozenset[str] = field(default_factory=frozenset)
    # Documents also accept generic binary and any text/* payload
    lenient_types: bool = False

    def accepts(self, mime_type: str) -> bool:
        if mime_type in self.allowed_mime_types:
            return True
        return self.lenient_types and (mime_type == GENERIC_BINARY or mime_type.startswith("text/"))


MEDIA_PROFILE = DownloadProfile(
    folder="media",
    max_bytes=50 * 1024 * 1024,
    timeout_seconds=30.0,
    allowed_mime_types=frozenset({
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
        "video/mp4",
        "video/webm",
    }),
)

DOCUMENT_PROFILE = DownloadProfile(
    folder="documents",
    max_bytes=100 * 1024 * 1024,
    timeout_seconds=60.0,
    allowed_mime_types=frozenset({
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/rtf",
        "application/vnd.oasis.opendocument.text",
        "application/vnd.oasis.opendocument.spreadsheet",
        "text/plain",
        "text/html",
    }),
    lenient_types=True,
)


def profiles_from_config(config: AssetQueueConfig) -> tuple[DownloadProfile, DownloadProfile]:
    """(media, document) profiles with configured limits."""
    media = replace(
        MEDIA_PROFILE,
        max_bytes=config.media_max_bytes,
        timeout_seconds=config.media_timeout_seconds,
    )
    document = replace(
        DOCUMENT_PROFILE,
        max_bytes=config.document_max_bytes,
        timeout_seconds=config.document_timeout_seconds,
    )
    return media, document


@dataclass
class DownloadedAsset:
    storage_provider: str
    storage_key: str
    url: str
    filename: str
    mime_type: str
    file_size: int


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def filename_from_url(url: str) -> str | None:
    """Last path segment when it looks like a filename (has an extension)."""
    segment = unquote(urlparse(url).path.rsplit("/", 1)[-1])
    return segment if segment and "." in segment else None


class AssetDownloader:
    """Downloads assets over HTTP and stores them via a StorageProvider."""

    def __init__(
        self,
        storage: StorageProvider,
        client: httpx.AsyncClient | None = None,
        user_agent: str = "catalogsync-asset-downloader/1.0",
    ):
        self.storage = storage
        self._client = client
        self._owns_client = client is None
        self.user_agent = user_agent

    async def __aenter__(self) -> AssetDownloader:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            )
        return self._client

    async def download(self, url: str, profile: DownloadProfile) -> DownloadedAsset:
        """Fetch one asset and store it.

        Args:
            url: Source URL (http/https)
            profile: Limits and accepted content types for this asset kind

        Returns:
            DownloadedAsset with storage metadata

        Raises:
            AssetDownloadError: Invalid URL, HTTP error, timeout, rejected
                content type, oversized body or storage failure
        """
        if not is_valid_url(url):
            raise AssetDownloadError(f"Invalid URL: {url}")

        try:
            content, mime_type = await asyncio.wait_for(
                self._fetch(url, profile), timeout=profile.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise AssetDownloadError(
                f"Request timed out after {profile.timeout_seconds:.0f}s: {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AssetDownloadError(f"Download failed for {url}: {exc}") from exc

        ext = extension_from_url(url) or extension_from_mime_type(mime_type) or ".bin"
        if mime_type == GENERIC_BINARY:
            mime_type = mime_type_from_extension(ext)

        original_filename = filename_from_url(url) or f"download{ext}"

        try:
            stored = await self.storage.upload(
                content,
                folder=profile.folder,
                filename=generate_unique_filename(ext),
                content_type=mime_type,
            )
        except OSError as exc:
            raise AssetDownloadError(f"Storage failed for {url}: {exc}") from exc

        logger.info(
            f"Downloaded {url} -> {stored.storage_key} ({stored.file_size} bytes, {mime_type})"
        )
        return DownloadedAsset(
            storage_provider=self.storage.provider_id,
            storage_key=stored.storage_key,
            url=stored.url,
            filename=original_filename,
            mime_type=mime_type,
            file_size=stored.file_size,
        )

    async def _fetch(self, url: str, profile: DownloadProfile) -> tuple[bytes, str]:
        async with self.client.stream("GET", url) as response:
            if response.status_code >= 400:
                raise AssetDownloadError(
                    f"HTTP error: {response.status_code} {response.reason_phrase}"
                )

            header = response.headers.get("content-type") or GENERIC_BINARY
            mime_type = header.split(";")[0].strip().lower()
            if not profile.accepts(mime_type):
                allowed = ", ".join(sorted(profile.allowed_mime_types))
                raise AssetDownloadError(f"Invalid content type: {mime_type}. Allowed: {allowed}")

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > profile.max_bytes:
                raise AssetDownloadError(
                    f"File too large: {declared} bytes (max: {profile.max_bytes} bytes)"
                )

            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > profile.max_bytes:
                    raise AssetDownloadError(
                        f"File too large: more than {profile.max_bytes} bytes"
                    )

        return bytes(buffer), mime_type
