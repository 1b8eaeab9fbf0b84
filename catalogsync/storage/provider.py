"""Storage provider interface for downloaded media and document assets.

Implementations: local filesystem (LocalStorageProvider). Object storage or a
CDN plug in by implementing StorageProvider.
"""

from __future__ import annotations

import re
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlparse

MIME_EXTENSIONS = {
    # Images
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
    # Videos
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    # Documents
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/rtf": ".rtf",
    "application/vnd.oasis.opendocument.text": ".odt",
    "application/vnd.oasis.opendocument.spreadsheet": ".ods",
    "text/plain": ".txt",
    "text/html": ".html",
}

_EXTENSION = re.compile(r"\.([a-zA-Z0-9]+)$")


@dataclass
class StoredObject:
    """Result of a successful upload."""

    storage_key: str
    url: str
    file_size: int
    content_type: str


class StorageProvider(ABC):
    """Unified interface for storing and retrieving asset files."""

    provider_id: str

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        folder: str = "",
        filename: str | None = None,
        content_type: str = "application/octet-stream",
    ) -> StoredObject:
        """Store bytes and return the storage key and public URL.

        Args:
            data: File content
            folder: Subfolder ("media", "documents")
            filename: Target filename; a unique one is generated when omitted
            content_type: MIME type of the content
        """

    @abstractmethod
    def get_url(self, storage_key: str) -> str:
        """Public URL for a stored file."""

    @abstractmethod
    async def delete(self, storage_key: str) -> None:
        """Delete a stored file; missing files are not an error."""

    @abstractmethod
    async def exists(self, storage_key: str) -> bool:
        """Check whether a stored file exists."""


def generate_unique_filename(extension: str) -> str:
    """Timestamp plus random suffix, e.g. '1718000000000-a1b2c3.jpg'."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}{extension}"


def extension_from_url(url: str) -> str:
    """Lowercased extension of the URL path ('' when there is none)."""
    path = urlparse(url).path if "://" in url else url
    match = _EXTENSION.search(path)
    return f".{match.group(1).lower()}" if match else ""


def extension_from_mime_type(mime_type: str | None) -> str:
    if not mime_type:
        return ""
    return MIME_EXTENSIONS.get(mime_type.split(";")[0].strip().lower(), "")


def mime_type_from_extension(extension: str) -> str:
    for mime, ext in MIME_EXTENSIONS.items():
        if ext == extension.lower():
            return mime
    return "application/octet-stream"


def safe_storage_key(folder: str, filename: str) -> str:
    """Join folder and filename into a relative key that cannot escape the root.

    Raises:
        ValueError: If the key would be absolute or contain '..'
    """
    key = PurePosixPath(folder.strip("/")) / filename if folder else PurePosixPath(filename)
    if key.is_absolute() or ".." in key.parts:
        raise ValueError(f"Invalid storage key: {key}")
    return str(key)
