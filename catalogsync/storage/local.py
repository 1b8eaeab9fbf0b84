"""Local filesystem storage provider."""

from __future__ import annotations

import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from catalogsync.storage.provider import (
    StoredObject,
    StorageProvider,
    generate_unique_filename,
    safe_storage_key,
)

logger = logging.getLogger(__name__)


class LocalStorageProvider(StorageProvider):
    """Stores assets under a base directory, served from a public URL prefix."""

    provider_id = "local"

    def __init__(self, base_path: Path | str, public_base_url: str = "/assets"):
        self.base_path = Path(base_path)
        self.public_base_url = public_base_url.rstrip("/")

    async def upload(
        self,
        data: bytes,
        folder: str = "",
        filename: str | None = None,
        content_type: str = "application/octet-stream",
    ) -> StoredObject:
        storage_key = safe_storage_key(folder, filename or generate_unique_filename(".bin"))
        target = self._path(storage_key)
        target.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(target, "wb") as out_file:
            await out_file.write(data)

        logger.debug(f"Stored {len(data)} bytes at {target}")
        return StoredObject(
            storage_key=storage_key,
            url=self.get_url(storage_key),
            file_size=len(data),
            content_type=content_type,
        )

    def get_url(self, storage_key: str) -> str:
        return f"{self.public_base_url}/{storage_key}"

    async def delete(self, storage_key: str) -> None:
        target = self._path(storage_key)
        if await aiofiles.os.path.exists(target):
            await aiofiles.os.remove(target)
            logger.info(f"Deleted stored file {storage_key}")

    async def exists(self, storage_key: str) -> bool:
        return await aiofiles.os.path.exists(self._path(storage_key))

    def _path(self, storage_key: str) -> Path:
        return self.base_path / safe_storage_key("", storage_key)
