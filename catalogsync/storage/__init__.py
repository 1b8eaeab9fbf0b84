"""Asset storage providers."""

from catalogsync.config import StorageConfig
from catalogsync.storage.local import LocalStorageProvider
from catalogsync.storage.provider import (
    StoredObject,
    StorageProvider,
    extension_from_mime_type,
    extension_from_url,
    generate_unique_filename,
)


def build_storage_provider(config: StorageConfig) -> StorageProvider:
    """Construct the configured storage provider.

    Raises:
        ValueError: If the provider name is unknown
    """
    if config.provider == "local":
        return LocalStorageProvider(config.local_path, config.public_base_url)
    raise ValueError(f"Unknown storage provider: {config.provider}")


__all__ = [
    "StorageProvider",
    "StoredObject",
    "LocalStorageProvider",
    "build_storage_provider",
    "generate_unique_filename",
    "extension_from_url",
    "extension_from_mime_type",
]
