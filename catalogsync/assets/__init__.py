"""Background download of product media and documents."""

from catalogsync.assets.downloader import (
    DOCUMENT_PROFILE,
    MEDIA_PROFILE,
    AssetDownloader,
    DownloadedAsset,
    DownloadProfile,
    profiles_from_config,
)
from catalogsync.assets.queue import AssetJobQueue

__all__ = [
    "AssetDownloader",
    "AssetJobQueue",
    "DownloadProfile",
    "DownloadedAsset",
    "MEDIA_PROFILE",
    "DOCUMENT_PROFILE",
    "profiles_from_config",
]
