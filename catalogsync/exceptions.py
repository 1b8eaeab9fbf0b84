"""Domain errors raised by the catalog pipeline.

Anything deriving from CatalogError is recoverable at row level: the import
orchestrator records it on the row and moves on. Any other exception that
escapes a row is treated as a run-level failure.
"""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for recoverable catalog pipeline errors."""


class RowValidationError(CatalogError):
    """Input row failed validation and the run does not skip invalid rows."""

    def __init__(self, row_index: int, message: str):
        self.row_index = row_index
        super().__init__(f"Row {row_index}: {message}")


class DuplicateProductError(CatalogError):
    """A product with the same GTIN already exists."""


class DuplicateLinkError(CatalogError):
    """Supplier already has an active link to the target product."""


class AssetDownloadError(CatalogError):
    """Asset could not be fetched or stored (bad URL, HTTP error, type, size)."""


class RecordNotFoundError(CatalogError):
    """Referenced record does not exist."""

    def __init__(self, entity: str, record_id: object):
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity} {record_id} not found")
