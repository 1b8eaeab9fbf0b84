"""Catalog import runs and their audit trail."""

from catalogsync.imports.audit import CatalogUploadRepository
from catalogsync.imports.orchestrator import ImportOrchestrator

__all__ = ["CatalogUploadRepository", "ImportOrchestrator"]
