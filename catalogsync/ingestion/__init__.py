"""Data ingestion module for catalogsync.

Handles parsing supplier catalog files into import rows.
"""

from catalogsync.ingestion.parser import normalize_row, parse_catalog

__all__ = ["parse_catalog", "normalize_row"]
