"""Product enrichment from an external product-data source."""

from catalogsync.enrichment.source import (
    EnrichmentSource,
    ExternalProductData,
    HttpEnrichmentSource,
    parse_product_payload,
)
from catalogsync.enrichment.trigger import EnrichmentTrigger

__all__ = [
    "EnrichmentSource",
    "ExternalProductData",
    "HttpEnrichmentSource",
    "EnrichmentTrigger",
    "parse_product_payload",
]
