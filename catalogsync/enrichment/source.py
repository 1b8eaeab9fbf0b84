"""External product-data sources used for enrichment.

A source looks a product up by GTIN and returns its core attributes plus
references to media and documents. The HTTP implementation expects a JSON
API of the form ``GET {base_url}/products/{gtin}`` (404 when unknown).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass
class ExternalProductData:
    """Structured attributes returned by a product-data source."""

    gtin: str
    name: str | None = None
    brand: str | None = None
    description: str | None = None
    media_urls: list[str] = field(default_factory=list)
    document_urls: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)


class EnrichmentSource(Protocol):
    async def lookup(self, gtin: str) -> ExternalProductData | None:
        """Return product data, or None when the GTIN is unknown to the source."""
        ...


def _urls(entries: Any) -> list[str]:
    """Accept ["https://..."] or [{"url": "https://..."}] lists."""
    urls: list[str] = []
    for entry in entries or []:
        url = entry.get("url") if isinstance(entry, dict) else entry
        if isinstance(url, str) and url.strip() and url.strip() not in urls:
            urls.append(url.strip())
    return urls


def parse_product_payload(gtin: str, payload: dict[str, Any]) -> ExternalProductData:
    """Map a JSON payload onto ExternalProductData.

    Both plain keys (name/brand/description/media/documents) and GS1-style
    keys (tradeItemDescription/brandName/shortDescription/digitalAssets/
    referencedDocuments) are understood.
    """
    return ExternalProductData(
        gtin=gtin,
        name=payload.get("name") or payload.get("tradeItemDescription"),
        brand=payload.get("brand") or payload.get("brandName"),
        description=payload.get("description") or payload.get("shortDescription"),
        media_urls=_urls(payload.get("media") or payload.get("digitalAssets")),
        document_urls=_urls(payload.get("documents") or payload.get("referencedDocuments")),
        raw=payload,
    )


class HttpEnrichmentSource:
    """Product-data lookup over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
            headers=headers,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def lookup(self, gtin: str) -> ExternalProductData | None:
        """Fetch one product.

        Raises:
            httpx.HTTPError: Transport failure or non-404 error status
        """
        response = await self.client.get(f"{self.base_url}/products/{gtin}")
        if response.status_code == 404:
            logger.info(f"GTIN {gtin} not found in product-data source")
            return None
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected payload for GTIN {gtin}: {type(payload).__name__}")
        return parse_product_payload(gtin, payload)
