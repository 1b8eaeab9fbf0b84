"""catalogsync Pydantic models for type-safe data validation.

Ephemeral pipeline values (import rows, match decisions, per-row results)
live here; persistent records are defined in catalogsync.db.models.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from catalogsync.canonical.gtin import validate_gtin


class MatchMethod(str, Enum):
    """How a supplier row was linked to a canonical product."""

    GTIN_EXACT = "GTIN_EXACT"
    SKU_EXACT = "SKU_EXACT"
    FUZZY_NAME = "FUZZY_NAME"
    MANUAL = "MANUAL"
    NONE = "NONE"


class DecisionAction(str, Enum):
    """Outcome of the decision policy for one row."""

    ACCEPT = "ACCEPT"
    CREATE_NEW = "CREATE_NEW"
    REVIEW = "REVIEW"


class VerificationStatus(str, Enum):
    UNVERIFIED = "UNVERIFIED"
    VERIFIED = "VERIFIED"
    FAILED_LOOKUP = "FAILED_LOOKUP"


class UploadStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class AssetJobType(str, Enum):
    MEDIA_DOWNLOAD = "MEDIA_DOWNLOAD"
    DOCUMENT_DOWNLOAD = "DOCUMENT_DOWNLOAD"


class ImportRow(BaseModel):
    """One normalized supplier catalog line."""

    row_index: int = 0
    sku: str | None = None
    gtin: str | None = None
    name: str
    brand: str | None = None
    description: str | None = None
    unit_price: Decimal | None = None
    currency: str | None = None
    min_order_qty: int = 1
    stock_level: int | None = None
    lead_time_days: int | None = None
    warnings: list[str] = Field(default_factory=list)

    @field_validator("sku", "gtin", "brand", "description", "currency", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_gtin(self) -> ImportRow:
        """Keep only valid GTINs (digits only); anything else becomes a warning."""
        if self.gtin is None:
            return self
        check = validate_gtin(self.gtin)
        if check.valid:
            self.gtin = check.normalized
        else:
            self.warnings.append(f"Invalid GTIN '{self.gtin}': {check.error}")
            self.gtin = None
        return self


class RowError(BaseModel):
    """Input line rejected before matching."""

    row_index: int
    message: str
    raw: dict[str, str] = Field(default_factory=dict)


class CandidateScore(BaseModel):
    product_id: UUID
    name: str
    brand: str | None = None
    gtin: str | None = None
    score: float


class MatchResult(BaseModel):
    """Ranked match decision for one import row."""

    product_id: UUID | None = None
    match_method: MatchMethod = MatchMethod.NONE
    match_confidence: float = 0.0
    matched_gtin: str | None = None
    candidates: list[CandidateScore] = Field(default_factory=list)
    # Top fuzzy score shared by more than one product
    ambiguous: bool = False

    @property
    def is_match(self) -> bool:
        return self.product_id is not None


class Decision(BaseModel):
    action: DecisionAction
    needs_review: bool
    reason: str = ""


class ImportOptions(BaseModel):
    """Caller-supplied import policy."""

    auto_enrich: bool = True
    create_new_products: bool = True
    skip_invalid_rows: bool = True
    min_auto_match_confidence: float = Field(default=0.90, ge=0.0, le=1.0)
    default_currency: str = "EUR"
    actor: str = "system"

    @field_validator("default_currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()


class RowResult(BaseModel):
    """Per-row outcome surfaced to the upload UI."""

    row_index: int
    success: bool = False
    product_id: UUID | None = None
    supplier_item_id: UUID | None = None
    match_method: MatchMethod | None = None
    match_confidence: float | None = None
    needs_review: bool = False
    enriched: bool = False
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ImportResult(BaseModel):
    """Aggregate outcome of one import run."""

    upload_id: UUID | None = None
    global_supplier_id: UUID
    status: UploadStatus
    started_at: datetime
    completed_at: datetime | None = None
    total_rows: int = 0
    success_count: int = 0
    failed_count: int = 0
    review_count: int = 0
    enriched_count: int = 0
    error_message: str | None = None
    items: list[RowResult] = Field(default_factory=list)


class ProductData(BaseModel):
    """Fields for creating a canonical product."""

    gtin: str | None = None
    name: str
    brand: str | None = None
    description: str | None = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v

    @field_validator("gtin")
    @classmethod
    def valid_gtin(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        check = validate_gtin(v)
        if not check.valid:
            raise ValueError(f"Invalid GTIN '{v}': {check.error}")
        return check.normalized


class EnrichmentResult(BaseModel):
    """What the external product-data source returned for one product."""

    success: bool = False
    product_id: UUID
    enriched_fields: list[str] = Field(default_factory=list)
    media_urls: list[str] = Field(default_factory=list)
    document_urls: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class AssetJobResult(BaseModel):
    processed: int = 0
    errors: int = 0
    media_downloaded: int = 0
    documents_downloaded: int = 0
