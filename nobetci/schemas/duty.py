"""In-memory duty pipeline types exchanged between fetch, parse, cross-check and persistence."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SourceType = Literal["health_directorate", "pharmacists_chamber", "official_integration", "manual"]
SourceFormat = Literal["html", "html_table", "html_js", "pdf", "image", "api"]
DateValidationStatus = Literal["valid", "missing", "outdated"]

HTML_FORMATS: frozenset[str] = frozenset({"html", "html_table", "html_js"})


# ── Configuration ──────────────────────────────────────────────────────────


class SourceEndpointConfig(BaseModel):
    """One scrape target. Immutable for the duration of a pull.

    Built-in default endpoints carry ids <= 0 and are never written to the DB.
    """

    model_config = ConfigDict(frozen=True)

    source_endpoint_id: int
    source_id: int
    province_slug: str
    source_name: str
    source_type: SourceType
    authority_weight: int = Field(..., ge=0, le=100)
    endpoint_url: str
    format: SourceFormat = "html"
    parser_key: str = "generic_auto_v1"
    is_primary: bool = False

    @property
    def is_builtin(self) -> bool:
        return self.source_endpoint_id <= 0


class ConditionalHeaders(BaseModel):
    """Validators from the last successful run of an endpoint."""

    etag: Optional[str] = None
    last_modified: Optional[str] = None

    def as_request_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.etag:
            headers["If-None-Match"] = self.etag
        if self.last_modified:
            headers["If-Modified-Since"] = self.last_modified
        return headers


# ── Parsing ────────────────────────────────────────────────────────────────


class ParsedRow(BaseModel):
    """Output of every parser strategy, before district/name normalization."""

    district_name: str = ""
    pharmacy_name: str
    address: str = ""
    phone: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None


class SourceMeta(BaseModel):
    """Identity and trust prior of the source that produced a batch."""

    source_name: str
    source_type: SourceType
    source_url: str
    authority_weight: int = Field(..., ge=0, le=100)
    source_endpoint_id: Optional[int] = None
    parser_key: Optional[str] = None


class SourceRecord(BaseModel):
    """One pharmacy-duty observation from one source. Lives for one pull only."""

    province_slug: str
    district_name: str
    district_slug: str
    pharmacy_name: str
    normalized_name: str
    address: str = ""
    phone: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    duty_date: date
    fetched_at: datetime

    @property
    def match_key(self) -> str:
        return f"{self.duty_date.isoformat()}:{self.district_slug}:{self.normalized_name}"

    @property
    def seen_key(self) -> str:
        return f"{self.district_slug}:{self.normalized_name}"


class SourceBatch(BaseModel):
    """Unit exchanged between the fetch layer and the cross-check engine."""

    meta: SourceMeta
    records: list[SourceRecord] = Field(default_factory=list)


# ── Cross-check output ─────────────────────────────────────────────────────


class EvidenceItem(BaseModel):
    source_name: str
    source_url: str
    source_type: SourceType
    authority_weight: int
    fetched_at: datetime


class VerifiedRecord(SourceRecord):
    """Fused, trust-scored record; what gets persisted."""

    confidence_score: int = Field(..., ge=20, le=100)
    verification_source_count: int = Field(..., ge=1, le=2)
    is_degraded: bool
    evidence: list[EvidenceItem] = Field(default_factory=list)


class ConflictItem(BaseModel):
    province_slug: str
    district_slug: str
    duty_date: date
    reason: str
    payload: dict


# ── Adapter output ─────────────────────────────────────────────────────────


class DateValidationResult(BaseModel):
    expected_date: date
    accepted_dates: list[date]
    scraped_date: Optional[date] = None
    status: DateValidationStatus
    is_valid: bool
    strict: bool
    source: str = "none"


class AdapterFetchResult(BaseModel):
    batch: SourceBatch
    http_status: int
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    raw_payload: str
    date_validation: Optional[DateValidationResult] = None
    fetch_url: str
