"""Pydantic schemas for the ingestion pipeline."""

from nobetci.schemas.duty import (
    AdapterFetchResult,
    ConditionalHeaders,
    ConflictItem,
    DateValidationResult,
    EvidenceItem,
    ParsedRow,
    SourceBatch,
    SourceEndpointConfig,
    SourceMeta,
    SourceRecord,
    VerifiedRecord,
)

__all__ = [
    "AdapterFetchResult",
    "ConditionalHeaders",
    "ConflictItem",
    "DateValidationResult",
    "EvidenceItem",
    "ParsedRow",
    "SourceBatch",
    "SourceEndpointConfig",
    "SourceMeta",
    "SourceRecord",
    "VerifiedRecord",
]
