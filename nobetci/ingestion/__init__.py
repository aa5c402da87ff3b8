"""Fetch layer: HTTP fetching, discovery and source adapters."""

from nobetci.ingestion.base import SourceAdapter
from nobetci.ingestion.errors import (
    FetchError,
    IngestionError,
    NoEndpointError,
    NoRecordsError,
    ParseError,
    PullCancelledError,
    StaleDateError,
)

__all__ = [
    "FetchError",
    "IngestionError",
    "NoEndpointError",
    "NoRecordsError",
    "ParseError",
    "PullCancelledError",
    "SourceAdapter",
    "StaleDateError",
]
