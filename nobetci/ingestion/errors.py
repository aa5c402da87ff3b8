"""Ingestion error hierarchy.

Endpoint-level errors (FetchError, ParseError, StaleDateError) are absorbed by
the orchestrator; province-level errors (NoEndpointError, NoRecordsError)
propagate to the job layer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nobetci.schemas.duty import DateValidationResult


class IngestionError(Exception):
    """Base class for all pipeline errors."""

    retryable: bool = True


class FetchError(IngestionError):
    """Network failure, timeout, or non-2xx response."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ParseError(IngestionError):
    """Every extraction strategy yielded zero usable rows."""


class StaleDateError(IngestionError):
    """Scraped content describes a different duty date (strict validation)."""

    def __init__(self, message: str, validation: DateValidationResult) -> None:
        super().__init__(message)
        self.validation = validation


class NoEndpointError(IngestionError):
    """No usable source configuration for a province. Not retried."""

    retryable = False


class NoRecordsError(IngestionError):
    """Cross-check produced no records for a province."""


class PullCancelledError(IngestionError):
    """A province write was abandoned before commit because its pull was cancelled."""
