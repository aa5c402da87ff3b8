"""Abstract adapter interface for duty roster sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from nobetci.schemas.duty import (
    AdapterFetchResult,
    ConditionalHeaders,
    SourceBatch,
    SourceEndpointConfig,
    SourceMeta,
    SourceRecord,
)


class SourceAdapter(ABC):
    """Pluggable adapter for one family of source endpoints.

    Adapters return an AdapterFetchResult or raise FetchError, ParseError or
    StaleDateError. The orchestrator handles run logging, alerting and
    fallback; adapters never touch the database.
    """

    @property
    @abstractmethod
    def adapter_name(self) -> str:
        """Identifier for this adapter (e.g. 'http_html', 'static_fallback')."""
        ...

    @abstractmethod
    async def fetch(
        self,
        endpoint: SourceEndpointConfig,
        conditional_headers: ConditionalHeaders | None = None,
        *,
        now: datetime | None = None,
    ) -> AdapterFetchResult:
        """Fetch and parse one endpoint into a SourceBatch."""
        ...


def batch_for(endpoint: SourceEndpointConfig, records: list[SourceRecord], *, authority_weight: int | None = None) -> SourceBatch:
    """Wrap records in a SourceBatch carrying the endpoint's identity."""
    return SourceBatch(
        meta=SourceMeta(
            source_name=endpoint.source_name,
            source_type=endpoint.source_type,
            source_url=endpoint.endpoint_url,
            authority_weight=endpoint.authority_weight if authority_weight is None else authority_weight,
            source_endpoint_id=endpoint.source_endpoint_id,
            parser_key=endpoint.parser_key,
        ),
        records=records,
    )
