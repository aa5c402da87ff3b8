"""Adapter resolution by parser-key prefix, then by payload format."""

from __future__ import annotations

from nobetci.ingestion.adapters.http_html import HttpHtmlAdapter
from nobetci.ingestion.adapters.istanbul_session import IstanbulSessionAdapter
from nobetci.ingestion.adapters.static_fallback import StaticFallbackAdapter
from nobetci.ingestion.base import SourceAdapter
from nobetci.ingestion.errors import FetchError
from nobetci.schemas.duty import SourceEndpointConfig


class AdapterRegistry:
    """Maps endpoints to adapters. One instance per worker process."""

    def __init__(
        self,
        *,
        html: SourceAdapter | None = None,
        fallback: SourceAdapter | None = None,
        keyed: dict[str, SourceAdapter] | None = None,
    ) -> None:
        html_adapter = html or HttpHtmlAdapter()
        self._fallback = fallback or StaticFallbackAdapter()
        self._by_prefix: dict[str, SourceAdapter] = (
            keyed if keyed is not None else {"istanbul_secondary": IstanbulSessionAdapter()}
        )
        self._by_format: dict[str, SourceAdapter] = {
            "html": html_adapter,
            "html_table": html_adapter,
            "html_js": html_adapter,
            "api": html_adapter,
        }

    def resolve(self, endpoint: SourceEndpointConfig) -> SourceAdapter:
        for prefix, adapter in self._by_prefix.items():
            if endpoint.parser_key.startswith(prefix):
                return adapter
        adapter = self._by_format.get(endpoint.format)
        if adapter is None:
            # pdf and image sources need OCR, which this pipeline does not do
            raise FetchError(f"No adapter supports format {endpoint.format}", url=endpoint.endpoint_url)
        return adapter

    def resolve_fallback(self, endpoint: SourceEndpointConfig) -> SourceAdapter:
        return self._fallback
