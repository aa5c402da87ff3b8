"""Tests for adapter resolution."""

from __future__ import annotations

import pytest

from nobetci.ingestion.adapters.http_html import HttpHtmlAdapter
from nobetci.ingestion.adapters.istanbul_session import IstanbulSessionAdapter
from nobetci.ingestion.adapters.registry import AdapterRegistry
from nobetci.ingestion.adapters.static_fallback import StaticFallbackAdapter
from nobetci.ingestion.errors import FetchError
from nobetci.schemas.duty import SourceEndpointConfig


def _endpoint(parser_key: str = "generic_auto_v1", format: str = "html") -> SourceEndpointConfig:
    return SourceEndpointConfig(
        source_endpoint_id=5,
        source_id=1,
        province_slug="istanbul",
        source_name="Source",
        source_type="pharmacists_chamber",
        authority_weight=80,
        endpoint_url="https://example.org/",
        format=format,
        parser_key=parser_key,
    )


class TestAdapterRegistry:
    def test_parser_key_prefix_wins(self):
        registry = AdapterRegistry()
        assert isinstance(registry.resolve(_endpoint("istanbul_secondary_v1")), IstanbulSessionAdapter)

    @pytest.mark.parametrize("fmt", ["html", "html_table", "html_js", "api"])
    def test_format_mapping(self, fmt):
        registry = AdapterRegistry()
        assert isinstance(registry.resolve(_endpoint(format=fmt)), HttpHtmlAdapter)

    @pytest.mark.parametrize("fmt", ["pdf", "image"])
    def test_unsupported_formats(self, fmt):
        with pytest.raises(FetchError, match="No adapter supports format"):
            AdapterRegistry().resolve(_endpoint(format=fmt))

    def test_injected_adapters(self):
        html = HttpHtmlAdapter()
        custom = StaticFallbackAdapter()
        registry = AdapterRegistry(html=html, keyed={"konya": custom})
        assert registry.resolve(_endpoint("konya_v1")) is custom
        assert registry.resolve(_endpoint("istanbul_secondary_v1")) is html

    def test_fallback(self):
        fallback = StaticFallbackAdapter()
        assert AdapterRegistry(fallback=fallback).resolve_fallback(_endpoint()) is fallback
        assert isinstance(AdapterRegistry().resolve_fallback(_endpoint()), StaticFallbackAdapter)

    def test_adapter_names(self):
        assert HttpHtmlAdapter().adapter_name == "http_html"
        assert IstanbulSessionAdapter().adapter_name == "istanbul_session"
        assert StaticFallbackAdapter().adapter_name == "static_fallback"
