"""Source adapters for duty roster endpoints."""

from nobetci.ingestion.adapters.http_html import HttpHtmlAdapter
from nobetci.ingestion.adapters.istanbul_session import IstanbulSessionAdapter
from nobetci.ingestion.adapters.registry import AdapterRegistry
from nobetci.ingestion.adapters.static_fallback import StaticFallbackAdapter

__all__ = [
    "AdapterRegistry",
    "HttpHtmlAdapter",
    "IstanbulSessionAdapter",
    "StaticFallbackAdapter",
]
