"""Parser and normalization layer: raw HTML/JSON payloads to SourceRecords."""

from nobetci.parsers.registry import get_parser, parse_html, register_parser, registered_keys
from nobetci.parsers.normalize import merge_source_records, parse_payload, to_source_records

__all__ = [
    "get_parser",
    "merge_source_records",
    "parse_html",
    "parse_payload",
    "register_parser",
    "registered_keys",
    "to_source_records",
]
