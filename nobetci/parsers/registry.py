"""Parser registry: parser key -> pure ``parse(html) -> list[ParsedRow]`` function.

New sources are supported by registering a new key, never by branching
inside an existing parser. Strategies registered with an ``auto_priority``
also take part in auto-detection for ``generic_auto_v1`` and unknown keys.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from nobetci.parsers.text import normalize_phone
from nobetci.schemas.duty import ParsedRow

logger = logging.getLogger(__name__)

ParserFn = Callable[[str], list[ParsedRow]]

AUTO_PARSER_KEY = "generic_auto_v1"
LIST_PARSER_KEY = "generic_list"
TABLE_PARSER_KEY = "generic_table"


@dataclass(frozen=True)
class RegisteredParser:
    key: str
    fn: ParserFn
    auto_priority: int | None
    min_rows: int


_PARSERS: dict[str, RegisteredParser] = {}


def register_parser(
    key: str,
    *,
    auto_priority: int | None = None,
    min_rows: int = 1,
) -> Callable[[ParserFn], ParserFn]:
    """Register a parser under ``key``.

    Parameters
    ----------
    key : str
        Parser key stored on source endpoints (e.g. 'osmaniye_eo_v1').
    auto_priority : int | None
        Position in auto-detection (lower runs first); None = explicit only.
    min_rows : int
        Rows the strategy must yield to win auto-detection.
    """

    def decorator(fn: ParserFn) -> ParserFn:
        if key in _PARSERS:
            raise ValueError(f"Parser key already registered: {key}")
        _PARSERS[key] = RegisteredParser(key=key, fn=fn, auto_priority=auto_priority, min_rows=min_rows)
        return fn

    return decorator


def get_parser(key: str) -> ParserFn | None:
    registered = _PARSERS.get(key)
    return registered.fn if registered else None


def registered_keys() -> list[str]:
    return sorted(_PARSERS)


def _run(registered: RegisteredParser, html: str) -> list[ParsedRow]:
    try:
        return registered.fn(html)
    except Exception:
        # A broken heuristic must not take down the other strategies.
        logger.exception("Parser %s raised; treating as zero rows", registered.key)
        return []


def usable_row_count(rows: list[ParsedRow]) -> int:
    """Rows carrying a phone number that survives normalization."""
    return sum(1 for row in rows if normalize_phone(row.phone))


def auto_detect(html: str) -> list[ParsedRow]:
    """Try auto-detect strategies in priority order.

    The first strategy whose rows include at least ``min_rows`` usable ones
    wins; rows without a usable phone do not count.
    """
    strategies = sorted(
        (p for p in _PARSERS.values() if p.auto_priority is not None),
        key=lambda p: p.auto_priority,
    )
    for registered in strategies:
        rows = _run(registered, html)
        if usable_row_count(rows) >= registered.min_rows:
            logger.debug("Auto-detected parser %s (%d rows)", registered.key, len(rows))
            return rows
    return []


def parse_html(html: str, parser_key: str | None = AUTO_PARSER_KEY) -> list[ParsedRow]:
    """Parse an HTML payload with the hinted parser, falling back to auto-detection."""
    if not html:
        return []
    key = parser_key or AUTO_PARSER_KEY
    if key != AUTO_PARSER_KEY:
        registered = _PARSERS.get(key)
        if registered is None and "list" in key:
            registered = _PARSERS.get(LIST_PARSER_KEY)
        if registered is not None:
            rows = _run(registered, html)
            if usable_row_count(rows):
                return rows
            if rows:
                logger.debug("Parser %s yielded no usable rows; auto-detecting", key)
    return auto_detect(html)


# Strategy modules register themselves on import.
from nobetci.parsers import city_parsers, html_strategies  # noqa: E402,F401
