"""Scraped-date freshness gate.

Pages often keep serving yesterday's roster after the duty window has rolled
over. Before a scraped batch is accepted the date printed on the page must be
one of the accepted duty dates (today, plus yesterday before 08:00 Istanbul).
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime

from bs4 import BeautifulSoup

from nobetci.config import get_settings
from nobetci.duty_window import accepted_duty_dates, istanbul_now
from nobetci.parsers.text import clean_text, fold_turkish, turkish_lower
from nobetci.schemas.duty import DateValidationResult

logger = logging.getLogger(__name__)

TURKISH_MONTHS: dict[str, int] = {
    "ocak": 1,
    "subat": 2,
    "mart": 3,
    "nisan": 4,
    "mayis": 5,
    "haziran": 6,
    "temmuz": 7,
    "agustos": 8,
    "eylul": 9,
    "ekim": 10,
    "kasim": 11,
    "aralik": 12,
}

DEFAULT_DATE_SELECTORS: tuple[str, ...] = (
    ".baslik",
    ".date",
    ".tarih",
    ".nobet-date",
    ".nobet-tarih",
    "h1",
    "h2",
    "h3",
    "time",
    "title",
)
PARSER_DATE_SELECTORS: dict[str, tuple[str, ...]] = {
    "osmaniye_eo_v1": ("div.baslik", ".baslik", "title"),
    "adana_primary_v1": (".dynamicTable", "h1", "h2", "h3", "title"),
    "adana_secondary_v1": (".nobetci", "h1", "h2", "h3", "title"),
    "istanbul_primary_v1": ("h1", "h2", "h3", "title"),
    "istanbul_secondary_v1": ("h1", "h2", "h3", "title"),
}
STRICT_BY_DEFAULT: frozenset[str] = frozenset({"osmaniye_eo_v1"})

_NODES_PER_SELECTOR = 8
_MAX_KEYWORD_CONTEXTS = 24
_BODY_PREFIX_CHARS = 800

_NUMERIC_DATE_RE = re.compile(r"\b(\d{1,2})[./-](\d{1,2})[./-](\d{4})\b")
_MONTH_NAME_DATE_RE = re.compile(
    r"\b(\d{1,2})\s+(" + "|".join(TURKISH_MONTHS) + r")\s+(\d{4})\b"
)
_KEYWORD_CONTEXT_RE = re.compile(r".{0,80}(?:nobetci|gunu|tarih).{0,80}")


def _safe_date(year: int, month: int, day: int) -> date | None:
    if not (2000 <= year <= 2100 and 1 <= month <= 12 and 1 <= day <= 31):
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def extract_dates(text: str) -> list[date]:
    """All plausible dates in text, numeric (D.M.YYYY) or with Turkish month names."""
    if not text:
        return []
    folded = fold_turkish(turkish_lower(text))
    found: list[date] = []
    for match in _NUMERIC_DATE_RE.finditer(folded):
        parsed = _safe_date(int(match.group(3)), int(match.group(2)), int(match.group(1)))
        if parsed:
            found.append(parsed)
    for match in _MONTH_NAME_DATE_RE.finditer(folded):
        parsed = _safe_date(
            int(match.group(3)), TURKISH_MONTHS[match.group(2)], int(match.group(1))
        )
        if parsed:
            found.append(parsed)
    return found


def collect_date_candidates(html: str, parser_key: str | None) -> list[tuple[str, str]]:
    """(origin, text) pairs likely to carry the roster date, most specific first."""
    soup = BeautifulSoup(html, "html.parser")
    selectors = PARSER_DATE_SELECTORS.get(parser_key or "", DEFAULT_DATE_SELECTORS)
    candidates: list[tuple[str, str]] = []
    for selector in selectors:
        for node in soup.select(selector)[:_NODES_PER_SELECTOR]:
            text = clean_text(node.get_text(" "))
            if text:
                candidates.append((f"selector:{selector}", text))

    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    body_text = clean_text(soup.get_text(" "))
    folded = fold_turkish(turkish_lower(body_text))
    contexts = [m.group(0) for m in _KEYWORD_CONTEXT_RE.finditer(folded)][:_MAX_KEYWORD_CONTEXTS]
    candidates.extend(("keyword", ctx) for ctx in contexts)
    if not candidates and body_text:
        candidates.append(("body", body_text[:_BODY_PREFIX_CHARS]))
    return candidates


def is_strict_parser(parser_key: str | None) -> bool:
    settings = get_settings()
    key = (parser_key or "").lower()
    return (
        settings.strict_scraped_date_validation
        or key in settings.strict_scraped_date_keys
        or key in STRICT_BY_DEFAULT
    )


def validate_scraped_date(
    html: str,
    parser_key: str | None,
    now: datetime | None = None,
    strict: bool | None = None,
) -> DateValidationResult:
    """Check the date printed on a page against the accepted duty dates.

    Parameters
    ----------
    html : str
        Raw page payload.
    parser_key : str | None
        Selects per-source date selectors and the default strictness.
    now : datetime | None
        Reference time (default: current time).
    strict : bool | None
        Override strictness; None reads configuration.

    Returns
    -------
    DateValidationResult
        status "valid" if an accepted date was found, "outdated" if only other
        dates were found, "missing" if none. Outdated and missing pages are
        only invalid in strict mode.
    """
    accepted = accepted_duty_dates(now)
    expected = istanbul_now(now).date()
    strict_mode = is_strict_parser(parser_key) if strict is None else strict

    first_seen: tuple[str, date] | None = None
    for origin, text in collect_date_candidates(html, parser_key):
        for found in extract_dates(text):
            if found in accepted:
                return DateValidationResult(
                    expected_date=expected,
                    accepted_dates=accepted,
                    scraped_date=found,
                    status="valid",
                    is_valid=True,
                    strict=strict_mode,
                    source=origin,
                )
            if first_seen is None:
                first_seen = (origin, found)

    if first_seen is not None:
        origin, found = first_seen
        logger.debug("Scraped date %s not in accepted %s (%s)", found, accepted, origin)
        return DateValidationResult(
            expected_date=expected,
            accepted_dates=accepted,
            scraped_date=found,
            status="outdated",
            is_valid=not strict_mode,
            strict=strict_mode,
            source=origin,
        )

    return DateValidationResult(
        expected_date=expected,
        accepted_dates=accepted,
        status="missing",
        is_valid=not strict_mode,
        strict=strict_mode,
    )
