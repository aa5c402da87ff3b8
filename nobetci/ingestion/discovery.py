"""Discover related duty pages and AJAX endpoints embedded in a source page."""

from __future__ import annotations

import json
import logging
import re
from datetime import date
from urllib.parse import urldefrag, urljoin

logger = logging.getLogger(__name__)

# Path fragments that mark a link as a duty roster page or feed
_RELATED_RE = re.compile(
    r"(nobetkarti|nobet-karti|nobet-karti2|nobetyazdir|nobetci-eczane|nobetci2-\d+"
    r"|getpharmacies|eczanesistemi\.net/list/|public/eczaneara)",
    re.I,
)
_ATTR_RE = re.compile(r"<(?:a|form|iframe)[^>]+(?:href|action|src)=[\"']([^\"']+)[\"']", re.I)
_SCRIPT_URL_RE = re.compile(
    r"(https?://[^\s\"'<>]+|/[^\s\"'<>]+(?:nobet|eczane|getpharmacies|list/\d+)[^\s\"'<>]*)",
    re.I,
)
# "…/getPharmacies/" + date  (the date is appended client-side)
_AJAX_BASE_RE = re.compile(r"[\"']([^\"'\s]*getPharmacies)/?[\"']\s*\+", re.I)

# Maximum number of related pages to return
_MAX_RELATED = 80


def is_pdf_like(payload: str, url: str) -> bool:
    return ".pdf" in url.lower() or payload.startswith("%PDF-")


def _absolute(base_url: str, raw: str) -> str | None:
    raw = raw.strip()
    if not raw or raw.lower().startswith(("javascript:", "mailto:", "tel:", "#")):
        return None
    url, _ = urldefrag(urljoin(base_url, raw))
    if not url.startswith(("http://", "https://")):
        return None
    return url


def find_related_urls(html: str, base_url: str, limit: int = _MAX_RELATED) -> list[str]:
    """Absolute URLs of duty-related pages linked from ``html``, in document order.

    Anchors, forms and iframes are scanned first, then URLs inside inline
    scripts. PDFs and the page itself are skipped.
    """
    found: list[str] = []
    seen = {base_url}

    candidates = [m.group(1) for m in _ATTR_RE.finditer(html)]
    candidates += [m.group(1) for m in _SCRIPT_URL_RE.finditer(html)]
    for raw in candidates:
        if not _RELATED_RE.search(raw):
            continue
        url = _absolute(base_url, raw)
        if url is None or url in seen or is_pdf_like("", url):
            continue
        seen.add(url)
        found.append(url)
        if len(found) >= limit:
            break

    logger.debug("find_related_urls: %d candidates on %s", len(found), base_url)
    return found


def find_ajax_api_url(html: str, base_url: str, duty_date: date) -> str | None:
    """URL of a dated ``getPharmacies`` JSON endpoint the page calls from script, if any."""
    if "getpharmacies" not in html.lower():
        return None
    match = _AJAX_BASE_RE.search(html)
    api_base = match.group(1) if match else "/getPharmacies"
    return _absolute(base_url, f"{api_base}/{duty_date.isoformat()}")


def unwrap_json_html(payload: str) -> list[str]:
    """HTML fragments from a JSON wrapper such as ``{"html": "<div>…"}``; [] otherwise."""
    stripped = payload.strip()
    if not stripped.startswith(("{", "[")):
        return []
    try:
        data = json.loads(stripped)
    except ValueError:
        return []
    if not isinstance(data, dict):
        return []
    values = (data.get("html"), data.get("data"), data.get("result"))
    return [v for v in values if isinstance(v, str) and "<" in v]
