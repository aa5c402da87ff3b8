"""Per-district POST form pagination.

Some sources render one district at a time behind a ``<select name="ilce">``
form. Each option is posted back with the page's hidden inputs and the duty
date, and the per-district results are merged.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from urllib.parse import urljoin

import httpx
from bs4 import Tag

from nobetci.ingestion.discovery import is_pdf_like, unwrap_json_html
from nobetci.ingestion.errors import FetchError
from nobetci.ingestion.fetcher import fetch_page
from nobetci.parsers import merge_source_records, parse_html, to_source_records
from nobetci.parsers.dom import folded, make_soup, node_text
from nobetci.parsers.registry import AUTO_PARSER_KEY, LIST_PARSER_KEY, TABLE_PARSER_KEY
from nobetci.parsers.text import clean_text
from nobetci.schemas.duty import SourceEndpointConfig, SourceRecord

logger = logging.getLogger(__name__)

_DISTRICT_SELECT_RE = re.compile(r"<select[^>]+(?:name|id)=[\"'][^\"']*ilce", re.I)
_PLACEHOLDER_LABELS = ("ilce seciniz", "tum ilceler", "hepsi")
_DATE_KEYS = ("tarih", "tarih1", "date", "selectedDate", "gun", "nobetTarihi")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded; charset=UTF-8"}


@dataclass
class DistrictForm:
    post_url: str
    select_name: str
    options: list[tuple[str, str]]  # (value, label)
    hidden: dict[str, str] = field(default_factory=dict)


def should_fetch_district_forms(html: str, records: list[SourceRecord]) -> bool:
    """True when the page has a district selector and yielded no real district spread."""
    if not _DISTRICT_SELECT_RE.search(html):
        return False
    return len({r.district_slug for r in records if r.district_slug}) <= 1


def _is_district_select(node: Tag) -> bool:
    return "ilce" in (node.get("name") or "") or "ilce" in (node.get("id") or "")


def read_district_form(html: str, base_url: str) -> DistrictForm | None:
    """Locate the district form and its usable options; None if absent."""
    soup = make_soup(html)
    for form in soup.find_all("form"):
        select = next((s for s in form.find_all("select") if _is_district_select(s)), None)
        if select is None:
            continue
        select_name = clean_text(select.get("name") or select.get("id")) or "ilce"

        options: dict[str, str] = {}
        for option in select.find_all("option"):
            value = clean_text(option.get("value"))
            label = node_text(option) or value
            folded_label = folded(label)
            if not value or value == "0" or any(p in folded_label for p in _PLACEHOLDER_LABELS):
                continue
            options.setdefault(value, label)
        if not options:
            return None

        hidden = {
            clean_text(inp.get("name")): clean_text(inp.get("value"))
            for inp in form.find_all("input", attrs={"type": "hidden"})
            if clean_text(inp.get("name"))
        }
        action = clean_text(form.get("action"))
        return DistrictForm(
            post_url=urljoin(base_url, action) if action else base_url,
            select_name=select_name,
            options=list(options.items()),
            hidden=hidden,
        )
    return None


def build_form_payload(form: DistrictForm, district_value: str, duty_date: date) -> dict[str, str]:
    """Hidden inputs + district value, with every known date field set to the duty date."""
    payload = dict(form.hidden)
    payload[form.select_name] = district_value
    legacy = duty_date.strftime("%d.%m.%Y")
    for key in _DATE_KEYS:
        if key not in payload:
            continue
        payload[key] = duty_date.isoformat() if _ISO_DATE_RE.match(payload[key]) else legacy
    payload.setdefault("tarih", legacy)
    return payload


async def fetch_district_form_records(
    client: httpx.AsyncClient,
    endpoint: SourceEndpointConfig,
    html: str,
    *,
    duty_date: date,
    fetched_at: datetime,
    max_districts: int,
) -> list[SourceRecord]:
    """POST the district form once per option and merge the parsed records.

    Per-district failures are logged and skipped; partial coverage is kept.
    Session cookies set by the original page GET are carried by ``client``.
    """
    form = read_district_form(html, endpoint.endpoint_url)
    if form is None:
        return []

    parser_keys = list(dict.fromkeys([endpoint.parser_key, AUTO_PARSER_KEY, LIST_PARSER_KEY, TABLE_PARSER_KEY]))
    collected: list[SourceRecord] = []
    for value, label in form.options[:max_districts]:
        try:
            page = await fetch_page(
                client,
                form.post_url,
                method="POST",
                headers=_FORM_HEADERS,
                data=build_form_payload(form, value, duty_date),
            )
        except FetchError as exc:
            logger.debug("District form POST failed for %s=%s: %s", form.select_name, value, exc)
            continue
        if not page.text or is_pdf_like(page.text, form.post_url):
            continue

        for fragment in unwrap_json_html(page.text) or [page.text]:
            for key in parser_keys:
                rows = parse_html(fragment, key)
                if not rows:
                    continue
                collected = merge_source_records(
                    collected,
                    to_source_records(
                        rows,
                        province_slug=endpoint.province_slug,
                        duty_date=duty_date,
                        fetched_at=fetched_at,
                        district_hint=label,
                    ),
                )
                break

    logger.info(
        "District forms for %s: %d options posted, %d records",
        endpoint.province_slug,
        min(len(form.options), max_districts),
        len(collected),
    )
    return collected
