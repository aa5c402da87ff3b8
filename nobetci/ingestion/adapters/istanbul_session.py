"""Istanbul chamber adapter: session-token AJAX flow.

The page embeds a per-session token ``h``. Districts are listed with
``islem=get_ilce`` and each district's roster is fetched with
``islem=get_ilce_eczane``; both are form POSTs to ``index.php`` that answer
JSON. The session cookie from the page GET is kept by the httpx client.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urljoin

import httpx

from nobetci.duty_window import resolve_duty_date
from nobetci.ingestion.base import SourceAdapter, batch_for
from nobetci.ingestion.errors import FetchError, ParseError
from nobetci.ingestion.fetcher import build_client, fetch_page
from nobetci.parsers import merge_source_records, to_source_records
from nobetci.parsers.dom import make_soup
from nobetci.parsers.text import clean_text
from nobetci.schemas.duty import AdapterFetchResult, ConditionalHeaders, ParsedRow, SourceEndpointConfig

logger = logging.getLogger(__name__)

ISTANBUL_PLATE = "34"

_TOKEN_PATTERNS = (
    re.compile(r'id="h"\s+value="([^"]+)"', re.I),
    re.compile(r'name="h"\s+value="([^"]+)"', re.I),
)
_ADDRESS_PREFIX_RE = re.compile(r"^adres\s*:\s*", re.I)
_FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
    "X-Requested-With": "XMLHttpRequest",
}


def extract_session_token(html: str) -> str | None:
    for pattern in _TOKEN_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def _decode(payload: str) -> Any:
    try:
        return json.loads(payload)
    except ValueError:
        return None


def district_list(payload: Any) -> list[str]:
    """District names from a ``get_ilce`` response ``{"ilceler": [{"ilce": ...}]}``."""
    if not isinstance(payload, dict) or not isinstance(payload.get("ilceler"), list):
        return []
    names = [clean_text(str(item.get("ilce") or "")) for item in payload["ilceler"] if isinstance(item, dict)]
    return [n for n in names if n]


def _address(item: dict[str, Any], district: str) -> str:
    raw = item.get("adres")
    if raw:
        text = clean_text(make_soup(str(raw)).get_text(" "))
        text = _ADDRESS_PREFIX_RE.sub("", text)
        if text:
            return text
    parts = [clean_text(str(item.get(k) or "")) for k in ("mahalle", "cadde_sokak", "bina_kapi")]
    return " ".join(p for p in [*parts, district] if p)


def _coordinate(value: Any) -> float | None:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def pharmacy_rows(payload: Any, district: str) -> list[ParsedRow]:
    """Rows from a ``get_ilce_eczane`` response ``{"eczaneler": [...]}``."""
    if not isinstance(payload, dict) or not isinstance(payload.get("eczaneler"), list):
        return []
    rows: list[ParsedRow] = []
    for item in payload["eczaneler"]:
        if not isinstance(item, dict):
            continue
        name = clean_text(str(item.get("eczane_ad") or ""))
        if not name:
            continue
        district_name = clean_text(str(item.get("ilce") or "")) or district
        rows.append(
            ParsedRow(
                district_name=district_name,
                pharmacy_name=name,
                address=_address(item, district_name),
                phone=str(item.get("eczane_tel") or ""),
                lat=_coordinate(item.get("lat")),
                lng=_coordinate(item.get("lng")),
            )
        )
    return rows


class IstanbulSessionAdapter(SourceAdapter):
    def __init__(self, client_factory: Callable[[], httpx.AsyncClient] = build_client) -> None:
        self._client_factory = client_factory

    @property
    def adapter_name(self) -> str:
        return "istanbul_session"

    async def fetch(
        self,
        endpoint: SourceEndpointConfig,
        conditional_headers: ConditionalHeaders | None = None,
        *,
        now: datetime | None = None,
    ) -> AdapterFetchResult:
        now = now or datetime.now(UTC)
        duty_date = resolve_duty_date(now)
        post_url = urljoin(endpoint.endpoint_url, "index.php")

        async with self._client_factory() as client:
            # No validators: a 304 would not carry the session token
            page = await fetch_page(client, endpoint.endpoint_url)
            token = extract_session_token(page.text)
            if not token:
                raise FetchError("Istanbul session token not found", url=endpoint.endpoint_url)

            listing = await fetch_page(
                client,
                post_url,
                method="POST",
                headers=_FORM_HEADERS,
                data={"jx": "1", "islem": "get_ilce", "il": ISTANBUL_PLATE, "h": token},
            )
            districts = district_list(_decode(listing.text))
            if not districts:
                raise FetchError("Istanbul source returned an empty district list", url=post_url)

            records = []
            for district in districts:
                try:
                    response = await fetch_page(
                        client,
                        post_url,
                        method="POST",
                        headers=_FORM_HEADERS,
                        data={
                            "jx": "1",
                            "islem": "get_ilce_eczane",
                            "il": ISTANBUL_PLATE,
                            "ilce": district,
                            "h": token,
                        },
                    )
                except FetchError as exc:
                    logger.warning("Istanbul district %s failed: %s", district, exc)
                    continue
                rows = pharmacy_rows(_decode(response.text), district)
                records = merge_source_records(
                    records,
                    to_source_records(
                        rows,
                        province_slug=endpoint.province_slug,
                        duty_date=duty_date,
                        fetched_at=now,
                        district_hint=district,
                    ),
                )

        if not records:
            raise ParseError("Istanbul session flow produced zero records")

        logger.info("Istanbul session flow: %d districts, %d records", len(districts), len(records))
        return AdapterFetchResult(
            batch=batch_for(endpoint, records),
            http_status=page.status_code,
            etag=page.etag,
            last_modified=page.last_modified,
            raw_payload=json.dumps(
                {
                    "source": endpoint.endpoint_url,
                    "district_count": len(districts),
                    "record_count": len(records),
                }
            ),
            fetch_url=endpoint.endpoint_url,
        )
