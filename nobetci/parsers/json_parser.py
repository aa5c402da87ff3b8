"""JSON payload parser: shape-sniffs common pharmacy API layouts."""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any

from nobetci.parsers.date_validation import extract_dates
from nobetci.parsers.text import clean_text, find_phone, is_valid_pharmacy_name
from nobetci.schemas.duty import ParsedRow

logger = logging.getLogger(__name__)

_WRAPPER_KEYS = ("data", "records", "pharmacies", "result", "items", "eczaneler")
_NAME_KEYS = ("name", "pharmacyName", "pharmacy_name", "eczane_adi", "eczaneAdi", "EczaneAdi", "eczane", "ad")
_PHONE_KEYS = ("phone", "telefon", "tel", "Telefon")
_DISTRICT_KEYS = ("district", "ilce", "districtName", "district_name", "ilce_adi", "Ilce")
_ADDRESS_KEYS = ("address", "adres", "Address")
_LAT_KEYS = ("lat", "enlem", "latitude")
_LNG_KEYS = ("lng", "lon", "boylam", "longitude")
_DATE_KEYS = ("date", "dutyDate", "duty_date", "tarih")


def looks_like_json(payload: str) -> bool:
    return payload.lstrip()[:1] in ("{", "[")


def _first(item: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def _float(value: Any) -> float | None:
    try:
        return float(str(value).replace(",", ".")) if value not in (None, "") else None
    except ValueError:
        return None


def _row_date(value: Any) -> date | None:
    text = str(value)
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        found = extract_dates(text)
        return found[0] if found else None


def _unwrap(data: Any) -> list[Any] | str:
    """List of items, or an embedded HTML string for the HTML parsers."""
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []
    html = data.get("html")
    if isinstance(html, str) and html.strip():
        return html
    for key in _WRAPPER_KEYS:
        value = data.get(key)
        if isinstance(value, list):
            return value
        if isinstance(value, str) and "<" in value:
            return value
        if isinstance(value, dict):
            nested = _unwrap(value)
            if nested:
                return nested
    return []


def parse_json_rows(data: Any, duty_date: date | None = None) -> list[ParsedRow] | str:
    """Rows from decoded JSON, or an HTML string when the API wraps markup.

    Rows carrying a date other than ``duty_date`` are dropped.
    """
    items = _unwrap(data)
    if isinstance(items, str):
        return items

    rows: list[ParsedRow] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        raw_date = _first(item, _DATE_KEYS)
        if duty_date is not None and raw_date is not None:
            item_date = _row_date(raw_date)
            if item_date is not None and item_date != duty_date:
                continue
        name = clean_text(str(_first(item, _NAME_KEYS) or ""))
        if not is_valid_pharmacy_name(name):
            continue
        rows.append(
            ParsedRow(
                district_name=clean_text(str(_first(item, _DISTRICT_KEYS) or "")),
                pharmacy_name=name,
                address=clean_text(str(_first(item, _ADDRESS_KEYS) or "")),
                phone=find_phone(str(_first(item, _PHONE_KEYS) or "")),
                lat=_float(_first(item, _LAT_KEYS)),
                lng=_float(_first(item, _LNG_KEYS)),
            )
        )
    return rows


def decode_json_payload(payload: str) -> Any | None:
    """Decoded JSON, or None when the body is not JSON."""
    if not looks_like_json(payload):
        return None
    try:
        return json.loads(payload)
    except ValueError:
        logger.debug("Payload looked like JSON but did not decode")
        return None
