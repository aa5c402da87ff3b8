"""Payload -> ParsedRow -> SourceRecord normalization."""

from __future__ import annotations

import logging
from datetime import date, datetime

from nobetci.parsers.districts import belongs_to_province, resolve_district_name
from nobetci.parsers.json_parser import decode_json_payload, parse_json_rows
from nobetci.parsers.registry import parse_html
from nobetci.parsers.text import (
    clean_text,
    ensure_eczane_suffix,
    is_valid_pharmacy_name,
    normalize_pharmacy_name,
    normalize_phone,
    to_slug,
)
from nobetci.schemas.duty import ParsedRow, SourceRecord

logger = logging.getLogger(__name__)


def parse_payload(payload: str, parser_key: str | None, duty_date: date | None = None) -> list[ParsedRow]:
    """Parse a raw body: JSON first when it looks like JSON, otherwise HTML."""
    decoded = decode_json_payload(payload)
    if decoded is not None:
        result = parse_json_rows(decoded, duty_date)
        if isinstance(result, str):
            return parse_html(result, parser_key)
        if result:
            return result
    return parse_html(payload, parser_key)


def to_source_records(
    rows: list[ParsedRow],
    *,
    province_slug: str,
    duty_date: date,
    fetched_at: datetime,
    district_hint: str | None = None,
) -> list[SourceRecord]:
    """Validate, canonicalise and deduplicate parsed rows for one province.

    Rows without a usable name or a Turkish phone number are dropped; this
    is expected on partial pages and is not an error.
    """
    records: list[SourceRecord] = []
    seen: set[str] = set()
    dropped = 0
    for row in rows:
        phone = normalize_phone(row.phone)
        if not is_valid_pharmacy_name(row.pharmacy_name) or not phone:
            dropped += 1
            continue
        address = clean_text(row.address)
        label = row.district_name or district_hint or ""
        if not belongs_to_province(province_slug, label, address):
            dropped += 1
            continue
        district_name = resolve_district_name(province_slug, label, address, row.pharmacy_name)
        display_name = ensure_eczane_suffix(row.pharmacy_name)
        record = SourceRecord(
            province_slug=province_slug,
            district_name=district_name,
            district_slug=to_slug(district_name),
            pharmacy_name=display_name,
            normalized_name=normalize_pharmacy_name(display_name),
            address=address,
            phone=phone,
            lat=row.lat,
            lng=row.lng,
            duty_date=duty_date,
            fetched_at=fetched_at,
        )
        if record.seen_key in seen:
            continue
        seen.add(record.seen_key)
        records.append(record)
    if dropped:
        logger.debug("Dropped %d unusable rows for %s", dropped, province_slug)
    return records


def merge_source_records(*groups: list[SourceRecord]) -> list[SourceRecord]:
    """Concatenate record lists keeping the first record per match key."""
    merged: dict[str, SourceRecord] = {}
    for group in groups:
        for record in group:
            merged.setdefault(record.match_key, record)
    return list(merged.values())
