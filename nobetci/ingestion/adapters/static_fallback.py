"""Static fallback adapter.

Returns a small hardcoded seed batch so the pipeline keeps running in
environments where every live source is unreachable. Only used when
ALLOW_STATIC_FALLBACK is set; seeded records carry a reduced authority weight.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from nobetci.duty_window import resolve_duty_date
from nobetci.ingestion.base import SourceAdapter, batch_for
from nobetci.ingestion.errors import FetchError
from nobetci.parsers import to_source_records
from nobetci.schemas.duty import AdapterFetchResult, ConditionalHeaders, ParsedRow, SourceEndpointConfig

logger = logging.getLogger(__name__)

FALLBACK_WEIGHT_PENALTY = 20
FALLBACK_WEIGHT_FLOOR = 25

SEED_ROWS: dict[str, list[ParsedRow]] = {
    "adana": [
        ParsedRow(
            district_name="Seyhan",
            pharmacy_name="Reşatbey Eczanesi",
            address="Reşatbey Mah. Atatürk Cad. No:12 Seyhan",
            phone="0322 457 11 22",
        ),
        ParsedRow(
            district_name="Çukurova",
            pharmacy_name="Toros Eczanesi",
            address="Toros Mah. Turgut Özal Bulv. No:45 Çukurova",
            phone="0322 231 44 55",
        ),
    ],
    "istanbul": [
        ParsedRow(
            district_name="Fatih",
            pharmacy_name="Aksaray Eczanesi",
            address="Mimar Kemalettin Mah. Ordu Cad. No:8 Fatih",
            phone="0212 518 20 30",
        ),
        ParsedRow(
            district_name="Kadıköy",
            pharmacy_name="Moda Eczanesi",
            address="Caferağa Mah. Moda Cad. No:101 Kadıköy",
            phone="0216 336 12 13",
        ),
    ],
    "osmaniye": [
        ParsedRow(
            district_name="Merkez",
            pharmacy_name="Cebelibereket Eczanesi",
            address="Alibeyli Mah. Atatürk Cad. No:21 Merkez",
            phone="0328 814 10 20",
        ),
    ],
}


def fallback_weight(authority_weight: int) -> int:
    return max(FALLBACK_WEIGHT_FLOOR, authority_weight - FALLBACK_WEIGHT_PENALTY)


class StaticFallbackAdapter(SourceAdapter):
    @property
    def adapter_name(self) -> str:
        return "static_fallback"

    async def fetch(
        self,
        endpoint: SourceEndpointConfig,
        conditional_headers: ConditionalHeaders | None = None,
        *,
        now: datetime | None = None,
    ) -> AdapterFetchResult:
        seeds = SEED_ROWS.get(endpoint.province_slug)
        if not seeds:
            raise FetchError(f"No static fallback seed for {endpoint.province_slug}", url=endpoint.endpoint_url)

        now = now or datetime.now(UTC)
        records = to_source_records(
            seeds,
            province_slug=endpoint.province_slug,
            duty_date=resolve_duty_date(now),
            fetched_at=now,
        )
        weight = fallback_weight(endpoint.authority_weight)
        logger.warning(
            "Serving static fallback for %s (%d records, weight %d)",
            endpoint.province_slug,
            len(records),
            weight,
        )
        return AdapterFetchResult(
            batch=batch_for(endpoint, records, authority_weight=weight),
            http_status=200,
            raw_payload=json.dumps({"fallback": endpoint.province_slug, "record_count": len(records)}),
            fetch_url=endpoint.endpoint_url,
        )
