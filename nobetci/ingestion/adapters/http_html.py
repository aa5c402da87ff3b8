"""Generic HTML/JSON adapter.

Fetch pipeline per endpoint:
1. Conditional GET (ETag / Last-Modified); a 304 triggers one unconditional retry
2. Freshness gate for HTML formats, with one cache-busted retry
3. JSON-or-HTML parse with the endpoint's parser key
4. Embedded getPharmacies AJAX API when the page itself has no rows
5. Per-district POST forms when the page has a district selector
6. Related-page discovery when nothing parsed
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime

import httpx

from nobetci.config import get_settings
from nobetci.duty_window import resolve_duty_date
from nobetci.ingestion.adapters.district_forms import fetch_district_form_records, should_fetch_district_forms
from nobetci.ingestion.base import SourceAdapter, batch_for
from nobetci.ingestion.discovery import find_ajax_api_url, find_related_urls, is_pdf_like, unwrap_json_html
from nobetci.ingestion.errors import FetchError, ParseError, StaleDateError
from nobetci.ingestion.fetcher import FetchedPage, build_client, fetch_page
from nobetci.parsers import merge_source_records, parse_html, parse_payload, to_source_records
from nobetci.parsers.date_validation import validate_scraped_date
from nobetci.parsers.registry import AUTO_PARSER_KEY
from nobetci.schemas.duty import (
    HTML_FORMATS,
    AdapterFetchResult,
    ConditionalHeaders,
    DateValidationResult,
    SourceEndpointConfig,
    SourceRecord,
)

logger = logging.getLogger(__name__)

# Parser keys tried on discovered pages after the endpoint's own key
_RELATED_PARSER_KEYS = (AUTO_PARSER_KEY, "osmaniye_eo_v1")


def with_cache_buster(url: str, now: datetime) -> str:
    """Append ``_ts=<epoch ms>`` so intermediary caches serve a fresh copy."""
    return str(httpx.URL(url).copy_set_param("_ts", str(int(now.timestamp() * 1000))))


class HttpHtmlAdapter(SourceAdapter):
    """Adapter for plain HTML pages and JSON APIs."""

    def __init__(self, client_factory: Callable[[], httpx.AsyncClient] = build_client) -> None:
        self._client_factory = client_factory

    @property
    def adapter_name(self) -> str:
        return "http_html"

    async def fetch(
        self,
        endpoint: SourceEndpointConfig,
        conditional_headers: ConditionalHeaders | None = None,
        *,
        now: datetime | None = None,
    ) -> AdapterFetchResult:
        now = now or datetime.now(UTC)
        duty_date = resolve_duty_date(now)
        settings = get_settings()

        async with self._client_factory() as client:
            page, validation, fetch_url = await self._fetch_fresh(client, endpoint, conditional_headers, now)
            records = self._to_records(
                parse_payload(page.text, endpoint.parser_key, duty_date), endpoint, duty_date, now
            )

            if not records:
                records = await self._fetch_ajax_api(client, endpoint, page, duty_date, now)

            if should_fetch_district_forms(page.text, records):
                form_records = await fetch_district_form_records(
                    client,
                    endpoint,
                    page.text,
                    duty_date=duty_date,
                    fetched_at=now,
                    max_districts=settings.form_fetch_max_districts,
                )
                records = merge_source_records(records, form_records)

            if not records:
                records = await self._fetch_related(
                    client, endpoint, page, duty_date, now, settings.related_fetch_max_pages
                )

        if not records:
            raise ParseError("Parser produced zero records")

        logger.info(
            "Fetched %s (%s): %d records, http %d",
            endpoint.source_name,
            endpoint.province_slug,
            len(records),
            page.status_code,
        )
        return AdapterFetchResult(
            batch=batch_for(endpoint, records),
            http_status=page.status_code,
            etag=page.etag,
            last_modified=page.last_modified,
            raw_payload=page.text,
            date_validation=validation,
            fetch_url=fetch_url,
        )

    async def _fetch_fresh(
        self,
        client: httpx.AsyncClient,
        endpoint: SourceEndpointConfig,
        conditional_headers: ConditionalHeaders | None,
        now: datetime,
    ) -> tuple[FetchedPage, DateValidationResult | None, str]:
        url = endpoint.endpoint_url
        request_headers = conditional_headers.as_request_headers() if conditional_headers else {}
        page = await fetch_page(client, url, headers=request_headers, allow_not_modified=True)
        if page.not_modified:
            # Some sources answer 304 even when the roster changed
            logger.info("304 from %s, retrying without validators", url)
            page = await fetch_page(client, url)

        if endpoint.format not in HTML_FORMATS:
            return page, None, url

        validation = validate_scraped_date(page.text, endpoint.parser_key, now)
        if validation.is_valid:
            if validation.status != "valid":
                logger.warning(
                    "Accepting %s source date on %s in lenient mode (scraped %s, expected %s)",
                    validation.status,
                    url,
                    validation.scraped_date,
                    validation.expected_date,
                )
            return page, validation, url

        retry_url = with_cache_buster(url, now)
        logger.info(
            "Date mismatch on %s (expected %s, scraped %s), retrying %s",
            url,
            validation.expected_date,
            validation.scraped_date,
            retry_url,
        )
        page = await fetch_page(client, retry_url)
        validation = validate_scraped_date(page.text, endpoint.parser_key, now)
        if not validation.is_valid:
            raise StaleDateError(
                f"Source date {validation.scraped_date or 'n/a'} not in accepted "
                f"{[d.isoformat() for d in validation.accepted_dates]} for {url}",
                validation,
            )
        return page, validation, retry_url

    @staticmethod
    def _to_records(rows, endpoint: SourceEndpointConfig, duty_date: date, now: datetime) -> list[SourceRecord]:
        return to_source_records(
            rows,
            province_slug=endpoint.province_slug,
            duty_date=duty_date,
            fetched_at=now,
        )

    async def _fetch_ajax_api(
        self,
        client: httpx.AsyncClient,
        endpoint: SourceEndpointConfig,
        page: FetchedPage,
        duty_date: date,
        now: datetime,
    ) -> list[SourceRecord]:
        api_url = find_ajax_api_url(page.text, page.url, duty_date)
        if api_url is None:
            return []
        try:
            api_page = await fetch_page(client, api_url)
        except FetchError as exc:
            logger.info("AJAX API %s failed: %s", api_url, exc)
            return []
        return self._to_records(parse_payload(api_page.text, endpoint.parser_key, duty_date), endpoint, duty_date, now)

    async def _fetch_related(
        self,
        client: httpx.AsyncClient,
        endpoint: SourceEndpointConfig,
        page: FetchedPage,
        duty_date: date,
        now: datetime,
        max_pages: int,
    ) -> list[SourceRecord]:
        parser_keys = list(dict.fromkeys([endpoint.parser_key, *_RELATED_PARSER_KEYS]))
        for url in find_related_urls(page.text, page.url, limit=max_pages):
            try:
                related = await fetch_page(client, url)
            except FetchError as exc:
                logger.debug("Related page %s failed: %s", url, exc)
                continue
            if is_pdf_like(related.text, url):
                continue
            for fragment in unwrap_json_html(related.text) or [related.text]:
                for key in parser_keys:
                    records = self._to_records(parse_html(fragment, key), endpoint, duty_date, now)
                    if records:
                        logger.info("Related page %s yielded %d records", url, len(records))
                        return records
        return []
