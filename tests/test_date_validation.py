"""Tests for the scraped-date freshness gate."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from nobetci.parsers.date_validation import extract_dates, is_strict_parser, validate_scraped_date

AT_0730 = datetime(2026, 10, 18, 4, 30, tzinfo=UTC)  # 07:30 Istanbul
AT_0805 = datetime(2026, 10, 18, 5, 5, tzinfo=UTC)  # 08:05 Istanbul

YESTERDAY_PAGE = """
<html><head><title>Nöbetçi Eczaneler</title></head>
<body><h2>17.10.2026 Cumartesi Nöbetçi Eczaneler</h2><table></table></body></html>
"""


class TestExtractDates:
    def test_numeric_and_month_name_dates(self):
        assert extract_dates("Tarih: 18.10.2026") == [date(2026, 10, 18)]
        assert extract_dates("18 Ekim 2026 Pazar") == [date(2026, 10, 18)]
        assert extract_dates("1 Şubat 2026") == [date(2026, 2, 1)]

    def test_impossible_dates_are_ignored(self):
        assert extract_dates("31.02.2026 and 45.10.2026") == []


class TestValidateScrapedDate:
    def test_yesterday_accepted_before_rollover(self):
        result = validate_scraped_date(YESTERDAY_PAGE, "generic_auto_v1", AT_0730, strict=True)
        assert result.status == "valid"
        assert result.is_valid
        assert result.scraped_date == date(2026, 10, 17)

    def test_yesterday_rejected_after_rollover_in_strict_mode(self):
        result = validate_scraped_date(YESTERDAY_PAGE, "generic_auto_v1", AT_0805, strict=True)
        assert result.status == "outdated"
        assert not result.is_valid
        assert result.accepted_dates == [date(2026, 10, 18)]

    def test_outdated_page_passes_in_lenient_mode(self):
        result = validate_scraped_date(YESTERDAY_PAGE, "generic_auto_v1", AT_0805, strict=False)
        assert result.status == "outdated"
        assert result.is_valid

    def test_missing_date(self):
        result = validate_scraped_date("<html><body><p>Liste</p></body></html>", None, AT_0805, strict=True)
        assert result.status == "missing"
        assert result.scraped_date is None
        assert not result.is_valid

    def test_keyword_context_found_in_body(self):
        html = "<html><body><p>Nöbet tarihi: 18 Ekim 2026</p></body></html>"
        result = validate_scraped_date(html, None, AT_0805, strict=True)
        assert result.is_valid
        assert result.source == "keyword"


class TestStrictness:
    def test_osmaniye_is_strict_by_default(self):
        assert is_strict_parser("osmaniye_eo_v1")
        assert not is_strict_parser("generic_auto_v1")

    def test_global_flag(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("STRICT_SCRAPED_DATE_VALIDATION", "true")
        assert is_strict_parser("generic_auto_v1")

    def test_per_key_list(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("STRICT_SCRAPED_DATE_KEYS", "adana_primary_v1, antalya_v1")
        assert is_strict_parser("antalya_v1")
        assert not is_strict_parser("karaman_v1")
