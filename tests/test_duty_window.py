"""Tests for duty window helpers (08:00 Europe/Istanbul rollover)."""

from __future__ import annotations

from datetime import UTC, date, datetime

from nobetci.duty_window import accepted_duty_dates, resolve_duty_bounds, resolve_duty_date


class TestDutyDate:
    def test_before_rollover_is_previous_day(self):
        # 07:30 Istanbul
        assert resolve_duty_date(datetime(2026, 10, 18, 4, 30, tzinfo=UTC)) == date(2026, 10, 17)

    def test_after_rollover_is_today(self):
        # 08:05 Istanbul
        assert resolve_duty_date(datetime(2026, 10, 18, 5, 5, tzinfo=UTC)) == date(2026, 10, 18)

    def test_accepted_dates_include_yesterday_only_before_rollover(self):
        assert accepted_duty_dates(datetime(2026, 10, 18, 4, 30, tzinfo=UTC)) == [
            date(2026, 10, 18),
            date(2026, 10, 17),
        ]
        assert accepted_duty_dates(datetime(2026, 10, 18, 5, 5, tzinfo=UTC)) == [date(2026, 10, 18)]

    def test_bounds_are_utc(self):
        start, end = resolve_duty_bounds(date(2026, 10, 18))
        assert start == datetime(2026, 10, 18, 5, 0, tzinfo=UTC)
        assert end == datetime(2026, 10, 19, 5, 0, tzinfo=UTC)
