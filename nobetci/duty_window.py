"""Duty window helpers. Duty days roll over at 08:00 Europe/Istanbul."""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

ISTANBUL_TZ = ZoneInfo("Europe/Istanbul")
DUTY_ROLLOVER_HOUR = 8


def istanbul_now(now: datetime | None = None) -> datetime:
    """Return `now` (default: current time) converted to Istanbul local time."""
    current = now or datetime.now(UTC)
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)
    return current.astimezone(ISTANBUL_TZ)


def resolve_duty_date(now: datetime | None = None) -> date:
    """Duty date active at `now`: yesterday's roster is still on duty before 08:00."""
    local = istanbul_now(now)
    if local.hour < DUTY_ROLLOVER_HOUR:
        return local.date() - timedelta(days=1)
    return local.date()


def accepted_duty_dates(now: datetime | None = None) -> list[date]:
    """Dates a scraped page may legitimately carry at `now`.

    Today always; yesterday too while the previous duty window is still open.
    """
    local = istanbul_now(now)
    today = local.date()
    if local.hour < DUTY_ROLLOVER_HOUR:
        return [today, today - timedelta(days=1)]
    return [today]


def resolve_duty_bounds(duty_date: date) -> tuple[datetime, datetime]:
    """Return (duty_start, duty_end) in UTC: 08:00 local on duty_date to 08:00 the next day."""
    start_local = datetime.combine(duty_date, time(hour=DUTY_ROLLOVER_HOUR), tzinfo=ISTANBUL_TZ)
    end_local = datetime.combine(
        duty_date + timedelta(days=1), time(hour=DUTY_ROLLOVER_HOUR), tzinfo=ISTANBUL_TZ
    )
    return start_local.astimezone(UTC), end_local.astimezone(UTC)
