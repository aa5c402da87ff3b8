"""In-process ingestion counters, flushed to the log periodically."""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import Any


class WorkerMetrics:
    """Counters for one worker process. Created at startup and injected.

    Methods are safe to call from the event loop and from DB worker threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.success_runs = 0
        self.failed_runs = 0
        self.parse_errors = 0
        self.fallback_usage = 0
        self.last_conflict_count = 0
        self.last_province = ""
        self.last_run_at: datetime | None = None

    def mark_success(self, province_slug: str, conflict_count: int) -> None:
        with self._lock:
            self.success_runs += 1
            self.last_conflict_count = conflict_count
            self.last_province = province_slug
            self.last_run_at = datetime.now(UTC)

    def mark_failure(self, province_slug: str) -> None:
        with self._lock:
            self.failed_runs += 1
            self.last_province = province_slug
            self.last_run_at = datetime.now(UTC)

    def mark_parse_error(self) -> None:
        with self._lock:
            self.parse_errors += 1

    def mark_fallback_used(self) -> None:
        with self._lock:
            self.fallback_usage += 1

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "success_runs": self.success_runs,
                "failed_runs": self.failed_runs,
                "parse_errors": self.parse_errors,
                "fallback_usage": self.fallback_usage,
                "last_conflict_count": self.last_conflict_count,
                "last_province": self.last_province,
                "last_run_at": self.last_run_at.isoformat() if self.last_run_at else "",
            }

    def flush(self, logger: logging.Logger) -> None:
        snap = self.snapshot()
        logger.info(
            "Ingestion metrics: success=%d failed=%d parse_errors=%d fallback=%d "
            "last_conflicts=%d last_province=%s last_run_at=%s",
            snap["success_runs"],
            snap["failed_runs"],
            snap["parse_errors"],
            snap["fallback_usage"],
            snap["last_conflict_count"],
            snap["last_province"] or "-",
            snap["last_run_at"] or "-",
        )
