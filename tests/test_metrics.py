"""Tests for in-process worker metrics."""

from __future__ import annotations

import logging

from nobetci.services.metrics import WorkerMetrics


class TestWorkerMetrics:
    def test_counters(self):
        metrics = WorkerMetrics()
        metrics.mark_success("adana", conflict_count=3)
        metrics.mark_failure("istanbul")
        metrics.mark_parse_error()
        metrics.mark_parse_error()
        metrics.mark_fallback_used()

        snap = metrics.snapshot()
        assert snap["success_runs"] == 1
        assert snap["failed_runs"] == 1
        assert snap["parse_errors"] == 2
        assert snap["fallback_usage"] == 1
        assert snap["last_conflict_count"] == 3
        assert snap["last_province"] == "istanbul"
        assert snap["last_run_at"]

    def test_empty_snapshot(self):
        snap = WorkerMetrics().snapshot()
        assert snap["success_runs"] == 0
        assert snap["last_run_at"] == ""

    def test_flush_logs_counters(self, caplog):
        metrics = WorkerMetrics()
        metrics.mark_success("osmaniye", conflict_count=0)
        logger = logging.getLogger("nobetci.test")
        with caplog.at_level(logging.INFO, logger="nobetci.test"):
            metrics.flush(logger)
        assert "success=1" in caplog.text
        assert "last_province=osmaniye" in caplog.text
