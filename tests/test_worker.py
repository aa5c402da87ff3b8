"""Tests for worker province resolution."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from nobetci.jobs.worker import PILOT_PROVINCES, resolve_province_slugs


class TestResolveProvinceSlugs:
    def test_configured_list_used_as_is(self):
        factory = MagicMock()
        assert resolve_province_slugs(["adana", "istanbul", "adana"], factory) == ["adana", "istanbul"]
        factory.assert_not_called()

    def test_all_reads_active_provinces(self):
        db = MagicMock()
        with patch("nobetci.jobs.worker.SourceRepository") as repo_cls:
            repo_cls.return_value.list_active_province_slugs.return_value = ["osmaniye", "konya"]
            assert resolve_province_slugs(["all"], lambda: db) == ["osmaniye", "konya"]
        db.close.assert_called_once()

    def test_empty_db_falls_back_to_pilots(self):
        with patch("nobetci.jobs.worker.SourceRepository") as repo_cls:
            repo_cls.return_value.list_active_province_slugs.return_value = []
            assert resolve_province_slugs(["all"], MagicMock) == PILOT_PROVINCES

    def test_db_error_falls_back_to_pilots(self):
        db = MagicMock()
        with patch("nobetci.jobs.worker.SourceRepository") as repo_cls:
            repo_cls.return_value.list_active_province_slugs.side_effect = RuntimeError("connection refused")
            assert resolve_province_slugs(["all"], lambda: db) == PILOT_PROVINCES
        db.close.assert_called_once()
