"""Tests for scripts/ingest_once.py."""

from __future__ import annotations

import importlib.util
from datetime import date
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from nobetci.ingestion.errors import NoEndpointError
from nobetci.services.pull_province import PullResult

_SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "ingest_once.py"


@pytest.fixture
def script():
    spec = importlib.util.spec_from_file_location("ingest_once", _SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _result(slug: str) -> PullResult:
    return PullResult(
        province_slug=slug,
        duty_date=date(2026, 10, 18),
        record_count=12,
        conflict_count=1,
        degraded_count=2,
        expired_count=0,
        primary_source="p",
        secondary_source=None,
    )


class TestIngestOnceScript:
    def test_prints_one_line_per_province(self, script, capsys):
        puller = AsyncMock()
        puller.pull.side_effect = [_result("adana"), NoEndpointError("No source endpoints for province: hakkari")]
        with patch.object(script, "ProvincePuller", return_value=puller):
            code = script.main(["Adana", "hakkari"])

        out = capsys.readouterr().out.splitlines()
        assert out[0] == (
            "province=adana status=ok duty_date=2026-10-18 records=12 conflicts=1 degraded=2 expired=0"
        )
        assert out[1].startswith("province=hakkari status=failed error=No source endpoints")
        assert code == 1

    def test_all_ok_exits_zero(self, script, capsys):
        puller = AsyncMock()
        puller.pull.return_value = _result("osmaniye")
        with patch.object(script, "ProvincePuller", return_value=puller):
            assert script.main(["osmaniye"]) == 0

    def test_env_provinces_used_without_args(self, script, monkeypatch, capsys):
        monkeypatch.setenv("INGESTION_PROVINCES", "istanbul")
        puller = AsyncMock()
        puller.pull.return_value = _result("istanbul")
        with patch.object(script, "ProvincePuller", return_value=puller):
            assert script.main([]) == 0
        puller.pull.assert_awaited_once_with("istanbul")
