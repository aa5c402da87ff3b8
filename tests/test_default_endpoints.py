"""Tests for the built-in endpoint configuration."""

from __future__ import annotations

import pytest

from nobetci.services import default_endpoints
from nobetci.services.default_endpoints import get_default_endpoints, load_default_endpoints


class TestDefaultEndpoints:
    def test_pilot_provinces_present(self):
        data = load_default_endpoints()
        assert {"adana", "istanbul", "osmaniye"} <= set(data)

    def test_all_builtin(self):
        for configs in load_default_endpoints().values():
            assert all(c.is_builtin for c in configs)

    def test_primary_first(self):
        endpoints = get_default_endpoints("istanbul")
        assert [e.source_endpoint_id for e in endpoints] == [-201, -202]
        assert endpoints[0].is_primary
        assert endpoints[1].parser_key == "istanbul_secondary_v1"

    def test_unknown_province(self):
        assert get_default_endpoints("hakkari") == []

    def test_positive_id_rejected(self, tmp_path, monkeypatch):
        path = tmp_path / "defaults.yaml"
        path.write_text(
            "endpoints:\n"
            "  adana:\n"
            "    - id: 5\n"
            "      source_id: -10\n"
            "      source_name: X\n"
            "      source_type: manual\n"
            "      authority_weight: 50\n"
            "      endpoint_url: https://x.org/\n",
            encoding="utf-8",
        )
        monkeypatch.setattr(default_endpoints, "_DEFAULTS_PATH", path)
        with pytest.raises(ValueError, match="must be <= 0"):
            load_default_endpoints()

    def test_invalid_entry_rejected(self, tmp_path, monkeypatch):
        path = tmp_path / "defaults.yaml"
        path.write_text(
            "endpoints:\n  adana:\n    - id: -1\n      source_name: X\n",
            encoding="utf-8",
        )
        monkeypatch.setattr(default_endpoints, "_DEFAULTS_PATH", path)
        with pytest.raises(ValueError, match="Invalid default endpoint"):
            load_default_endpoints()

    def test_malformed_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "defaults.yaml"
        path.write_text("endpoints: [unclosed", encoding="utf-8")
        monkeypatch.setattr(default_endpoints, "_DEFAULTS_PATH", path)
        with pytest.raises(ValueError, match="malformed"):
            load_default_endpoints()
