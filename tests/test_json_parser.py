"""Tests for the JSON payload parser."""

from __future__ import annotations

from datetime import date

from nobetci.parsers.json_parser import decode_json_payload, parse_json_rows


class TestDecode:
    def test_non_json_payload(self):
        assert decode_json_payload("<html></html>") is None

    def test_broken_json(self):
        assert decode_json_payload("{not json") is None

    def test_list_payload(self):
        assert decode_json_payload(' [{"a": 1}]') == [{"a": 1}]


class TestParseJsonRows:
    def test_wrapped_list_with_turkish_keys(self):
        data = {
            "data": [
                {
                    "eczane_adi": "Şifa Eczanesi",
                    "ilce": "Seyhan",
                    "adres": "Atatürk Cad. No:5",
                    "telefon": "0322 123 45 67",
                    "enlem": "37,0012",
                    "boylam": "35.3210",
                },
                {"eczane_adi": "", "telefon": "0322 000 00 00"},
            ]
        }
        rows = parse_json_rows(data)
        assert len(rows) == 1
        row = rows[0]
        assert row.pharmacy_name == "Şifa Eczanesi"
        assert row.district_name == "Seyhan"
        assert row.phone == "03221234567"
        assert row.lat == 37.0012
        assert row.lng == 35.321

    def test_rows_for_other_dates_are_dropped(self):
        data = [
            {"name": "Deva Eczanesi", "phone": "0322 333 44 55", "date": "2026-10-18"},
            {"name": "Hayat Eczanesi", "phone": "0322 333 44 66", "date": "2026-10-17T00:00:00"},
            {"name": "Umut Eczanesi", "phone": "0322 333 44 77", "tarih": "18.10.2026"},
        ]
        rows = parse_json_rows(data, date(2026, 10, 18))
        assert [r.pharmacy_name for r in rows] == ["Deva Eczanesi", "Umut Eczanesi"]

    def test_embedded_html_is_returned_for_html_parsers(self):
        assert parse_json_rows({"html": "<table></table>"}) == "<table></table>"
        assert parse_json_rows({"result": "<div>x</div>"}) == "<div>x</div>"

    def test_nested_wrapper(self):
        data = {"result": {"items": [{"pharmacyName": "Nur Eczanesi", "tel": "0216 111 22 33"}]}}
        rows = parse_json_rows(data)
        assert [r.pharmacy_name for r in rows] == ["Nur Eczanesi"]

    def test_unknown_shape(self):
        assert parse_json_rows({"status": "ok"}) == []
        assert parse_json_rows(42) == []
