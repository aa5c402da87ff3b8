"""Tests for payload normalization into SourceRecords."""

from __future__ import annotations

from datetime import UTC, date, datetime

from nobetci.parsers.normalize import merge_source_records, parse_payload, to_source_records
from nobetci.schemas.duty import ParsedRow

DUTY_DATE = date(2026, 10, 18)
FETCHED_AT = datetime(2026, 10, 18, 6, 0, tzinfo=UTC)


def _records(rows, province="istanbul", **kwargs):
    return to_source_records(rows, province_slug=province, duty_date=DUTY_DATE, fetched_at=FETCHED_AT, **kwargs)


class TestToSourceRecords:
    def test_canonicalises_district_name_and_phone(self):
        rows = [
            ParsedRow(
                district_name="BUGÜN NÖBETÇİ ECZANELER KADIKÖY",
                pharmacy_name="Moda",
                address=" Moda Cad.  No:101 ",
                phone="+90 216 336 12 13",
            )
        ]
        [record] = _records(rows)
        assert record.district_name == "Kadıköy"
        assert record.district_slug == "kadikoy"
        assert record.pharmacy_name == "Moda ECZANESİ"
        assert record.normalized_name == "MODA"
        assert record.address == "Moda Cad. No:101"
        assert record.phone == "02163361213"
        assert record.match_key == "2026-10-18:kadikoy:MODA"

    def test_rows_without_phone_or_name_are_dropped(self):
        rows = [
            ParsedRow(district_name="Fatih", pharmacy_name="Aksaray Eczanesi", phone=""),
            ParsedRow(district_name="Fatih", pharmacy_name="12", phone="0212 518 20 30"),
        ]
        assert _records(rows) == []

    def test_duplicates_within_a_district_collapse(self):
        rows = [
            ParsedRow(district_name="Fatih", pharmacy_name="Aksaray Eczanesi", phone="0212 518 20 30"),
            ParsedRow(district_name="Fatih", pharmacy_name="AKSARAY ECZANESİ", phone="0212 518 20 31"),
        ]
        records = _records(rows)
        assert len(records) == 1
        assert records[0].phone == "02125182030"

    def test_district_hint_used_when_row_has_none(self):
        rows = [ParsedRow(pharmacy_name="Aksaray Eczanesi", phone="0212 518 20 30")]
        [record] = _records(rows, district_hint="Üsküdar")
        assert record.district_name == "Üsküdar"

    def test_kilis_rows_dropped_from_gaziantep(self):
        rows = [
            ParsedRow(district_name="Kilis", pharmacy_name="Kilis Eczanesi", phone="0348 813 10 10"),
            ParsedRow(district_name="Şahinbey", pharmacy_name="Gazi Eczanesi", phone="0342 220 10 10"),
        ]
        records = _records(rows, province="gaziantep")
        assert [r.district_name for r in records] == ["Şahinbey"]


class TestParsePayload:
    def test_json_body_parsed_before_html(self):
        body = '{"data": [{"name": "Deva Eczanesi", "phone": "0322 333 44 55", "ilce": "Seyhan"}]}'
        rows = parse_payload(body, "generic_auto_v1", DUTY_DATE)
        assert [r.pharmacy_name for r in rows] == ["Deva Eczanesi"]

    def test_json_wrapped_html(self):
        body = (
            '{"html": "<table><tr><th>Eczane Adı</th><th>Telefon</th></tr>'
            "<tr><td>Deva Eczanesi</td><td>0322 333 44 55</td></tr>"
            '<tr><td>Nur Eczanesi</td><td>0322 333 44 66</td></tr></table>"}'
        )
        rows = parse_payload(body, "generic_auto_v1", DUTY_DATE)
        assert [r.pharmacy_name for r in rows] == ["Deva Eczanesi", "Nur Eczanesi"]


def test_merge_keeps_first_record_per_match_key():
    first = _records([ParsedRow(district_name="Fatih", pharmacy_name="Aksaray Eczanesi", phone="0212 518 20 30")])
    second = _records(
        [
            ParsedRow(district_name="Fatih", pharmacy_name="Aksaray Eczanesi", phone="0212 518 20 99"),
            ParsedRow(district_name="Fatih", pharmacy_name="Vefa Eczanesi", phone="0212 518 20 40"),
        ]
    )
    merged = merge_source_records(first, second)
    assert [(r.normalized_name, r.phone) for r in merged] == [
        ("AKSARAY", "02125182030"),
        ("VEFA", "02125182040"),
    ]
