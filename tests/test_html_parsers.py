"""Tests for the HTML parser registry and strategies against recorded markup."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from nobetci.parsers.normalize import to_source_records
from nobetci.parsers.registry import get_parser, parse_html, register_parser, registered_keys, usable_row_count
from nobetci.schemas.duty import ParsedRow

DUTY_DATE = date(2026, 10, 18)
FETCHED_AT = datetime(2026, 10, 18, 6, 0, tzinfo=UTC)


def _records(rows, province):
    return to_source_records(rows, province_slug=province, duty_date=DUTY_DATE, fetched_at=FETCHED_AT)


TABLE_HTML = """
<html><body>
<h3>Seyhan Nöbetçi Eczaneler</h3>
<table>
  <tr><th>Eczane Adı</th><th>Adres</th><th>Telefon</th></tr>
  <tr><td>Şifa Eczanesi</td><td>Atatürk Cad. No:5</td><td>0322 123 45 67</td></tr>
  <tr><td>Deva Eczanesi</td><td>İnönü Cad. No:7</td><td><a href="tel:03223334455">Ara</a></td></tr>
</table>
</body></html>
"""

CARD_HTML = """
<html><body>
<div class="card">
  <h4>MODA ECZANESİ - Kadıköy</h4>
  <p><i class="fa fa-home"></i> Caferağa Mah. Moda Cad. No:101</p>
  <p><i class="fa fa-phone"></i> 0216 336 12 13</p>
  <a href="https://maps.google.com/?q=40.9850,29.0250">Haritada göster</a>
</div>
<div class="card">
  <h4>KOŞUYOLU ECZANESİ - Kadıköy</h4>
  <p><i class="fa fa-home"></i> Koşuyolu Mah. Katip Salih Sk. No:3</p>
  <p><i class="fa fa-phone"></i> 0216 545 00 11</p>
</div>
</body></html>
"""

JSONLD_HTML = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "Pharmacy", "name": "Toros Eczanesi", "telephone": "+90 322 231 44 55",
   "address": {"streetAddress": "Turgut Özal Bulv. No:45", "addressLocality": "Çukurova"},
   "geo": {"latitude": "37.05", "longitude": "35.28"}}
]}
</script>
</head><body></body></html>
"""

LEAFLET_HTML = """
<html><body><script>
var m1 = L.marker([37.0017, 35.3213]).addTo(map).bindPopup("<b>Reşatbey Eczanesi</b><br>Atatürk Cad. No:12<br>Tel: 0322 457 11 22");
</script></body></html>
"""

ADANA_PRIMARY_HTML = """
<table class="dynamicTable">
  <thead><tr><th>#</th><th>İlçe</th><th>Eczane Adı</th><th>Telefon</th><th>Adres</th></tr></thead>
  <tbody>
  <tr class="gradeA"><td>1</td><td>SEYHAN</td><td>REŞATBEY ECZANESİ</td><td>0322 457 11 22</td><td>Reşatbey Mah. Atatürk Cad. No:12</td></tr>
  <tr class="gradeA"><td>2</td><td>YÜREĞİR</td><td>KİREMİTHANE ECZANESİ</td><td>0322 321 00 99</td><td>Kiremithane Mah. No:4</td></tr>
  <tr class="gradeA"><td>3</td><td></td><td>KURTULUŞ ECZANESİ</td><td>0322 233 10 10</td><td>Kurtuluş Mah. 64009 Sk. No:1</td></tr>
  <tr class="gradeA"><td>4</td><td>ÇUKUROVA</td><td>TELEFONSUZ ECZANESİ</td><td></td><td>Belediye Evleri Mah.</td></tr>
  <tr class="gradeA"><td colspan="5">bozuk satır</td></tr>
  </tbody>
</table>
"""

ADANA_SECONDARY_HTML = """
<div class="container">
  <h3 class="main-color">SEYHAN</h3>
  <div class="col-md-12 nobetci">
    <h4><strong>REŞATBEY ECZANESİ</strong></h4>
    <p>Reşatbey Mah. Atatürk Cad. No:12 <a href="tel:03224571122"><i class="fa fa-phone"></i> 0322 457 11 22</a>
    <a href="https://www.google.com/maps?q=37.0017,35.3213"><i class="fa fa-map-marker"></i></a></p>
  </div>
  <h3 class="main-color">ÇUKUROVA</h3>
  <div class="col-md-12 nobetci">
    <h4><strong>TOROS ECZANESİ</strong></h4>
    <p>Toros Mah. Turgut Özal Bulv. No:45 <a href="tel:03222314455"><i class="fa fa-phone"></i> 0322 231 44 55</a></p>
  </div>
</div>
"""

OSMANIYE_HTML = """
<div class="baslik">18.10.2026 Nöbetçi Eczaneler</div>
<div class="nobet-kart">
  <h4>Cebelibereket Eczanesi - Merkez</h4>
  <p>Alibeyli Mah. Atatürk Cad. No:21 Tel: 0328 814 10 20</p>
</div>
<div class="nobet-kart">
  <h4>Kadirli Eczanesi - Kadirli</h4>
  <p>Cumhuriyet Mah. No:3 Tel: 0328 718 22 33
  <a href="https://www.google.com/maps?q=37.3736,36.0963">Eczaneyi haritada görüntülemek için tıklayınız...</a></p>
</div>
"""

OSMANIYE_LISTING_HTML = """
<div class="cerceve">
  <div class="eczane">
    <div class="adi">CEBELİBEREKET ECZANESİ</div>
    <div class="adres">Alibeyli Mah. Atatürk Cad. No:21</div>
    <div class="adres"><span class="adres2">0328 814 10 20</span> <span class="tel">OSMANİYE MERKEZ</span></div>
  </div>
  <div class="eczane">
    <div class="adi">YENİ ECZANE</div>
    <div class="adres">Cumhuriyet Mah. No:3</div>
    <div class="adres"><span class="adres2">0328 718 22 33</span> <span class="tel">OSMANİYE KADİRLİ</span></div>
  </div>
</div>
"""

ISTANBUL_SECONDARY_HTML = """
<h4>KADIKÖY</h4>
<table class="table">
  <tr><th>Eczane</th><th>Adres</th><th>Telefon</th></tr>
  <tr><td>MODA ECZANESİ</td><td>Caferağa Mah. Moda Cad. No:101</td><td>0216 336 12 13</td></tr>
</table>
<h4>ÜSKÜDAR</h4>
<table class="table">
  <tr><th>Eczane</th><th>Adres</th><th>Telefon</th></tr>
  <tr><td>ÇENGELKÖY ECZANESİ</td><td>Çengelköy Mah. Çengelköy Cad. No:14</td><td>0216 332 40 40</td></tr>
</table>
"""

ANTALYA_HTML = """
<div class="nobetciDiv">
  <h4>ŞİFA ECZANESİ</h4>
  <p><i class="fa fa-home"></i> Kızıltoprak Mah. Aspendos Bulv. No:8<br>
  <a href="tel:02423221010">0242 322 10 10</a></p>
</div>
<div class="nobetciDiv">
  <a href="tel:02423451122">GÜVEN ECZANESİ</a>
  <a href="tel:02423451122">0242 345 11 22</a>
  <a href="https://maps.google.com/?q=36.8969,30.7133" class="nadres">Fener Mah. Tekelioğlu Cad. No:20 Muratpaşa</a>
</div>
"""

KARAMAN_HTML = """
<h2 class="vatan_hl">MERKEZ NÖBETÇİ ECZANELER 18.10.2026</h2>
<div class="eczane">
  <h4>HAYAT ECZANESİ</h4>
  <p><i class="icon-home"></i> Tahsin Ünal Mah. İsmetpaşa Cad. No:14<br>
  <i class="icon-phone"></i> 0338 213 12 12</p>
</div>
<h2 class="vatan_hl">ERMENEK NÖBETÇİ ECZANELER</h2>
<div class="eczane">
  <h4>GÖKSU ECZANESİ</h4>
  <p><i class="icon-home"></i> Çarşı Mah. No:3<br>
  <a href="tel:03388161010">0338 816 10 10</a></p>
</div>
"""

AMASYA_HTML = """
<div class="col-md-6">
  <div class="eczaneismi">MERZİFON ECZANESİ - 0358 513 10 10</div>
  <div class="eczaneadres">Harmanlar Mah. Cumhuriyet Cad. No:7 Merzifon</div>
</div>
<div class="col-md-6">
  <div class="eczaneismi">YEŞİLIRMAK ECZANESİ - 0358 218 20 20</div>
  <div class="eczaneadres">Hatuniye Mah. Mustafa Kemal Paşa Cad. No:3</div>
</div>
"""

ISPARTA_HTML = """
<div class="trend-item">
  <div class="trend-content">
    <h5>EĞİRDİR</h5>
    <h3>GÖL ECZANESİ</h3>
    <p><i class="fa fa-map-marker"></i> Yazla Mah. Sahil Yolu No:5<br><i class="fa fa-phone"></i> 0246 311 40 40</p>
    <a href="https://maps.google.com/?q=37.8740,30.8500">Haritada Göster</a>
  </div>
</div>
<div class="trend-item">
  <h5>MERKEZ</h5>
  <h3>DAVRAZ ECZANESİ</h3>
  <a href="tel:02462231515">0246 223 15 15</a>
  <a href="https://maps.google.com/?q=37.76,30.55"><i class="fa fa-map-marker"></i> Konum</a>
</div>
<div class="trend-item"><h3>Duyurular</h3></div>
"""

LAYOUT_TABLE_ABOVE_CARDS_HTML = """
<html><body>
<table class="menu">
  <tr><td><a href="/">Ana Sayfa</a></td><td><a href="/hakkimizda">Hakkımızda</a></td></tr>
  <tr><td>İletişim Bilgileri</td><td>Adres: Atatürk Cad. No:1</td></tr>
  <tr><td>Nöbetçi Eczaneler</td><td>Duyurular</td></tr>
</table>
""" + CARD_HTML.replace("<html><body>", "")


class TestRegistry:
    def test_city_and_generic_keys_registered(self):
        keys = registered_keys()
        for key in ("adana_primary_v1", "osmaniye_eo_v1", "istanbul_secondary_v1", "generic_table", "generic_list"):
            assert key in keys

    def test_duplicate_key_rejected(self):
        with pytest.raises(ValueError, match="already registered"):
            register_parser("generic_table")(lambda html: [])

    def test_unknown_key_falls_back_to_auto_detection(self):
        rows = parse_html(TABLE_HTML, "some_city_v9")
        assert [r.pharmacy_name for r in rows] == ["Şifa Eczanesi", "Deva Eczanesi"]

    def test_empty_payload(self):
        assert parse_html("", "generic_auto_v1") == []

    def test_broken_parser_counts_as_zero_rows(self):
        def explode(html):
            raise RuntimeError("boom")

        register_parser("test_exploding_v1")(explode)
        rows = parse_html(TABLE_HTML, "test_exploding_v1")
        assert len(rows) == 2
        assert get_parser("test_exploding_v1") is explode


class TestTableStrategy:
    def test_header_columns_and_heading_district(self):
        rows = get_parser("generic_table")(TABLE_HTML)
        assert len(rows) == 2
        first, second = rows
        assert first.district_name == "Seyhan"
        assert first.address == "Atatürk Cad. No:5"
        assert first.phone == "03221234567"
        assert second.phone == "03223334455"


class TestCardStrategy:
    def test_cards_with_icons(self):
        rows = get_parser("generic_card")(CARD_HTML)
        assert [r.pharmacy_name for r in rows] == ["MODA ECZANESİ", "KOŞUYOLU ECZANESİ"]
        moda = rows[0]
        assert moda.district_name == "Kadıköy"
        assert moda.phone == "02163361213"
        assert moda.address == "Caferağa Mah. Moda Cad. No:101"
        assert (moda.lat, moda.lng) == (40.985, 29.025)


class TestStructuredStrategies:
    def test_jsonld_pharmacy(self):
        rows = get_parser("generic_jsonld")(JSONLD_HTML)
        assert len(rows) == 1
        assert rows[0].pharmacy_name == "Toros Eczanesi"
        assert rows[0].district_name == "Çukurova"
        assert rows[0].phone == "03222314455"
        assert rows[0].lat == 37.05

    def test_leaflet_markers(self):
        rows = get_parser("generic_map_markers")(LEAFLET_HTML)
        assert len(rows) == 1
        assert rows[0].pharmacy_name == "Reşatbey Eczanesi"
        assert rows[0].phone == "03224571122"
        assert (rows[0].lat, rows[0].lng) == (37.0017, 35.3213)


class TestCityParsers:
    def test_adana_primary_columns(self):
        rows = parse_html(ADANA_PRIMARY_HTML, "adana_primary_v1")
        assert [(r.district_name, r.pharmacy_name, r.phone) for r in rows] == [
            ("SEYHAN", "REŞATBEY ECZANESİ", "03224571122"),
            ("YÜREĞİR", "KİREMİTHANE ECZANESİ", "03223210099"),
            ("Seyhan", "KURTULUŞ ECZANESİ", "03222331010"),
        ]
        assert rows[0].address == "Reşatbey Mah. Atatürk Cad. No:12"
        assert rows[2].address == "Kurtuluş Mah. 64009 Sk. No:1"

    def test_adana_primary_rows_survive_normalization(self):
        records = _records(parse_html(ADANA_PRIMARY_HTML, "adana_primary_v1"), "adana")
        assert [r.district_name for r in records] == ["Seyhan", "Yüreğir", "Seyhan"]

    def test_adana_secondary_takes_district_from_heading_above(self):
        rows = parse_html(ADANA_SECONDARY_HTML, "adana_secondary_v1")
        assert [(r.pharmacy_name, r.district_name, r.phone) for r in rows] == [
            ("REŞATBEY ECZANESİ", "SEYHAN", "03224571122"),
            ("TOROS ECZANESİ", "ÇUKUROVA", "03222314455"),
        ]
        assert rows[0].address == "Reşatbey Mah. Atatürk Cad. No:12"
        assert (rows[0].lat, rows[0].lng) == (37.0017, 35.3213)
        assert rows[1].address == "Toros Mah. Turgut Özal Bulv. No:45"

    def test_osmaniye_cards(self):
        rows = parse_html(OSMANIYE_HTML, "osmaniye_eo_v1")
        assert [(r.pharmacy_name, r.district_name) for r in rows] == [
            ("Cebelibereket Eczanesi", "Merkez"),
            ("Kadirli Eczanesi", "Kadirli"),
        ]
        assert rows[0].address == "Alibeyli Mah. Atatürk Cad. No:21"
        assert rows[1].phone == "03287182233"

    def test_osmaniye_cards_drop_map_hint_from_address(self):
        kadirli = parse_html(OSMANIYE_HTML, "osmaniye_eo_v1")[1]
        assert kadirli.address == "Cumhuriyet Mah. No:3"
        assert (kadirli.lat, kadirli.lng) == (37.3736, 36.0963)

    def test_osmaniye_listing_reads_address_phone_and_district(self):
        rows = parse_html(OSMANIYE_LISTING_HTML, "osmaniye_eo_v1")
        assert [(r.pharmacy_name, r.district_name, r.phone, r.address) for r in rows] == [
            ("CEBELİBEREKET ECZANESİ", "MERKEZ", "03288141020", "Alibeyli Mah. Atatürk Cad. No:21"),
            ("YENİ ECZANE", "KADİRLİ", "03287182233", "Cumhuriyet Mah. No:3"),
        ]
        records = _records(rows, "osmaniye")
        assert [r.district_name for r in records] == ["Merkez", "Kadirli"]

    def test_istanbul_secondary_district_tables(self):
        rows = parse_html(ISTANBUL_SECONDARY_HTML, "istanbul_secondary_v1")
        assert [(r.pharmacy_name, r.district_name) for r in rows] == [
            ("MODA ECZANESİ", "KADIKÖY"),
            ("ÇENGELKÖY ECZANESİ", "ÜSKÜDAR"),
        ]
        records = _records(rows, "istanbul")
        assert [r.district_name for r in records] == ["Kadıköy", "Üsküdar"]

    def test_antalya_heading_and_tel_link_layouts(self):
        rows = parse_html(ANTALYA_HTML, "antalya_v1")
        assert [(r.pharmacy_name, r.phone) for r in rows] == [
            ("ŞİFA ECZANESİ", "02423221010"),
            ("GÜVEN ECZANESİ", "02423451122"),
        ]
        assert rows[0].address == "Kızıltoprak Mah. Aspendos Bulv. No:8"
        assert rows[1].address == "Fener Mah. Tekelioğlu Cad. No:20 Muratpaşa"
        assert (rows[1].lat, rows[1].lng) == (36.8969, 30.7133)

    def test_karaman_phone_stays_with_its_pharmacy(self):
        rows = parse_html(KARAMAN_HTML, "karaman_v1")
        assert [(r.pharmacy_name, r.district_name, r.phone) for r in rows] == [
            ("HAYAT ECZANESİ", "MERKEZ", "03382131212"),
            ("GÖKSU ECZANESİ", "ERMENEK", "03388161010"),
        ]
        assert rows[0].address == "Tahsin Ünal Mah. İsmetpaşa Cad. No:14"
        records = _records(rows, "karaman")
        assert [r.district_name for r in records] == ["Merkez", "Ermenek"]

    def test_amasya_name_phone_line(self):
        rows = parse_html(AMASYA_HTML, "amasya_v1")
        assert [(r.pharmacy_name, r.phone) for r in rows] == [
            ("MERZİFON ECZANESİ", "03585131010"),
            ("YEŞİLIRMAK ECZANESİ", "03582182020"),
        ]
        assert rows[1].address == "Hatuniye Mah. Mustafa Kemal Paşa Cad. No:3"
        records = _records(rows, "amasya")
        assert [r.district_name for r in records] == ["Merzifon", "Merkez"]

    def test_isparta_ignores_map_label_addresses(self):
        rows = parse_html(ISPARTA_HTML, "isparta_v1")
        assert [(r.pharmacy_name, r.district_name, r.phone) for r in rows] == [
            ("GÖL ECZANESİ", "EĞİRDİR", "02463114040"),
            ("DAVRAZ ECZANESİ", "MERKEZ", "02462231515"),
        ]
        assert rows[0].address == "Yazla Mah. Sahil Yolu No:5"
        assert rows[1].address == ""
        assert (rows[0].lat, rows[0].lng) == (37.874, 30.85)
        records = _records(rows, "isparta")
        assert [r.district_name for r in records] == ["Eğirdir", "Merkez"]


class TestAutoDetect:
    def test_layout_table_does_not_shadow_cards(self):
        rows = parse_html(LAYOUT_TABLE_ABOVE_CARDS_HTML, None)
        assert [r.pharmacy_name for r in rows] == ["MODA ECZANESİ", "KOŞUYOLU ECZANESİ"]
        assert len(_records(rows, "istanbul")) == 2

    def test_table_strategy_skips_phoneless_rows(self):
        assert get_parser("generic_table")(LAYOUT_TABLE_ABOVE_CARDS_HTML) == []

    def test_city_layout_detected_without_hint(self):
        rows = parse_html(AMASYA_HTML, None)
        assert [r.pharmacy_name for r in rows] == ["MERZİFON ECZANESİ", "YEŞİLIRMAK ECZANESİ"]

    def test_explicit_parser_without_usable_rows_falls_back(self):
        register_parser("test_phoneless_v1")(
            lambda html: [ParsedRow(pharmacy_name="Şifa Eczanesi", address="Atatürk Cad. No:5")]
        )
        rows = parse_html(TABLE_HTML, "test_phoneless_v1")
        assert [r.phone for r in rows] == ["03221234567", "03223334455"]

    def test_usable_row_count_ignores_bad_phones(self):
        rows = [
            ParsedRow(pharmacy_name="A Eczanesi", phone="0322 123 45 67"),
            ParsedRow(pharmacy_name="B Eczanesi", phone="12"),
            ParsedRow(pharmacy_name="C Eczanesi"),
        ]
        assert usable_row_count(rows) == 1
