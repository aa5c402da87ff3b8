"""Tests for related-page and AJAX endpoint discovery."""

from __future__ import annotations

from datetime import date

from nobetci.ingestion.discovery import (
    find_ajax_api_url,
    find_related_urls,
    is_pdf_like,
    unwrap_json_html,
)

BASE = "https://www.osmaniyeeo.org.tr/"

_PAGE = """
<html><body>
  <a href="/iletisim">İletişim</a>
  <a href="/nobetci-eczane/kadirli">Kadirli</a>
  <a href="mailto:info@nobetci-eczane.org">Mail</a>
  <a href="/nobetkarti.pdf">Aylık liste</a>
  <a href="/nobetci-eczane/kadirli#top">Kadirli (tekrar)</a>
  <iframe src="https://www.eczanesistemi.net/list/80"></iframe>
  <script>var feed = "https://www.osmaniyeeo.org.tr/nobetyazdir?gun=1";</script>
</body></html>
"""


class TestFindRelatedUrls:
    def test_attributes_before_scripts(self):
        found = find_related_urls(_PAGE, BASE)
        assert found == [
            "https://www.osmaniyeeo.org.tr/nobetci-eczane/kadirli",
            "https://www.eczanesistemi.net/list/80",
            "https://www.osmaniyeeo.org.tr/nobetyazdir?gun=1",
        ]

    def test_skips_pdf_mailto_and_unrelated(self):
        found = find_related_urls(_PAGE, BASE)
        assert not any(u.endswith(".pdf") for u in found)
        assert not any("iletisim" in u for u in found)
        assert not any(u.startswith("mailto:") for u in found)

    def test_limit(self):
        html = "".join(f'<a href="/nobetci-eczane/{i}">x</a>' for i in range(10))
        assert len(find_related_urls(html, BASE, limit=3)) == 3

    def test_no_links(self):
        assert find_related_urls("<p>Bugün nöbetçi yok</p>", BASE) == []


class TestFindAjaxApiUrl:
    def test_builds_dated_url_from_script(self):
        html = '<script>$.getJSON("/api/getPharmacies/" + secilenTarih, cb);</script>'
        assert (
            find_ajax_api_url(html, BASE, date(2026, 10, 18))
            == "https://www.osmaniyeeo.org.tr/api/getPharmacies/2026-10-18"
        )

    def test_default_path_when_base_not_found(self):
        html = "<script>load('getPharmacies');</script>"
        assert (
            find_ajax_api_url(html, BASE, date(2026, 10, 18))
            == "https://www.osmaniyeeo.org.tr/getPharmacies/2026-10-18"
        )

    def test_none_without_marker(self):
        assert find_ajax_api_url("<p>nothing</p>", BASE, date(2026, 10, 18)) is None


class TestUnwrapJsonHtml:
    def test_html_key(self):
        assert unwrap_json_html('{"html": "<div>ŞİFA</div>", "ok": true}') == ["<div>ŞİFA</div>"]

    def test_multiple_keys(self):
        payload = '{"data": "<tr><td>A</td></tr>", "result": "<p>B</p>"}'
        assert unwrap_json_html(payload) == ["<tr><td>A</td></tr>", "<p>B</p>"]

    def test_not_json(self):
        assert unwrap_json_html("<html></html>") == []
        assert unwrap_json_html("{broken") == []
        assert unwrap_json_html('["<p>x</p>"]') == []

    def test_non_html_strings_ignored(self):
        assert unwrap_json_html('{"html": "plain text"}') == []


def test_is_pdf_like():
    assert is_pdf_like("", "https://x.org/liste.PDF")
    assert is_pdf_like("%PDF-1.7 ...", "https://x.org/download")
    assert not is_pdf_like("<html>", "https://x.org/nobet")
