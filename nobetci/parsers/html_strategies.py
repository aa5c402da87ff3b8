"""Generic HTML extraction strategies (tables, cards, data boxes, JSON-LD, map markers, lists)."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

from bs4 import Tag

from nobetci.parsers.dom import (
    block_coordinates,
    folded,
    has_class,
    icon_address,
    icon_phone,
    is_map_label,
    make_soup,
    node_text,
    tel_link_phone,
)
from nobetci.parsers.districts import sanitize_district_label
from nobetci.parsers.registry import register_parser
from nobetci.parsers.text import (
    PHONE_RE,
    clean_text,
    extract_coordinates,
    find_phone,
    is_valid_pharmacy_name,
)
from nobetci.schemas.duty import ParsedRow

_DUTY_HEADING_RE = re.compile(r"n[oö]bet[cç][iİı]\s+eczane(?:ler|leri)?", re.I)
_HEADER_HINTS = ("eczane adi", "telefon", "adres")
_HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5"]


def make_row(
    name: str,
    *,
    address: str = "",
    phone: str = "",
    district: str = "",
    coords: tuple[float, float] | None = None,
) -> ParsedRow | None:
    name = clean_text(name)
    if not is_valid_pharmacy_name(name):
        return None
    lat, lng = coords if coords else (None, None)
    return ParsedRow(
        district_name=clean_text(district),
        pharmacy_name=name,
        address=clean_text(address),
        phone=phone,
        lat=lat,
        lng=lng,
    )


# ── Tables ──────────────────────────────────────────────────────────────────


@dataclass
class _Columns:
    name: int = -1
    address: int = -1
    phone: int = -1
    district: int = -1


def _detect_columns(cells: list[str]) -> _Columns:
    cols = _Columns()
    for idx, cell in enumerate(cells):
        text = folded(cell)
        if cols.phone < 0 and re.search(r"telefon|\btel\b|phone|gsm", text):
            cols.phone = idx
        elif cols.address < 0 and re.search(r"adres|address", text):
            cols.address = idx
        elif cols.district < 0 and re.search(r"ilce|bolge|semt|district", text):
            cols.district = idx
        elif cols.name < 0 and re.search(r"eczane|\badi\b|isim|name", text):
            cols.name = idx
    return cols


def _is_header_row(cells: list[str]) -> bool:
    joined = folded(" ".join(cells))
    return any(hint in joined for hint in _HEADER_HINTS) and not PHONE_RE.search(joined)


def _table_district(table: Tag) -> str:
    heading = table.find_previous(["h1", "h2", "h3", "h4", "strong"])
    if heading is None:
        return ""
    text = _DUTY_HEADING_RE.sub(" ", node_text(heading))
    return sanitize_district_label(text)


def _pick_name(cells: list[str]) -> int:
    for idx, cell in enumerate(cells):
        if "ecz" in folded(cell) and is_valid_pharmacy_name(cell):
            return idx
    for idx, cell in enumerate(cells):
        if is_valid_pharmacy_name(cell) and not PHONE_RE.search(cell) and len(cell) <= 60:
            return idx
    return -1


def _cell(cells: list[str], idx: int) -> str:
    return cells[idx] if 0 <= idx < len(cells) else ""


@register_parser("generic_table", auto_priority=10, min_rows=2)
def parse_table(html: str) -> list[ParsedRow]:
    """Rows from every <table>; header columns detected by keyword when present.

    Rows without a phone number are layout or navigation rows and are skipped.
    """
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    for table in soup.find_all("table"):
        heading_district = _table_district(table)
        cols: _Columns | None = None
        for tr in table.find_all("tr"):
            cells = [node_text(c) for c in tr.find_all(["td", "th"], recursive=False)]
            if not any(cells) or tr.find("table") is not None:
                continue
            if _is_header_row(cells):
                detected = _detect_columns(cells)
                if detected.name >= 0:
                    cols = detected
                continue

            phone = tel_link_phone(tr)
            if cols is not None:
                name = _cell(cells, cols.name)
                phone = phone or find_phone(_cell(cells, cols.phone))
                address = _cell(cells, cols.address)
                district = _cell(cells, cols.district) or heading_district
            else:
                name_idx = _pick_name(cells)
                if name_idx < 0:
                    continue
                name = cells[name_idx]
                phone = phone or find_phone(" ".join(cells))
                rest = [
                    c for i, c in enumerate(cells) if i != name_idx and not find_phone(c) and c
                ]
                address = max(rest, key=len) if rest else ""
                district = heading_district
            if not phone:
                continue
            row = make_row(
                name,
                address=address,
                phone=phone,
                district=district,
                coords=block_coordinates(tr),
            )
            if row is not None:
                rows.append(row)
    return rows


# ── Cards ───────────────────────────────────────────────────────────────────


def _card_container(heading: Tag, heading_ids: set[int]) -> Tag:
    """Highest ancestor of heading that holds no other pharmacy heading."""
    best: Tag = heading
    node = heading.parent
    while isinstance(node, Tag) and node.name not in ("body", "html", "[document]"):
        inner = [h for h in node.find_all(_HEADING_TAGS) if id(h) in heading_ids]
        if len(inner) > 1 or len(node_text(node)) > 2000:
            break
        best = node
        node = node.parent
    return best


def _card_district(container: Tag, heading: Tag) -> str:
    arrow = container.find(lambda t: isinstance(t, Tag) and has_class(t, "fa-arrow-right"))
    if arrow is not None:
        text = clean_text(arrow.next_sibling if isinstance(arrow.next_sibling, str) else "")
        if text:
            return text
    for h5 in container.find_all("h5"):
        if h5 is heading:
            continue
        text = node_text(h5)
        if 2 <= len(text) <= 40 and "ecz" not in folded(text):
            return text
    return ""


@register_parser("generic_card", auto_priority=20, min_rows=2)
def parse_cards(html: str) -> list[ParsedRow]:
    """Bootstrap-style cards: a heading naming the pharmacy plus icon-labelled lines.

    Headings such as "KADIKÖY NÖBETÇİ ECZANELER" set the district for the
    cards that follow them.
    """
    soup = make_soup(html)
    headings = [
        h
        for h in soup.find_all(_HEADING_TAGS)
        if "ecz" in folded(node_text(h)) and len(node_text(h)) >= 5
    ]
    heading_ids = {id(h) for h in headings}
    rows: list[ParsedRow] = []
    section_district = ""

    for heading in headings:
        title = node_text(heading)
        if re.search(r"eczaneler", folded(title)):
            district_only = sanitize_district_label(_DUTY_HEADING_RE.sub(" ", title))
            if 3 <= len(district_only) <= 40 and "eczac" not in folded(district_only):
                section_district = district_only
            continue

        container = _card_container(heading, heading_ids)
        name, district = title, ""
        dash = re.match(r"^(.+?)\s+[-–]\s+(.+)$", title)
        if dash and "eczane" not in folded(dash.group(2)):
            name, district = dash.group(1), dash.group(2)
        district = district or _card_district(container, heading) or section_district

        phone = icon_phone(container) or find_phone(node_text(container))
        address = icon_address(container)
        if not address:
            paragraphs = [
                node_text(p)
                for p in container.find_all("p")
                if node_text(p) and not find_phone(node_text(p)) and not is_map_label(node_text(p))
            ]
            address = max(paragraphs, key=len) if paragraphs else ""
        if not phone and not address:
            continue
        row = make_row(
            name,
            address=address,
            phone=phone,
            district=district,
            coords=block_coordinates(container),
        )
        if row is not None:
            rows.append(row)
    return rows


# ── data-name / data-district boxes ─────────────────────────────────────────


@register_parser("generic_inline_box", auto_priority=30)
def parse_inline_boxes(html: str) -> list[ParsedRow]:
    """Elements carrying data-name and data-district attributes."""
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    for box in soup.select("[data-name][data-district]"):
        title = box.find("h4")
        name = node_text(title) or box.get("data-name", "")
        paragraph = box.find("p")
        phone = tel_link_phone(box) or find_phone(node_text(paragraph))
        address = ""
        if paragraph is not None:
            for junk in paragraph.find_all(["svg", "h1", "h2", "h3", "h4", "h5", "h6"]):
                junk.decompose()
            address = node_text(paragraph)
            match = PHONE_RE.search(address)
            if match:
                address = clean_text(address.replace(match.group(0), " "))
        row = make_row(
            name,
            address=address,
            phone=phone,
            district=box.get("data-district", ""),
            coords=block_coordinates(box),
        )
        if row is not None:
            rows.append(row)
    return rows


# ── Schema.org JSON-LD ──────────────────────────────────────────────────────


def _iter_jsonld_objects(data: object):
    if isinstance(data, list):
        for item in data:
            yield from _iter_jsonld_objects(item)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from _iter_jsonld_objects(data["@graph"])


def _is_pharmacy(obj: dict) -> bool:
    kind = obj.get("@type")
    kinds = kind if isinstance(kind, list) else [kind]
    return any(isinstance(k, str) and k.lower() == "pharmacy" for k in kinds)


def _jsonld_row(obj: dict) -> ParsedRow | None:
    address = obj.get("address")
    district = ""
    if isinstance(address, dict):
        district = str(address.get("addressLocality") or "")
        address_text = " ".join(
            str(address.get(part) or "")
            for part in ("streetAddress", "addressLocality", "addressRegion")
        )
    else:
        address_text = str(address or "")
    coords = None
    geo = obj.get("geo")
    if isinstance(geo, dict):
        try:
            coords = (float(geo["latitude"]), float(geo["longitude"]))
        except (KeyError, TypeError, ValueError):
            coords = None
    return make_row(
        str(obj.get("name") or ""),
        address=address_text,
        phone=find_phone(str(obj.get("telephone") or "")),
        district=district,
        coords=coords,
    )


@register_parser("generic_jsonld", auto_priority=40)
def parse_jsonld(html: str) -> list[ParsedRow]:
    """Schema.org Pharmacy objects from <script type="application/ld+json">."""
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except ValueError:
            continue
        for obj in _iter_jsonld_objects(data):
            if _is_pharmacy(obj):
                row = _jsonld_row(obj)
                if row is not None:
                    rows.append(row)
    return rows


# ── JS map markers ──────────────────────────────────────────────────────────

_LEAFLET_MARKER_RE = re.compile(
    r"L\.marker\(\s*\[\s*(-?\d+\.\d+)\s*,\s*(-?\d+\.\d+)\s*\][^;]*?\.bindPopup\(\s*([\"'`])(.*?)(?<!\\)\3",
    re.S,
)
_GOOGLE_MARKER_RE = re.compile(
    r"position\s*:\s*\{\s*lat\s*:\s*(-?\d+\.\d+)\s*,\s*lng\s*:\s*(-?\d+\.\d+)\s*\}",
)
_INFO_CONTENT_RE = re.compile(r"content\s*:\s*([\"'`])(.*?)(?<!\\)\1", re.S)


def _unescape_js(value: str) -> str:
    return (
        value.replace('\\"', '"')
        .replace("\\'", "'")
        .replace("\\/", "/")
        .replace("\\n", " ")
        .replace("\\t", " ")
    )


def _balloon_row(balloon_html: str, lat: str, lng: str) -> ParsedRow | None:
    balloon = make_soup(_unescape_js(balloon_html))
    title = balloon.find(["b", "strong", "h1", "h2", "h3", "h4", "h5"])
    text = node_text(balloon)
    name = node_text(title) if title is not None else text.split("  ")[0]
    phone = tel_link_phone(balloon) or find_phone(text)
    address = text.replace(name, " ", 1)
    match = PHONE_RE.search(address)
    if match:
        address = address.replace(match.group(0), " ")
    address = re.sub(r"(?i)\b(tel(efon)?|adres)\s*:?", " ", address)
    return make_row(name, address=address, phone=phone, coords=(float(lat), float(lng)))


@register_parser("generic_map_markers", auto_priority=50)
def parse_map_markers(html: str) -> list[ParsedRow]:
    """Markers declared in inline scripts with their popup/info-window HTML."""
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    for script in soup.find_all("script"):
        code = script.string or script.get_text() or ""
        if "marker" not in code.lower():
            continue
        for match in _LEAFLET_MARKER_RE.finditer(code):
            row = _balloon_row(match.group(4), match.group(1), match.group(2))
            if row is not None:
                rows.append(row)
        for match in _GOOGLE_MARKER_RE.finditer(code):
            content = _INFO_CONTENT_RE.search(code, match.end(), match.end() + 1500)
            if content is None:
                continue
            row = _balloon_row(content.group(2), match.group(1), match.group(2))
            if row is not None:
                rows.append(row)
    return rows


# ── Plain lists ─────────────────────────────────────────────────────────────


@register_parser("generic_list", auto_priority=100, min_rows=2)
def parse_list(html: str) -> list[ParsedRow]:
    """List items or articles that mention a pharmacy and carry a phone number."""
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    seen: set[int] = set()
    for item in soup.select("li, article, .eczane, .pharmacy, .nobetci-eczane"):
        if any(id(parent) in seen for parent in item.parents):
            continue
        text = node_text(item)
        phone = tel_link_phone(item) or find_phone(text)
        if not phone or len(text) > 600:
            continue
        title = item.find(["strong", "b", "h2", "h3", "h4", "h5"])
        name = node_text(title) if title is not None else PHONE_RE.split(text)[0]
        address = text.replace(name, " ", 1)
        match = PHONE_RE.search(address)
        if match:
            address = address.replace(match.group(0), " ")
        coords = block_coordinates(item) or extract_coordinates(str(item))
        row = make_row(name, address=address, phone=phone, coords=coords)
        if row is not None:
            rows.append(row)
            seen.add(id(item))
    return rows
