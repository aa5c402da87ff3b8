"""Per-source HTML parsers for sites whose markup the generic strategies miss."""

from __future__ import annotations

import re

from bs4 import Tag

from nobetci.parsers.dom import (
    block_coordinates,
    folded,
    has_class,
    icon_address,
    icon_phone,
    icon_text,
    is_map_label,
    find_icon,
    make_soup,
    node_text,
    tel_link_phone,
)
from nobetci.parsers.districts import sanitize_district_label
from nobetci.parsers.html_strategies import make_row, parse_list, parse_table
from nobetci.parsers.registry import register_parser
from nobetci.parsers.text import PHONE_RE, clean_text, find_phone, to_slug
from nobetci.schemas.duty import ParsedRow

_NAME_DISTRICT_RE = re.compile(r"^(.+?)\s+[-–]\s+(.+)$")
ADANA_DEFAULT_DISTRICT = "Seyhan"
OSMANIYE_DEFAULT_DISTRICT = "Merkez"
_MAP_HINT_RE = re.compile(r"eczaneyi haritada g[oö]r[uü]nt[uü]lemek i[cç]in t[iı]klay[iı]n[iı]z\.*", re.I)


def _split_name_district(text: str) -> tuple[str, str]:
    match = _NAME_DISTRICT_RE.match(clean_text(text))
    if match and "eczane" not in folded(match.group(2)):
        return match.group(1), match.group(2)
    return clean_text(text), ""


def _strip_phone(text: str) -> str:
    match = PHONE_RE.search(text)
    if match:
        text = text.replace(match.group(0), " ")
    return clean_text(re.sub(r"(?i)\b(tel(efon)?|adres)\s*:", " ", text))


@register_parser("adana_primary_v1")
def parse_adana_primary(html: str) -> list[ParsedRow]:
    """Adana health directorate: table.dynamicTable rows.

    Columns are (row no, district, name, phone, address). Rows missing a phone
    or an address are skipped; an empty district cell means Seyhan.
    """
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    for tr in soup.select("table.dynamicTable tr.gradeA"):
        cells = [node_text(td) for td in tr.find_all("td")]
        if len(cells) < 5:
            continue
        phone = tel_link_phone(tr) or find_phone(cells[3])
        if not phone or not cells[4]:
            continue
        row = make_row(
            cells[2],
            district=cells[1] or ADANA_DEFAULT_DISTRICT,
            phone=phone,
            address=cells[4],
            coords=block_coordinates(tr),
        )
        if row is not None:
            rows.append(row)
    return rows


def _preceding_heading(block: Tag) -> str:
    """District label from the nearest heading sibling before block."""
    heading = block.find_previous_sibling(
        lambda t: isinstance(t, Tag) and (t.name in ("h1", "h2", "h3", "h4", "strong") or has_class(t, "main-color"))
    )
    return sanitize_district_label(node_text(heading)) if heading is not None else ""


@register_parser("adana_secondary_v1")
def parse_adana_secondary(html: str) -> list[ParsedRow]:
    """Adana chamber: div.nobetci blocks with a heading, address lines and a tel link.

    District headings sit between the blocks, so a block without its own
    district label takes the heading above it.
    """
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    for block in soup.select("div.nobetci"):
        title = block.find(["h3", "h4", "h5", "strong", "b"])
        if title is None:
            continue
        name, district = _split_name_district(node_text(title))
        district_node = block.select_one(".ilce, .bolge, small")
        if district_node is not None and not district:
            district = node_text(district_node)
        district = district or _preceding_heading(block) or ADANA_DEFAULT_DISTRICT
        phone = icon_phone(block) or find_phone(node_text(block))
        address = icon_address(block)
        if not address:
            lines = [
                node_text(p)
                for p in block.find_all(["p", "span", "div"], recursive=False)
                if p is not title and node_text(p)
            ]
            lines = [_strip_phone(line) for line in lines if name not in line]
            address = max(lines, key=len) if lines else ""
        row = make_row(name, district=district, phone=phone, address=address, coords=block_coordinates(block))
        if row is not None:
            rows.append(row)
    return rows


def _osmaniye_district(text: str) -> str:
    """'OSMANİYE KADİRLİ' -> 'KADİRLİ'; empty -> Merkez."""
    tokens = clean_text(text).split()
    if len(tokens) >= 2 and to_slug(tokens[0]) == "osmaniye":
        tokens = tokens[1:]
    return " ".join(tokens) or OSMANIYE_DEFAULT_DISTRICT


@register_parser("osmaniye_eo_v1", auto_priority=60)
def parse_osmaniye(html: str) -> list[ParsedRow]:
    """Osmaniye chamber: div.cerceve div.eczane listings, or div.nobet-kart cards.

    A listing holds two .adres children: the first is the street address, the
    last carries the phone (.adres2) and the district (.tel).
    """
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    for item in soup.select("div.cerceve div.eczane"):
        parts = item.find_all(class_="adres", recursive=False)
        if not parts:
            continue
        address = node_text(parts[0])
        contact = parts[-1]
        phone = find_phone(node_text(contact.select_one(".adres2"))) or find_phone(node_text(contact))
        if not address or not phone:
            continue
        row = make_row(
            node_text(item.find(class_="adi", recursive=False)),
            address=address,
            phone=phone,
            district=_osmaniye_district(node_text(contact.select_one(".tel"))),
        )
        if row is not None:
            rows.append(row)
    if rows:
        return rows

    for card in soup.select("div.nobet-kart"):
        name, district = _split_name_district(node_text(card.find("h4")))
        paragraph = card.find("p")
        phone = tel_link_phone(card) or find_phone(node_text(card))
        if not phone:
            continue
        row = make_row(
            name,
            district=district or OSMANIYE_DEFAULT_DISTRICT,
            phone=phone,
            address=_strip_phone(_MAP_HINT_RE.sub(" ", node_text(paragraph))),
            coords=block_coordinates(card),
        )
        if row is not None:
            rows.append(row)
    return rows


@register_parser("istanbul_secondary_v1")
def parse_istanbul_secondary(html: str) -> list[ParsedRow]:
    """Istanbul chamber page: district tables, or a plain list on the mobile layout."""
    return parse_table(html) or parse_list(html)


@register_parser("antalya_v1", auto_priority=70)
def parse_antalya(html: str) -> list[ParsedRow]:
    """Antalya chamber: .nobetciDiv blocks; name in h4 or the first tel link."""
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    for block in soup.select(".nobetciDiv"):
        name = node_text(block.find("h4"))
        if not name:
            first_tel = block.select_one('a[href^="tel:"]')
            name = node_text(first_tel)
        address_link = block.select_one("a.nadres")
        address = node_text(address_link) if address_link is not None else icon_address(block)
        row = make_row(
            name,
            address=address,
            phone=tel_link_phone(block),
            coords=block_coordinates(block),
        )
        if row is not None:
            rows.append(row)
    return rows


def _phone_after(icon: Tag) -> str:
    """Phone from the first tel link or phone icon after icon, before the next pharmacy starts."""
    for node in icon.find_all_next(True):
        classes = node.get("class") or []
        if node.name == "h4" or "icon-home" in classes:
            break
        href = node.get("href") or ""
        if node.name == "a" and href.startswith("tel:"):
            phone = find_phone(href)
            if phone:
                return phone
        if "icon-phone" in classes:
            phone = find_phone(icon_text(node))
            if phone:
                return phone
    return ""


@register_parser("karaman_v1", auto_priority=75)
def parse_karaman(html: str) -> list[ParsedRow]:
    """Karaman: h2.vatan_hl district headings, h4 names, icon-home address lines."""
    soup = make_soup(html)
    if soup.select_one("h2.vatan_hl") is None:
        return []
    rows: list[ParsedRow] = []
    for icon in soup.find_all(lambda t: isinstance(t, Tag) and "icon-home" in (t.get("class") or [])):
        address = icon_text(icon)
        if len(address) < 5:
            continue
        name = node_text(icon.find_previous("h4"))
        if not name or re.search(r"eczaneler|nobetci", folded(name)):
            continue
        heading = icon.find_previous("h2", class_="vatan_hl")
        district = sanitize_district_label(node_text(heading)) if heading is not None else ""
        row = make_row(name, district=district, address=address, phone=_phone_after(icon))
        if row is not None:
            rows.append(row)
    return rows


@register_parser("amasya_v1", auto_priority=80)
def parse_amasya(html: str) -> list[ParsedRow]:
    """Amasya: .eczaneismi ("NAME - PHONE") followed by .eczaneadres."""
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    for name_node in soup.select(".eczaneismi"):
        text = node_text(name_node)
        phone = find_phone(text)
        name = clean_text(PHONE_RE.split(text)[0]).rstrip("-– ")
        address_node = name_node.find_next(class_="eczaneadres")
        row = make_row(name, address=node_text(address_node), phone=phone)
        if row is not None:
            rows.append(row)
    return rows


@register_parser("isparta_v1", auto_priority=85)
def parse_isparta(html: str) -> list[ParsedRow]:
    """Isparta: .trend-item cards with h3 name, h5 district and a map-marker address line."""
    soup = make_soup(html)
    rows: list[ParsedRow] = []
    for card in soup.select(".trend-item"):
        name = node_text(card.find("h3"))
        if "ecz" not in folded(name):
            continue
        marker = find_icon(card, "fa-map-marker")
        address = icon_text(marker) if marker is not None else ""
        if is_map_label(address):
            address = ""
        phone = icon_phone(card)
        if not phone and not address:
            continue
        row = make_row(
            name,
            district=node_text(card.find("h5")),
            address=address,
            phone=phone,
            coords=block_coordinates(card),
        )
        if row is not None:
            rows.append(row)
    return rows
