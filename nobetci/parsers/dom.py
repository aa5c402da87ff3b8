"""BeautifulSoup helpers shared by the HTML parser strategies."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, NavigableString, Tag

from nobetci.parsers.text import clean_text, extract_coordinates, find_phone, fold_turkish, turkish_lower

_MAP_LABEL_RE = re.compile(r"harita|konum|map|yol tarifi", re.I)
_ICON_STOP_TAGS = frozenset({"i", "br", "svg", "img"})


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def folded(text: str | None) -> str:
    """Lowercase ASCII-folded text for keyword tests."""
    return fold_turkish(turkish_lower(text or ""))


def node_text(node: Tag | None) -> str:
    if node is None:
        return ""
    return clean_text(node.get_text(" "))


def has_class(node: Tag, fragment: str) -> bool:
    return any(fragment in cls for cls in node.get("class") or [])


def tel_link_phone(node: Tag) -> str:
    """Phone from the first tel: link under node."""
    for link in node.select('a[href^="tel:"], a[href^="TEL:"]'):
        phone = find_phone(link.get("href", "")[4:]) or find_phone(node_text(link))
        if phone:
            return phone
    return ""


def icon_text(icon: Tag) -> str:
    """Text that follows an icon element up to the next icon or line break."""
    parts: list[str] = []
    for sibling in icon.next_siblings:
        if isinstance(sibling, NavigableString):
            parts.append(str(sibling))
            continue
        if not isinstance(sibling, Tag):
            continue
        if sibling.name in _ICON_STOP_TAGS:
            break
        if sibling.name == "a" and (sibling.get("href") or "").startswith(("http", "tel:")):
            break
        parts.append(sibling.get_text(" "))
    text = clean_text(" ".join(parts))
    if not text and icon.parent is not None:
        text = node_text(icon.parent)
    return text


def find_icon(node: Tag, *fragments: str) -> Tag | None:
    """First <i>/<span> element whose class contains any of the fragments."""
    for icon in node.find_all(["i", "span", "em"]):
        if any(has_class(icon, fragment) for fragment in fragments):
            return icon
    return None


def icon_address(node: Tag) -> str:
    """Address from home/address-card icons, falling back to a map-marker icon."""
    icon = find_icon(node, "fa-home", "fa-address-card", "icon-home")
    if icon is not None:
        text = icon_text(icon)
        if text:
            return text
    marker = find_icon(node, "fa-map-marker", "icon-map-marker")
    if marker is not None:
        text = icon_text(marker)
        if len(text) >= 5 and not _MAP_LABEL_RE.search(text):
            return text
    return ""


def icon_phone(node: Tag) -> str:
    """Phone from a tel: link, or from text after a phone icon."""
    phone = tel_link_phone(node)
    if phone:
        return phone
    icon = find_icon(node, "fa-phone", "icon-phone")
    if icon is not None:
        return find_phone(icon_text(icon))
    return ""


def block_coordinates(node: Tag) -> tuple[float, float] | None:
    """Coordinates from map links or embedded map iframes under node."""
    for element in node.find_all(["a", "iframe"]):
        coords = extract_coordinates(element.get("href") or element.get("src") or "")
        if coords:
            return coords
    return None


def is_map_label(text: str) -> bool:
    return bool(_MAP_LABEL_RE.search(text))
