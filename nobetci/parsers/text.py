"""Turkish-aware text helpers: slugs, pharmacy-name compare keys, phones, coordinates."""

from __future__ import annotations

import re
import unicodedata

_FOLD_TABLE = str.maketrans(
    {
        "ç": "c",
        "Ç": "C",
        "ğ": "g",
        "Ğ": "G",
        "ı": "i",
        "İ": "I",
        "ö": "o",
        "Ö": "O",
        "ş": "s",
        "Ş": "S",
        "ü": "u",
        "Ü": "U",
        "â": "a",
        "Â": "A",
        "î": "i",
        "Î": "I",
        "û": "u",
        "Û": "U",
    }
)

_WS_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^A-Z0-9\s]")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")
_NAME_SUFFIX_RE = re.compile(r"(?:\s+(?:ECZANESI|ECZANELERI|ECZANE|ECZ))+$")
_ECZ_TOKEN_RE = re.compile(r"\becz", re.IGNORECASE)
_LETTER_RE = re.compile(r"[^\W\d_]", re.UNICODE)

PHONE_RE = re.compile(
    r"(\+?90[\s().-]*)?0?\(?\d{3}\)?[\s.-]*\d{3}[\s.-]*\d{2}[\s.-]*\d{2}"
)
_COORD_PATTERNS = (
    re.compile(r"[?&](?:q|query|daddr|ll|destination)=(-?\d{1,2}\.\d+)\s*(?:,|%2C)\s*(-?\d{1,3}\.\d+)", re.I),
    re.compile(r"@(-?\d{1,2}\.\d+),(-?\d{1,3}\.\d+)"),
)


def clean_text(value: str | None) -> str:
    """Collapse whitespace (including nbsp) and strip."""
    if not value:
        return ""
    return _WS_RE.sub(" ", value.replace("\xa0", " ")).strip()


def fold_turkish(value: str) -> str:
    """Map Turkish letters to ASCII and drop remaining combining marks."""
    folded = value.translate(_FOLD_TABLE)
    decomposed = unicodedata.normalize("NFKD", folded)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def turkish_upper(value: str) -> str:
    return value.replace("i", "İ").replace("ı", "I").upper()


def turkish_lower(value: str) -> str:
    return value.replace("İ", "i").replace("I", "ı").lower()


def to_slug(value: str | None) -> str:
    """URL slug: Turkish-aware lowercase, ASCII-folded, hyphen separated."""
    if not value:
        return ""
    folded = fold_turkish(turkish_lower(value))
    return _NON_SLUG_RE.sub("-", folded).strip("-")


def normalize_pharmacy_name(value: str | None) -> str:
    """Cross-source compare key for a pharmacy name.

    Uppercase, ASCII-folded, punctuation removed, trailing "ECZANESİ" style
    suffixes stripped and whitespace collapsed. "Aa Eczanesi" and
    "AA ECZANESİ" both map to "AA".
    """
    if not value:
        return ""
    upper = fold_turkish(turkish_upper(value)).upper()
    stripped = _NON_WORD_RE.sub(" ", upper)
    collapsed = _WS_RE.sub(" ", stripped).strip()
    without_suffix = _NAME_SUFFIX_RE.sub("", collapsed).strip()
    return without_suffix or collapsed


def is_valid_pharmacy_name(value: str | None) -> bool:
    """A usable name has at least one letter and three characters."""
    name = clean_text(value)
    return len(name) >= 3 and bool(_LETTER_RE.search(name))


def ensure_eczane_suffix(value: str) -> str:
    """Append " ECZANESİ" to display names that carry no pharmacy marker."""
    name = clean_text(value)
    if not name or _ECZ_TOKEN_RE.search(fold_turkish(name)):
        return name
    return f"{name} ECZANESİ"


def normalize_phone(raw: str | None) -> str:
    """Normalize a Turkish phone number to 0XXXXXXXXXX, or "" if it has the wrong shape."""
    if not raw:
        return ""
    digits = re.sub(r"\D", "", raw)
    if len(digits) >= 12 and digits.startswith("90"):
        digits = "0" + digits[2:12]
    elif len(digits) == 10 and not digits.startswith("0"):
        digits = "0" + digits
    if len(digits) == 11 and digits.startswith("0"):
        return digits
    return ""


def find_phone(text: str | None) -> str:
    """First Turkish phone number in free text, normalized; "" if none."""
    if not text:
        return ""
    for match in PHONE_RE.finditer(text):
        phone = normalize_phone(match.group(0))
        if phone:
            return phone
    return ""


def extract_coordinates(text: str | None) -> tuple[float, float] | None:
    """(lat, lng) from a maps link (?q=lat,lng or @lat,lng), if plausible."""
    if not text:
        return None
    for pattern in _COORD_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        lat, lng = float(match.group(1)), float(match.group(2))
        if -90 <= lat <= 90 and -180 <= lng <= 180:
            return lat, lng
    return None
