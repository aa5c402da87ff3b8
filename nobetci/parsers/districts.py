"""District lexicon and district-label resolution.

Scraped district labels are noisy ("BUGÜN NÖBETÇİ ECZANELER KADIKÖY",
"Aile Sağlığı Merkezi Yanı"). Resolution order for one row:

1. the sanitized label matched against the province's known districts,
2. a known district mentioned in the address, then in the pharmacy name,
3. the sanitized label itself when the province has no lexicon and the
   label is not boilerplate,
4. the province default district.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from nobetci.parsers.text import clean_text, to_slug

_LEXICON_PATH = Path(__file__).parent / "districts.yaml"

DEFAULT_DISTRICT = "Merkez"

# Slug tokens removed from labels before matching.
_BOILERPLATE_TOKENS = frozenset(
    {
        "bugun",
        "bugunku",
        "nobetci",
        "nobet",
        "nobetciler",
        "eczane",
        "eczaneler",
        "eczaneleri",
        "eczanesi",
        "listesi",
        "liste",
        "ilcesi",
        "ilce",
        "haftalik",
        "gunluk",
        "tarihli",
        "saat",
    }
)
# Labels that name a place type rather than a district.
_NOISE_SLUG_FRAGMENTS = (
    "nobetci",
    "eczane",
    "aile-sagligi",
    "saglik-ocagi",
    "hastane",
    "tip-merkezi",
    "asm",
    "nolu",
)
_GENERIC_LABELS = frozenset({"merkez", "tum", "tumu", "hepsi", "genel", "il-merkezi"})
_DATE_TOKEN_RE = re.compile(r"^\d{1,2}[./-]\d{1,2}[./-]\d{2,4}$|^\d+$")
_TOKEN_SPLIT_RE = re.compile(r"[\s,;:|/()\[\]-]+")

_KILIS_RE = re.compile(r"kilis|musabeyli|elbeyli|polateli")


@dataclass(frozen=True)
class ProvinceLexicon:
    """Known districts of one province, keyed by slug."""

    slug: str
    name: str
    plate: int | None
    default_district: str
    districts: dict[str, str] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)

    def districts_longest_first(self) -> list[tuple[str, str]]:
        return sorted(self.districts.items(), key=lambda item: len(item[0]), reverse=True)


@lru_cache(maxsize=1)
def load_district_lexicon() -> dict[str, ProvinceLexicon]:
    """Load districts.yaml into ProvinceLexicon objects keyed by province slug.

    Raises:
        ValueError: If the YAML is malformed.
    """
    try:
        with _LEXICON_PATH.open(encoding="utf-8") as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"District lexicon YAML is malformed: {exc}") from exc

    districts_by_province = data.get("districts") or {}
    aliases_by_province = data.get("aliases") or {}
    lexicon: dict[str, ProvinceLexicon] = {}
    for entry in data.get("provinces") or []:
        slug = entry["slug"]
        names = districts_by_province.get(slug) or []
        lexicon[slug] = ProvinceLexicon(
            slug=slug,
            name=entry["name"],
            plate=entry.get("plate"),
            default_district=entry.get("default_district") or DEFAULT_DISTRICT,
            districts={to_slug(name): name for name in names},
            aliases={
                to_slug(alias): target
                for alias, target in (aliases_by_province.get(slug) or {}).items()
            },
        )
    return lexicon


def get_province_lexicon(province_slug: str) -> ProvinceLexicon | None:
    return load_district_lexicon().get(province_slug)


def sanitize_district_label(label: str | None) -> str:
    """Drop boilerplate tokens (today/duty/pharmacy) and dates from a district label."""
    text = clean_text(label)
    if not text:
        return ""
    kept = [
        token
        for token in _TOKEN_SPLIT_RE.split(text)
        if token
        and not _DATE_TOKEN_RE.match(token)
        and to_slug(token) not in _BOILERPLATE_TOKENS
        and to_slug(token)
    ]
    return " ".join(kept)


def is_noise_label(label: str) -> bool:
    slug = to_slug(label)
    if not slug or slug in _GENERIC_LABELS:
        return True
    tokens = slug.split("-")
    return any(
        fragment in tokens if len(fragment) <= 3 else fragment in slug
        for fragment in _NOISE_SLUG_FRAGMENTS
    )


def find_district_in_text(lexicon: ProvinceLexicon, text: str | None) -> str | None:
    """Longest known district (or alias) mentioned in free text.

    Slugs of three characters or fewer must match a whole token.
    """
    text_slug = to_slug(text)
    if not text_slug:
        return None
    padded = f"-{text_slug}-"
    candidates = lexicon.districts_longest_first() + sorted(
        lexicon.aliases.items(), key=lambda item: len(item[0]), reverse=True
    )
    for slug, name in candidates:
        if len(slug) <= 3:
            if f"-{slug}-" in padded:
                return name
        elif slug in text_slug:
            return name
    return None


def resolve_district_name(
    province_slug: str,
    label: str | None,
    address: str | None = None,
    pharmacy_name: str | None = None,
) -> str:
    """Canonical district name for a scraped row.

    The label is tried first, then the address, then the pharmacy name
    ("Kadirli Merkez Eczanesi").
    """
    lexicon = get_province_lexicon(province_slug)
    cleaned = sanitize_district_label(label)
    cleaned_slug = to_slug(cleaned)

    if lexicon is not None and lexicon.districts:
        if cleaned_slug in lexicon.districts:
            return lexicon.districts[cleaned_slug]
        if cleaned_slug in lexicon.aliases:
            return lexicon.aliases[cleaned_slug]
        found = find_district_in_text(lexicon, cleaned)
        if found:
            return found
        for text in (address, pharmacy_name):
            found = find_district_in_text(lexicon, text)
            if found:
                return found
        return lexicon.default_district

    if cleaned and not is_noise_label(cleaned):
        return cleaned
    return lexicon.default_district if lexicon else DEFAULT_DISTRICT


def belongs_to_province(province_slug: str, district_name: str, address: str) -> bool:
    """Province scoping for sources that publish a neighbouring province.

    Gaziantep sources also list Kilis pharmacies; Kilis keeps only those.
    """
    haystack = to_slug(f"{district_name} {address}")
    is_kilis = bool(_KILIS_RE.search(haystack))
    if province_slug == "kilis":
        return is_kilis
    if province_slug == "gaziantep":
        return not is_kilis
    return True
