"""
Identity normalization: match keys, slugs, and stable IDs.

Names from different sources spell the same place differently
("Zürich", "Zuerich", "Zurich"; "İstanbul", "Istanbul"). Matching happens
on a normalized key built by a locale profile: a transliteration table
applied before Unicode decomposition, plus optional match-only folds.

The `generic` profile is the canonical table used for every country that
has no dedicated profile. Per-language deviations:

- de / ch: umlauts transliterate to their digraphs (ä→ae), and for match
  keys only the digraphs fold back to the bare vowel, so the umlaut, the
  digraph and the plain spelling share one key. Slugs keep the digraph.
- tr: dotless/dotted i and the Turkish cedilla/breve letters map to their
  ASCII base letters; Istanbul district names alias to "Istanbul".
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Set, Tuple

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class NormalizationProfile:
    """Locale-specific normalization rules."""
    name: str
    table: Mapping[str, str]
    # (pattern, replacement) pairs applied to match keys only, after decomposition
    match_folds: Tuple[Tuple[str, str], ...] = ()
    # normalized alias -> canonical city display name
    city_aliases: Mapping[str, str] = field(default_factory=dict)


_BASE_TABLE: Dict[str, str] = {
    "ß": "ss",
    "ẞ": "ss",
    "ı": "i",
    "İ": "i",
    "ø": "o",
    "Ø": "o",
    "æ": "ae",
    "Æ": "ae",
    "œ": "oe",
    "Œ": "oe",
    "ł": "l",
    "Ł": "l",
    "đ": "d",
    "Đ": "d",
    "þ": "th",
    "Þ": "th",
}

GENERIC = NormalizationProfile(name="generic", table=dict(_BASE_TABLE))

_GERMAN_TABLE = {
    **_BASE_TABLE,
    "ä": "ae",
    "Ä": "ae",
    "ö": "oe",
    "Ö": "oe",
    "ü": "ue",
    "Ü": "ue",
}
_GERMAN_FOLDS = (("ae", "a"), ("oe", "o"), ("ue", "u"))

GERMAN = NormalizationProfile(name="de", table=_GERMAN_TABLE, match_folds=_GERMAN_FOLDS)
SWISS = NormalizationProfile(name="ch", table=_GERMAN_TABLE, match_folds=_GERMAN_FOLDS)

TURKISH = NormalizationProfile(
    name="tr",
    table={
        **_BASE_TABLE,
        "ş": "s",
        "Ş": "s",
        "ğ": "g",
        "Ğ": "g",
        "ö": "o",
        "Ö": "o",
        "ü": "u",
        "Ü": "u",
        "ç": "c",
        "Ç": "c",
    },
    city_aliases={
        "istanbul": "Istanbul",
        "beyoglu": "Istanbul",
        "uskudar": "Istanbul",
        "kadikoy": "Istanbul",
        "fatih": "Istanbul",
        "besiktas": "Istanbul",
    },
)

PROFILES: Dict[str, NormalizationProfile] = {
    p.name: p for p in (GENERIC, GERMAN, SWISS, TURKISH)
}

PROFILE_BY_COUNTRY: Dict[str, NormalizationProfile] = {
    "DE": GERMAN,
    "AT": GERMAN,
    "LI": GERMAN,
    "CH": SWISS,
    "TR": TURKISH,
}


def profile_for_country(country_code: Optional[str]) -> NormalizationProfile:
    """Pick the normalization profile for a country file, `generic` if none is registered."""
    if not country_code:
        return GENERIC
    return PROFILE_BY_COUNTRY.get(country_code.strip().upper(), GENERIC)


def _fold(text: str, profile: NormalizationProfile, match: bool) -> str:
    # Transliterate before lowercasing: "İ".lower() is "i" plus a combining dot
    value = "".join(profile.table.get(ch, ch) for ch in text.strip())
    value = unicodedata.normalize("NFKD", value.lower())
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    if match:
        for pattern, replacement in profile.match_folds:
            value = value.replace(pattern, replacement)
    value = _NON_ALNUM_RE.sub(" ", value)
    return " ".join(value.split())


def normalize_name(text: str, profile: NormalizationProfile = GENERIC) -> str:
    """
    Build the match key for a place name.

    Lowercase, transliterate with the profile table, strip diacritics via
    canonical decomposition, apply match-only folds, collapse every
    non-alphanumeric run to a single space and trim.
    """
    if not text:
        return ""
    return _fold(text, profile, match=True)


def slugify(text: str, profile: NormalizationProfile = GENERIC) -> str:
    """Hyphenated, identifier-safe form of a name: 'Lion Monument' -> 'lion-monument'."""
    if not text:
        return ""
    return _fold(text, profile, match=False).replace(" ", "-")


def build_unique_id(base: str, used_ids: Set[str]) -> str:
    """
    Return `base`, or the first free `base-2`, `base-3`, ... and register it.

    Call exactly once per accepted record: IDs are then stable for a given
    input ordering.
    """
    candidate = base
    counter = 2
    while candidate in used_ids:
        candidate = f"{base}-{counter}"
        counter += 1
    used_ids.add(candidate)
    return candidate


def title_case(text: str) -> str:
    """Capitalize the first letter of each word, splitting on spaces, hyphens and underscores."""
    words = re.split(r"[\s_-]+", text.strip())
    return " ".join(w[0].upper() + w[1:] for w in words if w)


def canonical_city(city: str, profile: NormalizationProfile = GENERIC) -> str:
    """Map a district or alias to its canonical city name, if the profile knows one."""
    if not city:
        return city
    return profile.city_aliases.get(normalize_name(city, profile), city)
