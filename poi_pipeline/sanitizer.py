"""
Record repair and validation.

Raw records come from hand-edited and scraped files and may miss any
field. Before validation, derived fields are synthesized from context
(file-name defaults, the record's own cityId or address) so that a record
is only rejected when it is missing something that cannot be derived:
name, category, or coordinates.

Everything here is a pure function of (raw, defaults).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config import UNKNOWN_ADDRESS, UNKNOWN_CITY
from poi_pipeline.normalizer import title_case
from poi_pipeline.schema import (
    CanonicalPoi,
    Diagnostic,
    format_issue_path,
    normalize_city_id,
    normalize_country_code,
    validate_poi,
)

_OPTIONAL_TEXT_FIELDS = (
    "googlePlaceId",
    "description",
    "website",
    "mapsUrl",
    "imageUrl",
    "openingHours",
)
_IMAGE_SOURCES = {"wikimedia", "wikipedia"}
_OSM_TYPES = {"N", "W", "R"}


@dataclass(frozen=True)
class SanitizeDefaults:
    """Context-derived fallbacks for a whole source file."""
    default_country_code: Optional[str] = None
    default_city_id: Optional[str] = None


@dataclass
class SanitizeStats:
    """Which repairs were applied to one record."""
    fixed_source: bool = False
    fixed_country_code: bool = False
    fixed_city_id: bool = False
    fixed_city: bool = False
    fixed_address: bool = False

    def fixed_fields(self) -> List[str]:
        names = {
            "source": self.fixed_source,
            "countryCode": self.fixed_country_code,
            "cityId": self.fixed_city_id,
            "city": self.fixed_city,
            "address": self.fixed_address,
        }
        return [name for name, fixed in names.items() if fixed]


def _trim(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _trim_or_value(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def city_from_address(address: Optional[str]) -> Optional[str]:
    """
    Take the city token from the tail of an address.

    'Bahnhofstrasse 1, Zürich' -> 'Zürich'. The last comma-separated part
    must contain a letter, so a trailing postcode is not mistaken for a city.
    """
    if not address:
        return None
    parts = address.split(",")
    if len(parts) < 2:
        return None
    candidate = parts[-1].strip()
    if not candidate or not any(ch.isalpha() for ch in candidate):
        return None
    return candidate


def is_placeholder_city(city: Optional[str]) -> bool:
    """True for a missing city or the "Unknown" fallback."""
    return not city or not city.strip() or city.strip() == UNKNOWN_CITY


def is_placeholder_address(address: Optional[str]) -> bool:
    """True for a missing address or the "Unknown Place" fallback."""
    return not address or not address.strip() or address.strip() == UNKNOWN_ADDRESS


def _clean_images(value: Any) -> Optional[List[Dict[str, str]]]:
    if not isinstance(value, list):
        return None
    images = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        url = _trim(entry.get("url"))
        source = _trim(entry.get("source"))
        if not url or source not in _IMAGE_SOURCES:
            continue
        image = {"url": url, "source": source}
        attribution = _trim(entry.get("attribution"))
        if attribution:
            image["attribution"] = attribution
        images.append(image)
    return images or None


def _clean_tags(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    tags = [tag for tag in (_trim(t) for t in value) if tag]
    return tags or None


def _clean_osm(value: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(value, dict):
        return None
    osm_type = _trim(value.get("type"))
    osm_id = value.get("id")
    if osm_type not in _OSM_TYPES:
        return None
    if isinstance(osm_id, bool) or not isinstance(osm_id, int) or osm_id <= 0:
        return None
    return {"type": osm_type, "id": osm_id}


def repair_record(
    raw: Any,
    defaults: SanitizeDefaults = SanitizeDefaults(),
) -> Tuple[Optional[Dict[str, Any]], SanitizeStats]:
    """
    Apply the field repair policy to a raw record.

    Order matters: city may be derived from cityId, and address from city.

    Returns:
        (repaired dict, stats), or (None, stats) if raw is not a key-value record.
    """
    stats = SanitizeStats()
    if not isinstance(raw, dict):
        return None, stats

    record: Dict[str, Any] = {
        "id": _trim_or_value(raw.get("id")),
        "name": _trim_or_value(raw.get("name")),
        "category": _trim_or_value(raw.get("category")),
        "lat": raw.get("lat"),
        "lon": raw.get("lon"),
    }

    source = _trim(raw.get("source"))
    if not source or source.lower() != "static":
        stats.fixed_source = True
    record["source"] = "static"

    country_raw = _trim(raw.get("countryCode"))
    country_code = normalize_country_code(country_raw or defaults.default_country_code)
    if not country_raw and country_code:
        stats.fixed_country_code = True
    if country_code:
        record["countryCode"] = country_code

    city_id_raw = _trim(raw.get("cityId"))
    city_id = normalize_city_id(city_id_raw or defaults.default_city_id)
    if not city_id_raw and city_id:
        stats.fixed_city_id = True
    if city_id:
        record["cityId"] = city_id

    name = _trim(raw.get("name"))
    address = _trim(raw.get("address"))
    city = _trim(raw.get("city"))
    if not city:
        from_city_id = title_case(city_id) if city_id else None
        city = from_city_id or city_from_address(address) or UNKNOWN_CITY
        stats.fixed_city = True
    record["city"] = city

    if not address:
        if name and city:
            address = f"{name}, {city}"
        else:
            address = name or UNKNOWN_ADDRESS
        stats.fixed_address = True
    record["address"] = address

    for key in _OPTIONAL_TEXT_FIELDS:
        value = _trim(raw.get(key))
        if value:
            record[key] = value

    rating = raw.get("rating")
    if isinstance(rating, (int, float)) and not isinstance(rating, bool):
        record["rating"] = rating

    images = _clean_images(raw.get("images"))
    if images:
        record["images"] = images
    tags = _clean_tags(raw.get("tags"))
    if tags:
        record["tags"] = tags
    osm = _clean_osm(raw.get("osm"))
    if osm:
        record["osm"] = osm

    return record, stats


def sanitize_with_stats(
    raw: Any,
    defaults: SanitizeDefaults = SanitizeDefaults(),
    index: Optional[int] = None,
) -> Tuple[Optional[CanonicalPoi], SanitizeStats, List[Diagnostic]]:
    """Like `sanitize`, also returning which repairs were applied."""
    record, stats = repair_record(raw, defaults)
    position = [index] if index is not None else []

    if record is None:
        return None, stats, [Diagnostic(
            path=format_issue_path(position) or "[?]",
            field="",
            message="entry is not an object",
        )]

    diagnostics = [
        Diagnostic(
            path=format_issue_path([*position, name]),
            field=name,
            message=f"{name} was missing or invalid and has been filled in",
            severity="fixed",
        )
        for name in stats.fixed_fields()
    ]

    poi, errors = validate_poi(record, index)
    return poi, stats, diagnostics + errors


def sanitize(
    raw: Any,
    defaults: SanitizeDefaults = SanitizeDefaults(),
    index: Optional[int] = None,
) -> Tuple[Optional[CanonicalPoi], List[Diagnostic]]:
    """
    Repair then validate one raw record.

    Args:
        raw: Record as decoded from JSON.
        defaults: File-level fallbacks for countryCode and cityId.
        index: Position in the source file, used to label diagnostics.

    Returns:
        (CanonicalPoi or None, diagnostics). Repairs are reported with
        severity "fixed"; any "error" diagnostic means the record was rejected.
    """
    poi, _, diagnostics = sanitize_with_stats(raw, defaults, index)
    return poi, diagnostics


def infer_country_code(records: Iterable[Any]) -> Optional[str]:
    """Country code of the first record that carries one, if any."""
    for entry in records:
        if not isinstance(entry, dict):
            continue
        code = normalize_country_code(_trim(entry.get("countryCode")))
        if code:
            return code
    return None


def defaults_for_file(path: Path, kind: str, records: List[Any]) -> SanitizeDefaults:
    """
    Derive file-level defaults from naming conventions.

    A country file `CH.json` implies countryCode CH. A city file
    `zurich.json` implies cityId `zurich`, and its country is inferred from
    the first record that has one.
    """
    stem = Path(path).stem
    if kind == "countries":
        return SanitizeDefaults(default_country_code=normalize_country_code(stem))
    if kind == "cities":
        return SanitizeDefaults(
            default_country_code=infer_country_code(records),
            default_city_id=normalize_city_id(stem),
        )
    raise ValueError(f"Unknown dataset kind: {kind}")
