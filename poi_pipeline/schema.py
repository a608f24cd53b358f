"""
Canonical POI schema.

The persisted unit of every country dataset. Field names on disk are
camelCase; the model exposes snake_case attributes with camelCase aliases.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Annotated, Any, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
)

from poi_pipeline.normalizer import slugify

_COUNTRY_CODE_RE = re.compile(r"^[A-Z]{2,3}$")

TrimmedStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

Category = Literal["landmarks", "museums", "food", "nightlife", "nature", "other"]


def normalize_country_code(value: Optional[str]) -> Optional[str]:
    """' ch ' -> 'CH'; empty or missing -> None. Does not check the format."""
    if not value or not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed.upper() if trimmed else None


def is_country_code(value: Optional[str]) -> bool:
    return bool(value) and bool(_COUNTRY_CODE_RE.match(value))


def normalize_city_id(value: Optional[str]) -> Optional[str]:
    """'Zürich_City' -> 'zurich-city'; empty or symbol-only input -> None."""
    if not value or not isinstance(value, str):
        return None
    return slugify(value) or None


def _reject_non_numeric(value: Any) -> Any:
    # JSON numbers only: "47.1" or true must not be coerced into a coordinate
    if isinstance(value, (str, bool)):
        raise ValueError("must be a number")
    return value


class PoiImage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: TrimmedStr
    source: Literal["wikimedia", "wikipedia"]
    attribution: Optional[TrimmedStr] = None


class OsmRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["N", "W", "R"]
    id: Annotated[int, Field(strict=True, gt=0)]


class CanonicalPoi(BaseModel):
    """A validated point of interest as written to a country dataset."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: TrimmedStr
    name: TrimmedStr
    category: Category
    lat: float = Field(ge=-90, le=90, allow_inf_nan=False)
    lon: float = Field(ge=-180, le=180, allow_inf_nan=False)
    source: Literal["static"]
    country_code: str = Field(alias="countryCode")
    city_id: Optional[str] = Field(default=None, alias="cityId")
    city: str
    address: str
    google_place_id: Optional[TrimmedStr] = Field(default=None, alias="googlePlaceId")
    description: Optional[TrimmedStr] = None
    rating: Optional[float] = Field(default=None, allow_inf_nan=False)
    website: Optional[TrimmedStr] = None
    maps_url: Optional[TrimmedStr] = Field(default=None, alias="mapsUrl")
    image_url: Optional[TrimmedStr] = Field(default=None, alias="imageUrl")
    images: Optional[List[PoiImage]] = None
    opening_hours: Optional[TrimmedStr] = Field(default=None, alias="openingHours")
    osm: Optional[OsmRef] = None
    tags: Optional[List[TrimmedStr]] = None

    @field_validator("lat", "lon", "rating", mode="before")
    @classmethod
    def _numbers_only(cls, value: Any) -> Any:
        return _reject_non_numeric(value)

    @field_validator("country_code", mode="before")
    @classmethod
    def _check_country_code(cls, value: Any) -> str:
        normalized = normalize_country_code(value) if isinstance(value, str) else None
        if not is_country_code(normalized):
            raise ValueError("countryCode must be ISO-2 or ISO-3")
        return normalized

    @field_validator("city_id", mode="before")
    @classmethod
    def _check_city_id(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        normalized = normalize_city_id(value) if isinstance(value, str) else None
        if not normalized:
            raise ValueError("cityId is invalid")
        return normalized

    @field_validator("city", "address", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @property
    def coord(self) -> Tuple[float, float]:
        return (self.lat, self.lon)

    @property
    def has_coords(self) -> bool:
        return math.isfinite(self.lat) and math.isfinite(self.lon)

    def to_record(self) -> dict:
        """JSON-ready dict in schema field order, optional fields omitted when unset."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class Diagnostic:
    """One finding about one record: a repair that was applied, or a validation error."""
    path: str
    field: str
    message: str
    severity: str = "error"  # "error" or "fixed"

    @property
    def is_error(self) -> bool:
        return self.severity == "error"

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


def format_issue_path(path: Sequence[Union[str, int]]) -> str:
    """[3, "osm", "id"] -> "[3].osm.id"; ["lat"] -> "[lat]"."""
    if not path:
        return ""
    index, *rest = path
    suffix = "." + ".".join(str(p) for p in rest) if rest else ""
    if isinstance(index, int):
        return f"[{index}]{suffix}"
    return f"[{index}{suffix}]"


def validate_poi(
    data: Any,
    index: Optional[int] = None,
) -> Tuple[Optional[CanonicalPoi], List[Diagnostic]]:
    """
    Validate a (repaired) record against the canonical schema.

    Args:
        data: Record dict with camelCase keys.
        index: Position of the record in its source file, used in diagnostics.

    Returns:
        (model, []) on success, (None, diagnostics) on failure.
    """
    try:
        return CanonicalPoi.model_validate(data), []
    except ValidationError as e:
        diagnostics = []
        for error in e.errors():
            loc = list(error.get("loc", ()))
            path = [index, *loc] if index is not None else loc
            diagnostics.append(Diagnostic(
                path=format_issue_path(path),
                field=str(loc[0]) if loc else "",
                message=error.get("msg", "invalid value"),
            ))
        return None, diagnostics
