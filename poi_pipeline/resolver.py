"""
Entity resolution for one country's records.

The resolver is a greedy, single-pass fold over an ordered stream of
candidates: country-file records first, then city-file records, then
curated entries. Earlier sources are authoritative; a later duplicate
can only fill gaps in the record it matched, never replace data.

A candidate is the same entity as a retained record when either
  - its (normalized name, category) key is already indexed, or
  - a retained record of the same category lies closer than the dedup radius.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from config import DEDUPE_DISTANCE_KM
from poi_pipeline.normalizer import GENERIC, NormalizationProfile, build_unique_id, normalize_name
from poi_pipeline.sanitizer import is_placeholder_address, is_placeholder_city
from poi_pipeline.schema import CanonicalPoi
from poi_pipeline.utils.geo_utils import haversine_km

logger = logging.getLogger(__name__)

# Optional attributes copied onto a retained record when it has none
_OPTIONAL_FIELDS = (
    "city_id",
    "google_place_id",
    "description",
    "rating",
    "website",
    "maps_url",
    "image_url",
    "images",
    "opening_hours",
    "osm",
    "tags",
)


class UpsertOutcome(str, Enum):
    ACCEPTED = "accepted"
    MERGED = "merged"  # duplicate that filled at least one gap
    REJECTED = "rejected"  # duplicate that added nothing

    @property
    def is_duplicate(self) -> bool:
        return self is not UpsertOutcome.ACCEPTED


def _is_missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def merge_better_fields(target: CanonicalPoi, candidate: CanonicalPoi) -> bool:
    """
    Fill gaps in `target` with data from `candidate`, in place.

    Gaps are empty address/city values, the "Unknown Place" and "Unknown"
    fallbacks, unset optional fields and non-finite coordinates. Any other
    address or city on the target is kept as is.

    Returns:
        True if any field of the target changed.
    """
    changed = False

    if is_placeholder_address(target.address) and not is_placeholder_address(candidate.address):
        target.address = candidate.address
        changed = True

    if is_placeholder_city(target.city) and not is_placeholder_city(candidate.city):
        target.city = candidate.city
        changed = True

    if not math.isfinite(target.lat) and math.isfinite(candidate.lat):
        target.lat = candidate.lat
        changed = True
    if not math.isfinite(target.lon) and math.isfinite(candidate.lon):
        target.lon = candidate.lon
        changed = True

    for name in _OPTIONAL_FIELDS:
        current = getattr(target, name)
        offered = getattr(candidate, name)
        if _is_missing(current) and not _is_missing(offered):
            setattr(target, name, offered)
            changed = True

    return changed


class EntityResolver:
    """Per-country index of accepted records."""

    def __init__(
        self,
        profile: NormalizationProfile = GENERIC,
        dedupe_distance_km: float = DEDUPE_DISTANCE_KM,
        used_ids: Optional[Set[str]] = None,
    ):
        """
        Args:
            profile: Normalization profile for name keys.
            dedupe_distance_km: Same-category records closer than this are one entity.
            used_ids: IDs already taken (e.g. by records kept outside the resolver).
        """
        self.profile = profile
        self.dedupe_distance_km = dedupe_distance_km
        self._records: List[CanonicalPoi] = []
        self._key_index: Dict[Tuple[str, str], int] = {}
        self._category_slots: Dict[str, List[int]] = {}
        self._used_ids: Set[str] = set(used_ids or ())

    def match_key(self, poi: CanonicalPoi) -> Tuple[str, str]:
        return (normalize_name(poi.name, self.profile), poi.category)

    def find_nearby(self, candidate: CanonicalPoi) -> Optional[int]:
        """Slot of the first same-category record within the dedup radius, in insertion order."""
        if not candidate.has_coords:
            return None
        for slot in self._category_slots.get(candidate.category, []):
            existing = self._records[slot]
            if not existing.has_coords:
                continue
            if haversine_km(existing.coord, candidate.coord) < self.dedupe_distance_km:
                return slot
        return None

    def _merge_into(self, slot: int, candidate: CanonicalPoi) -> UpsertOutcome:
        if merge_better_fields(self._records[slot], candidate):
            return UpsertOutcome.MERGED
        return UpsertOutcome.REJECTED

    def upsert(self, candidate: CanonicalPoi) -> UpsertOutcome:
        """
        Accept, merge or reject one candidate.

        On accept, the candidate's id is used as the base for a unique id
        (suffixed -2, -3, ... if taken). IDs are only minted for accepted
        records, so rejected duplicates never consume one.
        """
        key = self.match_key(candidate)
        indexed = bool(key[0])

        if indexed and key in self._key_index:
            slot = self._key_index[key]
            logger.debug(f"'{candidate.name}' matches '{self._records[slot].name}' by name")
            return self._merge_into(slot, candidate)

        slot = self.find_nearby(candidate)
        if slot is not None:
            logger.debug(
                f"'{candidate.name}' is within {self.dedupe_distance_km} km of "
                f"'{self._records[slot].name}' ({candidate.category})"
            )
            if indexed:
                self._key_index[key] = slot
            return self._merge_into(slot, candidate)

        record = candidate.model_copy(update={"id": build_unique_id(candidate.id, self._used_ids)})
        slot = len(self._records)
        self._records.append(record)
        self._category_slots.setdefault(record.category, []).append(slot)
        if indexed:
            self._key_index[key] = slot
        return UpsertOutcome.ACCEPTED

    @property
    def records(self) -> List[CanonicalPoi]:
        """Retained records in insertion order."""
        return list(self._records)

    @property
    def used_ids(self) -> Set[str]:
        return set(self._used_ids)

    def __len__(self) -> int:
        return len(self._records)
