"""
Merge orchestrator: one pass over every dataset root.

For each country file, records are folded through an EntityResolver in
authority order:
  1. the existing country file (seeds the index),
  2. city-file records carrying that country code,
  3. curated best-of entries for that country.
The result is written back to the country file, and a stats line is
printed per country plus a grand total.

Geocoding is optional. When a GeocodingClient is supplied, records
missing an address or city are reverse-geocoded, and curated entries
without coordinates are forward-geocoded.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from config import DEDUPE_DISTANCE_KM, HOUSE_NUMBER_FIRST_COUNTRIES, PROJECT_ROOT
from poi_pipeline.datasets import (
    BestOfConfig,
    DatasetError,
    DatasetFailure,
    NoDatasetsFound,
    bestof_candidate_paths,
    country_and_city_files,
    find_dataset_roots,
    load_bestof_config,
    load_json_array,
    write_json_array,
)
from poi_pipeline.geocoding import GeocodingClient, build_address, build_city
from poi_pipeline.normalizer import (
    NormalizationProfile,
    canonical_city,
    profile_for_country,
    slugify,
)
from poi_pipeline.resolver import EntityResolver, UpsertOutcome
from poi_pipeline.sanitizer import (
    SanitizeDefaults,
    defaults_for_file,
    is_placeholder_address,
    is_placeholder_city,
    sanitize,
)
from poi_pipeline.schema import CanonicalPoi, is_country_code, normalize_city_id, normalize_country_code
from poi_pipeline.utils.geo_utils import is_valid_coord, to_finite_float

logger = logging.getLogger(__name__)

STATS_COLUMNS = [
    "country_code",
    "before",
    "city",
    "bestof",
    "added",
    "deduped",
    "enriched",
    "invalid",
    "skipped",
    "after",
    "changed",
    "path",
]

# Curated entry keys that are not copied onto the record
_BESTOF_CONTROL_KEYS = {"query"}


@dataclass
class RunStats:
    """Counters for one country file. Observational only."""
    country_code: str
    path: Optional[Path] = None
    before: int = 0  # valid records loaded from the country file
    city: int = 0  # city-file records for this country
    bestof: int = 0  # curated entries for this country
    added: int = 0
    deduped: int = 0  # duplicates absorbed (merged or rejected)
    enriched: int = 0  # duplicates that filled gaps in a retained record
    invalid: int = 0  # records dropped by the sanitizer
    skipped: int = 0  # curated entries without usable coordinates
    after: int = 0
    changed: bool = False

    def line(self) -> str:
        return (
            f"{self.country_code}: before={self.before} city={self.city} bestof={self.bestof} "
            f"added={self.added} deduped={self.deduped} after={self.after} "
            f"enriched={self.enriched} invalid={self.invalid} skipped={self.skipped}"
        )

    def count(self, outcome: UpsertOutcome, from_country_file: bool = False) -> None:
        if outcome is UpsertOutcome.ACCEPTED:
            if not from_country_file:
                self.added += 1
            return
        self.deduped += 1
        if outcome is UpsertOutcome.MERGED:
            self.enriched += 1

    def to_dict(self) -> Dict[str, Any]:
        row = asdict(self)
        row["path"] = str(self.path) if self.path else ""
        return row


@dataclass
class RunReport:
    """Everything a run did, for printing and for the CSV report."""
    roots: List[Path] = field(default_factory=list)
    stats: List[RunStats] = field(default_factory=list)
    failures: List[DatasetFailure] = field(default_factory=list)
    bestof_path: Optional[Path] = None
    geocode_requests: int = 0
    geocode_cache_hits: int = 0

    def totals(self) -> Dict[str, int]:
        keys = ("before", "city", "bestof", "added", "deduped", "enriched", "invalid", "skipped", "after")
        totals = {"countries": len(self.stats)}
        for key in keys:
            totals[key] = sum(getattr(s, key) for s in self.stats)
        return totals

    def totals_line(self) -> str:
        t = self.totals()
        return (
            f"TOTAL: countries={t['countries']} before={t['before']} city={t['city']} "
            f"bestof={t['bestof']} added={t['added']} deduped={t['deduped']} after={t['after']}"
        )

    @property
    def exit_code(self) -> int:
        """Non-zero if any dataset failed to load or write."""
        return 1 if self.failures else 0

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([s.to_dict() for s in self.stats], columns=STATS_COLUMNS)

    def save_csv(self, path: Path) -> Path:
        """Save per-country stats to CSV."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        df = self.to_dataframe()
        df.to_csv(path, index=False)
        logger.info(f"Saved stats for {len(df)} countries to {path}")
        return path


@dataclass
class _CityEntry:
    raw: Any
    defaults: SanitizeDefaults
    path: Path
    index: int


class MergeOrchestrator:
    """Runs the merge over every dataset root under a search root."""

    def __init__(
        self,
        search_root: Path = PROJECT_ROOT,
        geocoder: Optional[GeocodingClient] = None,
        bestof_config: Optional[BestOfConfig] = None,
        bestof_paths: Optional[Iterable[Path]] = None,
        dedupe_distance_km: float = DEDUPE_DISTANCE_KM,
        dry_run: bool = False,
    ):
        """
        Args:
            search_root: Directory to search for dataset roots.
            geocoder: Geocoding client, or None to run offline.
            bestof_config: Curated entries keyed by country code. Takes
                precedence over bestof_paths.
            bestof_paths: Candidate best-of files; defaults to the
                conventional locations inside each root and the project.
            dedupe_distance_km: Proximity radius for duplicates.
            dry_run: Compute everything but do not write country files.
        """
        self.search_root = Path(search_root)
        self.geocoder = geocoder
        self.bestof_config = bestof_config
        self.bestof_paths = list(bestof_paths) if bestof_paths is not None else None
        self.dedupe_distance_km = dedupe_distance_km
        self.dry_run = dry_run

    def run(self) -> RunReport:
        """
        Process every dataset root.

        Raises:
            NoDatasetsFound: If no dataset root exists.
        """
        report = RunReport()
        roots = find_dataset_roots(self.search_root)
        if not roots:
            raise NoDatasetsFound(self.search_root)
        report.roots = roots
        logger.info(f"Found {len(roots)} dataset root(s): {', '.join(str(r) for r in roots)}")

        bestof = self._resolve_bestof(roots, report)

        try:
            for root in roots:
                self._process_root(root, bestof, report)
        finally:
            if self.geocoder is not None:
                self.geocoder.close()
                report.geocode_requests = self.geocoder.request_count
                report.geocode_cache_hits = self.geocoder.cache_hits

        print(report.totals_line())
        return report

    def _resolve_bestof(self, roots: List[Path], report: RunReport) -> BestOfConfig:
        if self.bestof_config is not None:
            return {str(k).strip().upper(): v for k, v in self.bestof_config.items()}
        paths = self.bestof_paths
        if paths is None:
            paths = bestof_candidate_paths(roots, self.search_root)
        config, path = load_bestof_config(paths)
        report.bestof_path = path
        if config is None:
            logger.info("No best-of config found")
            return {}
        return config

    def _process_root(self, root: Path, bestof: BestOfConfig, report: RunReport) -> None:
        layout = country_and_city_files(root)
        logger.info(
            f"{root}: {len(layout.countries)} country files, {len(layout.cities)} city files"
        )

        city_entries = self._load_city_entries(layout.cities, report)

        for country_file in layout.countries:
            country_code = normalize_country_code(country_file.stem)
            if not is_country_code(country_code):
                logger.warning(f"Skipping {country_file}: file name is not a country code")
                continue
            try:
                stats = self.merge_country(
                    country_file,
                    country_code,
                    city_entries.pop(country_code, []),
                    bestof.get(country_code, []),
                )
            except DatasetError as e:
                logger.error(f"Failed to merge {country_file}: {e.message}")
                report.failures.append(DatasetFailure(country_file, e.message))
                continue
            report.stats.append(stats)
            print(stats.line())

        for country_code, entries in sorted(city_entries.items()):
            logger.warning(
                f"{len(entries)} city records for {country_code} have no country file in {root}, ignored"
            )

    def _load_city_entries(
        self, city_files: List[Path], report: RunReport
    ) -> Dict[str, List[_CityEntry]]:
        """Load city files and group their records by country code."""
        by_country: Dict[str, List[_CityEntry]] = {}
        for path in city_files:
            try:
                records = load_json_array(path)
            except DatasetError as e:
                logger.error(f"Failed to load city file {e}")
                report.failures.append(DatasetFailure(path, e.message))
                continue

            defaults = defaults_for_file(path, "cities", records)
            missing = 0
            for index, raw in enumerate(records):
                own = raw.get("countryCode") if isinstance(raw, dict) else None
                code = normalize_country_code(own if isinstance(own, str) else None)
                code = code or defaults.default_country_code
                if not code:
                    missing += 1
                    continue
                by_country.setdefault(code, []).append(_CityEntry(raw, defaults, path, index))

            if missing:
                logger.warning(f"{path}: {missing} records without a country code, skipped")
        return by_country

    def merge_country(
        self,
        country_file: Path,
        country_code: str,
        city_entries: List[_CityEntry],
        bestof_entries: List[Any],
    ) -> RunStats:
        """
        Merge one country file with its city records and curated entries.

        Raises:
            DatasetError: If the country file cannot be read or written.
        """
        raw_records = load_json_array(country_file)
        profile = profile_for_country(country_code)
        resolver = EntityResolver(profile, self.dedupe_distance_km)
        stats = RunStats(
            country_code=country_code,
            path=country_file,
            city=len(city_entries),
            bestof=len(bestof_entries),
        )
        cc = country_code.lower()

        # 1. Existing country file
        defaults = defaults_for_file(country_file, "countries", raw_records)
        for index, raw in enumerate(raw_records):
            if isinstance(raw, dict) and not _has_text(raw.get("id")):
                raw = {**raw, "id": f"country-{cc}-{_slug(raw.get('name'), profile)}"}
            poi = self._prepare(raw, defaults, country_code, profile, country_file.name, index, stats)
            if poi is None:
                continue
            stats.before += 1
            stats.count(resolver.upsert(poi), from_country_file=True)

        # 2. City files
        for entry in city_entries:
            raw = entry.raw
            if isinstance(raw, dict):
                city_name = _text(raw.get("city")) or entry.defaults.default_city_id or "city"
                raw = {**raw, "id": f"country-{cc}-{_slug(city_name, profile, 'city')}-{_slug(raw.get('name'), profile)}"}
            poi = self._prepare(raw, entry.defaults, country_code, profile, entry.path.name, entry.index, stats)
            if poi is not None:
                stats.count(resolver.upsert(poi))

        # 3. Curated best-of entries
        for index, entry in enumerate(bestof_entries):
            raw = self._bestof_record(entry, country_code, profile, stats)
            if raw is None:
                continue
            poi = self._prepare(raw, SanitizeDefaults(country_code), country_code, profile, "bestof", index, stats)
            if poi is not None:
                stats.count(resolver.upsert(poi))

        records = []
        for poi in resolver.records:
            poi.country_code = country_code
            poi.source = "static"
            records.append(poi.to_record())
        stats.after = len(records)
        stats.changed = write_json_array(country_file, records, dry_run=self.dry_run)
        return stats

    def _prepare(
        self,
        raw: Any,
        defaults: SanitizeDefaults,
        country_code: str,
        profile: NormalizationProfile,
        label: str,
        index: int,
        stats: RunStats,
    ) -> Optional[CanonicalPoi]:
        """Enrich (if geocoding is on) and sanitize one record."""
        if isinstance(raw, dict) and self.geocoder is not None:
            raw = self._reverse_enrich(raw, country_code, profile)

        poi, diagnostics = sanitize(raw, defaults, index)
        for diagnostic in diagnostics:
            if diagnostic.is_error:
                logger.warning(f"{label}{diagnostic}")
            else:
                logger.debug(f"{label}{diagnostic}")
        if poi is None:
            stats.invalid += 1
            return None

        poi.country_code = country_code
        return poi

    def _reverse_enrich(
        self, raw: Dict[str, Any], country_code: str, profile: NormalizationProfile
    ) -> Dict[str, Any]:
        """Fill a missing or placeholder address/city from a reverse lookup."""
        city = _text(raw.get("city"))
        address = _text(raw.get("address"))
        needs_address = is_placeholder_address(address)
        needs_city = is_placeholder_city(city)
        if not (needs_address or needs_city):
            return raw
        lat, lon = raw.get("lat"), raw.get("lon")
        if isinstance(lat, str) or isinstance(lon, str) or not is_valid_coord(lat, lon):
            return raw

        result = self.geocoder.reverse_geocode(float(raw["lat"]), float(raw["lon"]))
        if result is None:
            return raw

        enriched = dict(raw)
        if needs_address:
            found = build_address(result, house_number_first=country_code in HOUSE_NUMBER_FIRST_COUNTRIES)
            if found:
                enriched["address"] = found
        if needs_city:
            found = build_city(result)
            if found:
                enriched["city"] = canonical_city(found, profile)
        return enriched

    def _bestof_record(
        self,
        entry: Any,
        country_code: str,
        profile: NormalizationProfile,
        stats: RunStats,
    ) -> Optional[Dict[str, Any]]:
        """
        Turn a curated entry into a raw record with coordinates.

        Explicit lat/lon win; otherwise the entry's `query` (or
        "name, address, city, CC") is forward-geocoded. Entries that end up
        without usable coordinates are skipped.
        """
        if not isinstance(entry, dict):
            logger.warning(f"{country_code}: curated entry is not an object, skipped")
            stats.invalid += 1
            return None

        name = _text(entry.get("name"))
        category = _text(entry.get("category"))
        if not name or not category:
            logger.warning(f"{country_code}: curated entry without name or category, skipped")
            stats.invalid += 1
            return None

        lat = to_finite_float(entry.get("lat"))
        lon = to_finite_float(entry.get("lon"))
        address = _text(entry.get("address"))
        city = _text(entry.get("city"))

        if (lat is None or lon is None) and self.geocoder is not None:
            query = _text(entry.get("query")) or ", ".join(
                part for part in (name, address, city, country_code) if part
            )
            result = self.geocoder.forward_geocode(query, country_code)
            if result is not None and result.coords is not None:
                lat, lon = result.coords
                address = address or build_address(
                    result, house_number_first=country_code in HOUSE_NUMBER_FIRST_COUNTRIES
                )
                city = city or canonical_city(build_city(result) or "", profile) or None

        if lat is None or lon is None:
            logger.info(f"{country_code}: skipping curated '{name}', no usable coordinates")
            stats.skipped += 1
            return None

        record = {k: v for k, v in entry.items() if k not in _BESTOF_CONTROL_KEYS}
        city_slug = _slug(city or normalize_city_id(_text(entry.get("cityId"))), profile, "city")
        record.update({
            "id": f"country-{country_code.lower()}-{city_slug}-{_slug(name, profile)}",
            "name": name,
            "category": category,
            "lat": lat,
            "lon": lon,
            "countryCode": country_code,
        })
        if city:
            record["city"] = city
        if address:
            record["address"] = address
        return record


def _text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _has_text(value: Any) -> bool:
    return _text(value) is not None


def _slug(value: Any, profile: NormalizationProfile, fallback: str = "poi") -> str:
    text = _text(value)
    return (slugify(text, profile) if text else "") or fallback
