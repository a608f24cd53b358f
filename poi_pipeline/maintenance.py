"""
Dataset maintenance: repair files in place, or validate them as they are.

`fix_*` runs every record through the sanitizer with file-name defaults
and drops the ones that cannot be repaired. `validate_*` checks records
against the schema without repairing anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Tuple

from poi_pipeline.datasets import (
    DatasetError,
    DatasetFailure,
    NoDatasetsFound,
    country_and_city_files,
    find_dataset_roots,
    load_json_array,
    write_json_array,
)
from poi_pipeline.sanitizer import defaults_for_file, sanitize_with_stats
from poi_pipeline.schema import validate_poi

logger = logging.getLogger(__name__)


@dataclass
class FixResult:
    path: Path
    total: int = 0
    fixed_city: int = 0
    fixed_address: int = 0
    removed_invalid: int = 0
    wrote: bool = False

    def line(self) -> str:
        return (
            f"{self.path} total={self.total} fixedCity={self.fixed_city} "
            f"fixedAddress={self.fixed_address} removedInvalid={self.removed_invalid}"
        )


@dataclass
class FixReport:
    results: List[FixResult] = field(default_factory=list)
    failures: List[DatasetFailure] = field(default_factory=list)

    @property
    def removed_total(self) -> int:
        return sum(r.removed_invalid for r in self.results)

    @property
    def exit_code(self) -> int:
        return 1 if self.removed_total or self.failures else 0


@dataclass
class ValidationReport:
    invalid_by_file: Dict[Path, int] = field(default_factory=dict)
    failures: List[DatasetFailure] = field(default_factory=list)

    @property
    def total_invalid(self) -> int:
        return sum(self.invalid_by_file.values())

    @property
    def exit_code(self) -> int:
        return 1 if self.total_invalid or self.failures else 0


def fix_dataset(path: Path, kind: str, dry_run: bool = False) -> FixResult:
    """
    Sanitize every record of one file in place.

    Args:
        path: Country or city dataset file.
        kind: "countries" or "cities"; selects the file-name defaults.
        dry_run: Compute the result without writing the file.

    Raises:
        DatasetError: If the file is unreadable or not a JSON array.
    """
    path = Path(path)
    data = load_json_array(path)
    defaults = defaults_for_file(path, kind, data)
    result = FixResult(path=path, total=len(data))

    sanitized = []
    for index, entry in enumerate(data):
        poi, stats, diagnostics = sanitize_with_stats(entry, defaults, index)
        if stats.fixed_city:
            result.fixed_city += 1
        if stats.fixed_address:
            result.fixed_address += 1
        if poi is None:
            result.removed_invalid += 1
            for diagnostic in diagnostics:
                if diagnostic.is_error:
                    logger.warning(f"{path} {diagnostic}")
            continue
        sanitized.append(poi.to_record())

    result.wrote = write_json_array(path, sanitized, dry_run=dry_run)
    return result


def validate_dataset(path: Path) -> int:
    """
    Check every record of one file against the schema, without repair.

    Returns:
        Number of invalid records.

    Raises:
        DatasetError: If the file is unreadable or not a JSON array.
    """
    path = Path(path)
    data = load_json_array(path)
    invalid = 0
    for index, entry in enumerate(data):
        poi, diagnostics = validate_poi(entry, index)
        if poi is not None:
            continue
        invalid += 1
        for diagnostic in diagnostics:
            logger.warning(f"{path} {diagnostic}")
    return invalid


def _dataset_files(search_root: Path) -> Iterator[Tuple[Path, str]]:
    roots = find_dataset_roots(search_root)
    if not roots:
        raise NoDatasetsFound(search_root)
    for root in roots:
        layout = country_and_city_files(root)
        for path in layout.countries:
            yield path, "countries"
        for path in layout.cities:
            yield path, "cities"


def fix_all(search_root: Path, dry_run: bool = False) -> FixReport:
    """
    Fix every country and city file under every dataset root.

    Raises:
        NoDatasetsFound: If no dataset root exists.
    """
    report = FixReport()
    for path, kind in _dataset_files(search_root):
        try:
            result = fix_dataset(path, kind, dry_run=dry_run)
        except DatasetError as e:
            logger.error(f"Cannot fix {e}")
            report.failures.append(DatasetFailure(path, e.message))
            continue
        report.results.append(result)
        print(result.line())
    return report


def validate_all(search_root: Path) -> ValidationReport:
    """
    Validate every country and city file under every dataset root.

    Raises:
        NoDatasetsFound: If no dataset root exists.
    """
    report = ValidationReport()
    for path, _ in _dataset_files(search_root):
        try:
            report.invalid_by_file[path] = validate_dataset(path)
        except DatasetError as e:
            logger.error(f"Cannot validate {e}")
            report.failures.append(DatasetFailure(path, e.message))
    return report
