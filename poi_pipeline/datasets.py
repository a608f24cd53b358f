"""
Dataset discovery and JSON file I/O.

A dataset root is a directory named `datasets` holding country files
(`countries/CH.json`) and city files (`cities/zurich.json`), or, when
those sub-directories are absent, the same files side by side told apart
by name: two-letter stems are country files, everything else is a city
file.
"""

from __future__ import annotations

import json
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config import (
    BESTOF_DIR_NAME,
    BESTOF_FILENAMES,
    BESTOF_PROJECT_PATHS,
    CITIES_DIR_NAME,
    COUNTRIES_DIR_NAME,
    DATASET_HINTS,
    DATASETS_DIR_NAME,
    IGNORED_DIRS,
    IGNORED_FILE_MARKERS,
)

logger = logging.getLogger(__name__)

_COUNTRY_FILE_RE = re.compile(r"^[A-Za-z]{2}$")

BestOfConfig = Dict[str, List[Dict[str, Any]]]


class DatasetError(Exception):
    """A dataset file could not be read or written, or has the wrong shape."""

    def __init__(self, path: Path, message: str):
        self.path = Path(path)
        self.message = message
        super().__init__(f"{path}: {message}")


class NoDatasetsFound(DatasetError):
    """No dataset root exists under the search root."""

    def __init__(self, search_root: Path):
        super().__init__(search_root, f"no '{DATASETS_DIR_NAME}' folder found")


@dataclass
class DatasetFailure:
    """A dataset file that could not be processed."""
    path: Path
    error: str


@dataclass
class DatasetLayout:
    """Country and city files of one dataset root."""
    root: Path
    countries: List[Path] = field(default_factory=list)
    cities: List[Path] = field(default_factory=list)


def find_dataset_roots(search_root: Path) -> List[Path]:
    """
    Locate dataset roots under `search_root`.

    Well-known locations are checked first. Only if none exists is the
    tree walked breadth-first, skipping build, dependency and VCS
    directories, collecting every directory named `datasets` (without
    descending into it).
    """
    search_root = Path(search_root)
    roots = [search_root / hint for hint in DATASET_HINTS if (search_root / hint).is_dir()]
    if roots:
        return roots

    queue = deque([search_root])
    while queue:
        current = queue.popleft()
        try:
            children = sorted(p for p in current.iterdir() if p.is_dir())
        except OSError as e:
            logger.warning(f"Cannot list {current}: {e}")
            continue
        for child in children:
            if child.name in IGNORED_DIRS:
                continue
            if child.name == DATASETS_DIR_NAME:
                roots.append(child)
                continue
            queue.append(child)

    return roots


def collect_json_files(directory: Path) -> List[Path]:
    """All .json files below `directory`, recursively, in sorted order."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.rglob("*")
        if p.is_file() and p.suffix.lower() == ".json"
    )


def is_country_file_name(path: Path) -> bool:
    """`CH.json` -> True, `zurich.json` -> False."""
    return bool(_COUNTRY_FILE_RE.match(Path(path).stem))


def should_ignore_file(path: Path) -> bool:
    """Registry, sample and global files are not datasets."""
    name = Path(path).name.lower()
    return any(marker in name for marker in IGNORED_FILE_MARKERS)


def _is_under(path: Path, directory: Path) -> bool:
    try:
        path.relative_to(directory)
        return True
    except ValueError:
        return False


def country_and_city_files(root: Path) -> DatasetLayout:
    """Split a dataset root into country files and city files."""
    root = Path(root)
    countries_dir = root / COUNTRIES_DIR_NAME
    cities_dir = root / CITIES_DIR_NAME
    bestof_dir = root / BESTOF_DIR_NAME

    # Fallback candidates: loose files outside the dedicated sub-directories
    loose = [
        p for p in collect_json_files(root)
        if not should_ignore_file(p)
        and not _is_under(p, bestof_dir)
        and not _is_under(p, countries_dir)
        and not _is_under(p, cities_dir)
    ]

    if countries_dir.is_dir():
        countries = [p for p in collect_json_files(countries_dir) if not should_ignore_file(p)]
    else:
        countries = [p for p in loose if is_country_file_name(p)]

    if cities_dir.is_dir():
        cities = [p for p in collect_json_files(cities_dir) if not should_ignore_file(p)]
    else:
        cities = [p for p in loose if not is_country_file_name(p)]

    return DatasetLayout(root=root, countries=countries, cities=cities)


def load_json(path: Path) -> Any:
    """Read and decode a JSON file, raising DatasetError on failure."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise DatasetError(path, f"invalid JSON ({e})") from e
    except (OSError, UnicodeDecodeError) as e:
        raise DatasetError(path, f"cannot read file ({e})") from e


def load_json_array(path: Path) -> List[Any]:
    data = load_json(path)
    if not isinstance(data, list):
        raise DatasetError(path, f"expected a JSON array, got {type(data).__name__}")
    return data


def load_json_object(path: Path) -> Dict[str, Any]:
    data = load_json(path)
    if not isinstance(data, dict):
        raise DatasetError(path, f"expected a JSON object, got {type(data).__name__}")
    return data


def dump_json(data: Any) -> str:
    """Pretty-printed JSON (2-space indent, UTF-8 characters kept) with a trailing newline."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def write_json_array(path: Path, records: List[Dict[str, Any]], dry_run: bool = False) -> bool:
    """
    Write records to `path` unless the file already holds exactly these bytes.

    Args:
        path: Target file.
        records: JSON-ready dicts.
        dry_run: Report whether the file would change without writing it.

    Returns:
        True if the content differs from what is on disk.
    """
    path = Path(path)
    text = dump_json(records)
    existing = None
    if path.exists():
        try:
            existing = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Cannot read {path} before writing, overwriting it: {e}")
    if existing == text:
        return False

    if dry_run:
        logger.info(f"[dry-run] Would write {len(records)} records to {path}")
        return True

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
    except OSError as e:
        raise DatasetError(path, f"cannot write file ({e})") from e

    logger.info(f"Wrote {len(records)} records to {path}")
    return True


def bestof_candidate_paths(roots: Iterable[Path], project_root: Path) -> List[Path]:
    """Where a curated best-of config may live: inside each root, then in the project."""
    paths = [Path(root) / name for root in roots for name in BESTOF_FILENAMES]
    paths.extend(Path(project_root) / p for p in BESTOF_PROJECT_PATHS)
    return paths


def load_bestof_config(paths: Iterable[Path]) -> Tuple[Optional[BestOfConfig], Optional[Path]]:
    """
    Load the first readable best-of config among `paths`.

    The config maps ISO country codes (any case) to arrays of curated
    entries. Unreadable candidates are logged and skipped; non-array
    values are dropped.

    Returns:
        (config with uppercased keys, path it came from), or (None, None).
    """
    for path in paths:
        path = Path(path)
        if not path.is_file():
            continue
        try:
            data = load_json_object(path)
        except DatasetError as e:
            logger.warning(f"Skipping best-of config {e}")
            continue

        config: BestOfConfig = {}
        for code, entries in data.items():
            if not isinstance(entries, list):
                logger.warning(f"{path}: entries for '{code}' are not an array, skipping")
                continue
            config.setdefault(str(code).strip().upper(), []).extend(entries)

        logger.info(f"Loaded best-of config for {len(config)} countries from {path}")
        return config, path

    return None, None
