"""
File-based JSON cache for geocoding responses.

A single flat JSON object maps composite string keys to a cached result
or to null (a negative entry recording that the lookup found nothing).
The whole file is loaded once per run and written back when dirty, so a
repeated run over the same inputs makes no network calls. Entries are
only ever added, never pruned.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from config import NOMINATIM_CACHE_PATH

logger = logging.getLogger(__name__)


def normalize_query(query: str) -> str:
    """Collapse whitespace and lowercase a free-text query for use in a key."""
    return " ".join(query.split()).lower()


def make_forward_key(query: str, country_scope: str) -> str:
    """Cache key for a forward lookup, scoped by country code."""
    return f"search:{country_scope.strip().upper()}:{normalize_query(query)}"


def make_location_key(lat: float, lon: float, precision: int = 5) -> str:
    """
    Cache key for a reverse lookup from coordinates rounded to `precision` decimals.

    Five decimals (~1m) matches the precision the datasets are stored at, so
    re-runs over unchanged coordinates always hit the same entry.
    """
    return f"reverse:{lat:.{precision}f},{lon:.{precision}f}"


class GeocodeCache:
    """Flat JSON file cache with negative entries."""

    def __init__(self, path: Path = NOMINATIM_CACHE_PATH, autoload: bool = True):
        """
        Args:
            path: Location of the JSON cache file.
            autoload: Read the file immediately if it exists.
        """
        self.path = Path(path)
        self._entries: Dict[str, Optional[Dict[str, Any]]] = {}
        self._dirty = False
        self._pending = 0
        if autoload:
            self.load()

    def load(self) -> int:
        """
        Load entries from disk. A missing file yields an empty cache; a
        corrupt one is logged and ignored (it is overwritten on the next save).

        Returns:
            Number of entries loaded.
        """
        if not self.path.exists():
            logger.debug(f"No geocode cache at {self.path}")
            return 0

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning(f"Corrupt geocode cache {self.path}: {e}")
            return 0

        if not isinstance(data, dict):
            logger.warning(f"Geocode cache {self.path} is not a JSON object, ignoring it")
            return 0

        self._entries = {
            str(key): value if isinstance(value, dict) else None
            for key, value in data.items()
        }
        logger.info(f"Loaded {len(self._entries)} geocode cache entries from {self.path}")
        return len(self._entries)

    def has(self, key: str) -> bool:
        """True if the key is cached, including negative entries."""
        return key in self._entries

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Cached value, or None for both negative entries and misses (see `has`)."""
        value = self._entries.get(key)
        if key in self._entries:
            logger.debug(f"Cache hit for key {key}")
        return value

    def set(self, key: str, value: Optional[Dict[str, Any]]) -> None:
        """Store a result, or None as a negative entry."""
        self._entries[key] = value
        self._dirty = True
        self._pending += 1
        logger.debug(f"Cached {'negative ' if value is None else ''}entry for key {key}")

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def pending(self) -> int:
        """Entries added since the last save."""
        return self._pending

    def save(self) -> bool:
        """
        Write the cache to disk if anything changed.

        Returns:
            True if the file was written.
        """
        if not self._dirty:
            return False

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._entries, f, indent=2, sort_keys=True, ensure_ascii=False)
            f.write("\n")

        logger.info(f"Saved {len(self._entries)} geocode cache entries to {self.path}")
        self._dirty = False
        self._pending = 0
        return True

    @property
    def size(self) -> int:
        """Number of cache entries."""
        return len(self._entries)
