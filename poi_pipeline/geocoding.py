"""
Forward and reverse geocoding via OpenStreetMap Nominatim.

Geocoding is best-effort enrichment: every failure resolves to None and
the pipeline carries on without the missing address, city or coordinates.

One GeocodingClient owns the rate limiter and the cache for a whole run,
so forward and reverse lookups share a single request clock, and the
cache lifecycle (load at start, save at end) is explicit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import requests

from config import (
    CACHE_FLUSH_EVERY,
    NOMINATIM_ACCEPT_LANGUAGE,
    NOMINATIM_CACHE_PATH,
    NOMINATIM_MIN_INTERVAL,
    NOMINATIM_REVERSE_ZOOM,
    NOMINATIM_TIMEOUT,
    NOMINATIM_URL,
)
from poi_pipeline.utils.cache import GeocodeCache, make_forward_key, make_location_key
from poi_pipeline.utils.geo_utils import Coord, to_finite_float
from poi_pipeline.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# Most specific first
ADDRESS_KEYS = (
    "road",
    "pedestrian",
    "footway",
    "cycleway",
    "path",
    "square",
    "place",
    "neighbourhood",
    "suburb",
    "quarter",
    "hamlet",
    "village",
    "town",
    "city",
)
CITY_KEYS = ("city", "town", "village", "municipality", "county")


@dataclass
class GeocodeResult:
    """One geocoder match."""
    lat: Optional[float]
    lon: Optional[float]
    display_name: str = ""
    address: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["GeocodeResult"]:
        """
        Build a result from a Nominatim response or a cached entry.

        Nominatim answers with either a bare object or an array of matches;
        only the first (best ranked) match is used. Empty arrays and
        anything that is not an object mean "no result".
        """
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not isinstance(payload, dict):
            return None

        raw_address = payload.get("address")
        address: Dict[str, str] = {}
        if isinstance(raw_address, dict):
            for key, value in raw_address.items():
                if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                    text = str(value).strip()
                    if text:
                        address[str(key)] = text

        return cls(
            lat=to_finite_float(payload.get("lat")),
            lon=to_finite_float(payload.get("lon")),
            display_name=str(payload.get("display_name") or "").strip(),
            address=address,
        )

    @property
    def coords(self) -> Optional[Coord]:
        """(lat, lon) if both are finite numbers, else None."""
        if self.lat is None or self.lon is None:
            return None
        return (self.lat, self.lon)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lat": self.lat,
            "lon": self.lon,
            "display_name": self.display_name,
            "address": dict(self.address),
        }


def pick_first(mapping: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    """Value of the first key in `keys` that is present and non-empty."""
    for key in keys:
        value = mapping.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def build_address(
    result: Optional[GeocodeResult],
    house_number_first: bool = False,
) -> Optional[str]:
    """
    Short street address from a geocoder result.

    Uses the most specific address component available, with the house
    number appended ("Bahnhofstrasse 12") or, for countries that write it
    first, prepended ("12 Baker Street"). Falls back to the first segment
    of the display name.
    """
    if result is None:
        return None

    road = pick_first(result.address, ADDRESS_KEYS)
    if road:
        house_number = pick_first(result.address, ("house_number",))
        if not house_number:
            return road
        return f"{house_number} {road}" if house_number_first else f"{road} {house_number}"

    if result.display_name:
        first = result.display_name.split(",")[0].strip()
        return first or None
    return None


def build_city(result: Optional[GeocodeResult]) -> Optional[str]:
    """City-level name from a geocoder result, or None."""
    if result is None:
        return None
    return pick_first(result.address, CITY_KEYS)


class GeocodingClient:
    """Rate-limited, cached Nominatim client."""

    def __init__(
        self,
        user_agent: str,
        cache: GeocodeCache,
        min_interval: float = NOMINATIM_MIN_INTERVAL,
        base_url: str = NOMINATIM_URL,
        accept_language: str = NOMINATIM_ACCEPT_LANGUAGE,
        timeout: float = NOMINATIM_TIMEOUT,
        session: Optional[requests.Session] = None,
        limiter: Optional[RateLimiter] = None,
        flush_every: int = CACHE_FLUSH_EVERY,
    ):
        """
        Args:
            user_agent: Identifying User-Agent required by the Nominatim usage policy.
            cache: Persistent cache shared by forward and reverse lookups.
            min_interval: Minimum seconds between two HTTP requests.
            base_url: Nominatim base URL (without /search or /reverse).
            accept_language: Preferred language for names in responses.
            timeout: HTTP timeout in seconds.
            session: HTTP session (injectable for tests).
            limiter: Rate limiter (injectable for tests); built from min_interval if omitted.
            flush_every: Save the cache after this many new entries (0 disables).
        """
        if not user_agent or not user_agent.strip():
            raise ValueError("A non-empty user agent is required for Nominatim")
        self.user_agent = user_agent.strip()
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.accept_language = accept_language
        self.timeout = timeout
        self.session = session or requests.Session()
        self.limiter = limiter or RateLimiter(min_interval, name="Nominatim")
        self.flush_every = flush_every

        self.request_count = 0
        self.cache_hits = 0

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept-Language": self.accept_language,
        }

    def _request(
        self, endpoint: str, params: Dict[str, Any], label: str
    ) -> Tuple[Optional[GeocodeResult], bool]:
        """
        Perform one rate-limited request.

        Returns:
            (result or None, whether the outcome may be cached). Client
            errors are cached as negative entries; network errors, 429 and
            5xx are not, so a later run can retry.
        """
        url = f"{self.base_url}/{endpoint}"
        self.limiter.wait()
        self.request_count += 1

        try:
            response = self.session.get(url, params=params, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Nominatim {endpoint} failed for {label}: {e}")
            return None, False

        if not response.ok:
            status = response.status_code
            logger.warning(f"Nominatim {endpoint} returned HTTP {status} for {label}")
            return None, 400 <= status < 500 and status != 429

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Nominatim {endpoint} returned invalid JSON for {label}: {e}")
            return None, False

        result = GeocodeResult.from_payload(data)
        if result is None:
            logger.debug(f"Nominatim {endpoint}: no match for {label}")
        return result, True

    def _remember(self, key: str, result: Optional[GeocodeResult]) -> None:
        self.cache.set(key, result.to_dict() if result else None)
        if self.flush_every and self.cache.pending >= self.flush_every:
            self.cache.save()

    def _cached(self, key: str) -> Tuple[bool, Optional[GeocodeResult]]:
        if not self.cache.has(key):
            return False, None
        self.cache_hits += 1
        return True, GeocodeResult.from_payload(self.cache.get(key))

    def forward_geocode(self, query: str, country_scope: str = "") -> Optional[GeocodeResult]:
        """
        Look up a free-text query, restricted to one country.

        Args:
            query: e.g. "Lion Monument, Luzern, CH".
            country_scope: ISO country code limiting the search.

        Returns:
            The best match, or None.
        """
        if not query or not query.strip():
            return None

        key = make_forward_key(query, country_scope)
        hit, cached = self._cached(key)
        if hit:
            return cached

        params: Dict[str, Any] = {
            "format": "jsonv2",
            "q": query.strip(),
            "limit": 1,
            "addressdetails": 1,
        }
        if country_scope:
            params["countrycodes"] = country_scope.strip().lower()

        result, cacheable = self._request("search", params, f'"{query}"')
        if cacheable:
            self._remember(key, result)
        return result

    def reverse_geocode(
        self, lat: float, lon: float, zoom: int = NOMINATIM_REVERSE_ZOOM
    ) -> Optional[GeocodeResult]:
        """Look up the address at a coordinate."""
        key = make_location_key(lat, lon)
        hit, cached = self._cached(key)
        if hit:
            return cached

        params = {
            "format": "jsonv2",
            "lat": lat,
            "lon": lon,
            "zoom": zoom,
            "addressdetails": 1,
        }
        result, cacheable = self._request("reverse", params, f"({lat:.5f},{lon:.5f})")
        if cacheable:
            self._remember(key, result)
        return result

    def close(self) -> None:
        """Persist the cache."""
        self.cache.save()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def create_geocoding_client(
    enabled: bool,
    user_agent: str,
    cache_path: Path = NOMINATIM_CACHE_PATH,
    **kwargs: Any,
) -> Optional[GeocodingClient]:
    """
    Build the run's geocoding client, or None when geocoding is off.

    Requesting geocoding without a user agent is a configuration error
    that degrades to geocoding-disabled rather than failing the run.
    """
    if not enabled:
        return None
    if not user_agent or not user_agent.strip():
        logger.warning("Geocoding requested but NOMINATIM_USER_AGENT is missing. Geocoding disabled.")
        return None
    cache = GeocodeCache(cache_path)
    logger.info(f"Geocoding enabled ({cache.size} cached lookups)")
    return GeocodingClient(user_agent, cache, **kwargs)
