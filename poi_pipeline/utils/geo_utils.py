"""
Geographic utility functions.

Distance calculations and coordinate checks.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Tuple

Coord = Tuple[float, float]  # (lat, lon)

EARTH_RADIUS_KM = 6371.0


def haversine_km(coord1: Coord, coord2: Coord) -> float:
    """
    Calculate the great-circle distance between two points in kilometers.

    Args:
        coord1: (lat, lon) in degrees.
        coord2: (lat, lon) in degrees.

    Returns:
        Distance in kilometers.
    """
    lat1, lon1 = math.radians(coord1[0]), math.radians(coord1[1])
    lat2, lon2 = math.radians(coord2[0]), math.radians(coord2[1])

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Clamp guards against rounding pushing a above 1 for antipodal points
    c = 2 * math.asin(min(1.0, math.sqrt(a)))

    return EARTH_RADIUS_KM * c


def to_finite_float(value: Any) -> Optional[float]:
    """Return value as a finite float, or None for anything else (bools included)."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def is_valid_coord(lat: Any, lon: Any) -> bool:
    """True if lat/lon are finite numbers inside the WGS84 ranges."""
    lat_f = to_finite_float(lat)
    lon_f = to_finite_float(lon)
    if lat_f is None or lon_f is None:
        return False
    return abs(lat_f) <= 90 and abs(lon_f) <= 180
