"""
Geospatial helpers: grid bucketing and great-circle distance.
"""

import math
from typing import Any, Optional, Tuple

EARTH_RADIUS_METERS = 6371000


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in meters using Haversine formula."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def geo_bucket(lat: float, lng: float, precision: int = 3) -> str:
    """
    Map a coordinate to a coarse grid cell id.

    Coordinates are rounded to `precision` decimals (3 => ~111m at the equator).
    Realtime Database keys may not contain '.', so the decimal point is written
    as ',' e.g. (1.0, 103.0) -> "1,000_103,000".
    """
    # + 0.0 folds -0.0 into 0.0 so both sides of the meridian/equator share a cell
    lat_r = round(float(lat), precision) + 0.0
    lng_r = round(float(lng), precision) + 0.0
    key = f"{lat_r:.{precision}f}_{lng_r:.{precision}f}"
    return key.replace(".", ",")


def to_coordinate(value: Any) -> Optional[float]:
    """
    Coerce a stored coordinate to float.

    Returns None for missing, boolean, non-numeric and non-finite values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coordinates_in_range(lat: float, lng: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lng <= 180


def extract_location(location: Any) -> Optional[Tuple[float, float]]:
    """
    Read (lat, lng) from a Firestore GeoPoint or a {latitude, longitude} map.
    """
    if location is None:
        return None
    if isinstance(location, dict):
        lat = location.get("latitude")
        lng = location.get("longitude")
    else:
        lat = getattr(location, "latitude", None)
        lng = getattr(location, "longitude", None)
    # Only real numbers count; strings here mean a malformed parking record
    if isinstance(lat, bool) or isinstance(lng, bool):
        return None
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    return float(lat), float(lng)
