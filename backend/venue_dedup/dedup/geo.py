"""Great-circle distance helpers."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0
_KM_PER_DEGREE_LATITUDE = 111.32


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance between two coordinates in kilometres."""

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(latitude: float, longitude: float, radius_km: float) -> tuple[float, float, float, float]:
    """Return ``(min_lat, max_lat, min_lon, max_lon)`` enclosing a radius around a point."""

    lat_delta = radius_km / _KM_PER_DEGREE_LATITUDE
    cos_lat = math.cos(math.radians(latitude))
    # Longitude degrees shrink towards the poles; clamp to a full sweep there.
    lon_delta = 180.0 if cos_lat < 1e-6 else min(180.0, radius_km / (_KM_PER_DEGREE_LATITUDE * cos_lat))
    return (latitude - lat_delta, latitude + lat_delta, longitude - lon_delta, longitude + lon_delta)
