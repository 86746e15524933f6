"""
Geo math helpers.

Haversine great-circle distance on a spherical Earth. Pure functions; callers
validate coordinates first (behavior for out-of-range input is undefined).
"""

import math
from typing import Iterable, Tuple

EARTH_RADIUS_KM = 6371.0

# (latitude, longitude) in degrees
LatLng = Tuple[float, float]


def to_radians(degrees: float) -> float:
    return degrees * (math.pi / 180)


def haversine_km(p1: LatLng, p2: LatLng) -> float:
    """Great-circle distance between two (lat, lng) points in kilometers."""
    lat1, lng1 = p1
    lat2, lng2 = p2

    lat1_rad = to_radians(lat1)
    lat2_rad = to_radians(lat2)
    delta_lat = to_radians(lat2 - lat1)
    delta_lng = to_radians(lng2 - lng1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def haversine_m(p1: LatLng, p2: LatLng) -> float:
    """Great-circle distance in meters."""
    return haversine_km(p1, p2) * 1000


def path_length_km(points: Iterable[LatLng]) -> float:
    """Total length of a polyline, summing consecutive haversine segments."""
    total = 0.0
    previous = None
    for point in points:
        if previous is not None:
            total += haversine_km(previous, point)
        previous = point
    return total
