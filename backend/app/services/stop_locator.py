"""
Next-stop lookup.

The next stop is the closest stop on the route that is still more than the
arrival floor away. A stop inside the floor counts as "arrived" and is not a
candidate, which keeps the answer from flapping while the bus dwells there.
"""

from typing import Optional, Sequence

from backend.app.core.config import settings
from backend.app.services.geo import LatLng, haversine_m


def find_next_stop(stops: Sequence, position: LatLng, floor_meters: Optional[float] = None):
    """
    Pick the next stop for a bus at ``position``.

    Args:
        stops: Stop-like objects with ``latitude``, ``longitude`` and ``stop_order``
        position: Current (lat, lng)
        floor_meters: Arrival floor; defaults to settings.arrival_floor_meters

    Returns:
        The chosen stop, or None when the route has no stops or every stop
        is within the floor.

    Exactly equal distances resolve to the lowest stop_order: stops are
    scanned in order and only a strictly closer stop replaces the candidate.
    """
    floor = settings.arrival_floor_meters if floor_meters is None else floor_meters

    next_stop = None
    min_distance = float("inf")

    for stop in sorted(stops, key=lambda s: s.stop_order):
        distance = haversine_m(position, (stop.latitude, stop.longitude))
        if distance <= floor:
            continue
        if distance < min_distance:
            min_distance = distance
            next_stop = stop

    return next_stop
