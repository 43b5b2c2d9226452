import math

from pacemates.core.constants import EARTH_RADIUS_M
from pacemates.tracking.types import Coordinate


def segment_distance(a: Coordinate, b: Coordinate) -> float:
    """Meters between two coordinates on a sphere of radius ``EARTH_RADIUS_M``.

    Haversine in double precision. Symmetric in its arguments, and
    exactly 0.0 for identical points.
    """
    if a == b:
        return 0.0
    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c


def route_distance(route) -> float:
    """Sum of segment distances over consecutive points, left to right.

    RunSession accumulates in the same order, so for any finished route
    ``route_distance(route) == snapshot.distance_meters`` holds exactly.
    """
    total = 0.0
    prev = None
    for point in route:
        if prev is not None:
            total += segment_distance(prev, point)
        prev = point
    return total
