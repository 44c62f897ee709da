"""Distance, bearing and compass calculations.

Haversine on a spherical Earth is accurate enough for cycling
(< 0.5% error at typical distances) and needs no geodesy dependency.
"""

from __future__ import annotations
import math
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from ride_telemetry.models import LocationSample

# Earth's mean radius in meters
EARTH_RADIUS_M = 6_371_000

# Sector labels, clockwise from north; each sector is 45° wide
COMPASS_OCTANTS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points using Haversine formula.

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    # Rounding can push a fractionally above 1 for antipodal points
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return EARTH_RADIUS_M * c


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate initial bearing from point 1 to point 2.

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Bearing in degrees (0-360, where 0=North, 90=East)
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlon = math.radians(lon2 - lon1)

    x = math.sin(dlon) * math.cos(lat2_rad)
    y = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(dlon)

    bearing = math.degrees(math.atan2(x, y))
    bearing = (bearing + 360) % 360
    # (-tiny + 360) % 360 can round to exactly 360.0
    return 0.0 if bearing >= 360 else bearing


def compass_octant(bearing: float) -> str:
    """Map a bearing in degrees to one of 8 compass labels.

    Sectors are centered on N, NE, E, ... and span [center - 22.5, center + 22.5),
    so a bearing of exactly 22.5 is NE and exactly 337.5 is N.
    """
    normalized = bearing % 360
    index = int((normalized + 22.5) // 45) % 8
    return COMPASS_OCTANTS[index]


def distance_between(a: LocationSample, b: LocationSample) -> float:
    """Haversine distance in meters between two points with lat/lon."""
    return haversine_distance(a.lat, a.lon, b.lat, b.lon)


def bearing_between(a: LocationSample, b: LocationSample) -> float:
    """Initial bearing in degrees from point a to point b."""
    return calculate_bearing(a.lat, a.lon, b.lat, b.lon)


def nearest_point_index(points: Sequence[LocationSample], position: LocationSample) -> tuple[int, float] | None:
    """Find the route point closest to a position.

    Linear scan; routes are tens to low hundreds of points. Ties resolve to
    the earliest point in route order.

    Returns:
        (index, distance in meters), or None if points is empty.
    """
    best_index = -1
    best_dist = math.inf
    for i, pt in enumerate(points):
        d = distance_between(position, pt)
        if d < best_dist:
            best_index = i
            best_dist = d

    if best_index < 0:
        return None
    return best_index, best_dist
