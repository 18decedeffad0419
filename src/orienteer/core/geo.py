from __future__ import annotations

from dataclasses import dataclass
from math import asin, atan2, cos, degrees, radians, sin, sqrt

"""
Geospatial helpers.

We keep a tiny spherical geometry layer here so the proximity and check-in code can
do distance calculations without pulling in heavier GIS dependencies.
"""

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class GeoPoint:
    """A position sample or waypoint location in decimal degrees.

    `accuracy` is the horizontal accuracy radius reported by the location source
    (meters, 0 when unknown). Neither it nor `altitude` affects distance.
    """

    latitude: float
    longitude: float
    altitude: float = 0.0
    accuracy: float = 0.0


def distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle (haversine) distance in meters between two points."""
    lat1 = radians(a.latitude)
    lon1 = radians(a.longitude)
    lat2 = radians(b.latitude)
    lon2 = radians(b.longitude)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair past 1 for antipodal points.
    return 2 * EARTH_RADIUS_M * asin(sqrt(min(1.0, h)))


def within_radius(a: GeoPoint, b: GeoPoint, radius_m: float) -> bool:
    """True when `a` and `b` are at most `radius_m` meters apart (inclusive)."""
    return distance_m(a, b) <= radius_m


def bearing_deg(a: GeoPoint, b: GeoPoint) -> float:
    """Initial great-circle bearing from `a` to `b`, degrees clockwise from north in [0, 360)."""
    lat1 = radians(a.latitude)
    lat2 = radians(b.latitude)
    dlon = radians(b.longitude - a.longitude)
    y = sin(dlon) * cos(lat2)
    x = cos(lat1) * sin(lat2) - sin(lat1) * cos(lat2) * cos(dlon)
    return (degrees(atan2(y, x)) + 360.0) % 360.0


def destination_point(origin: GeoPoint, bearing: float, distance: float) -> GeoPoint:
    """Return the point `distance` meters from `origin` along initial `bearing` (degrees)."""
    delta = distance / EARTH_RADIUS_M
    theta = radians(bearing)
    lat1 = radians(origin.latitude)
    lon1 = radians(origin.longitude)

    lat2 = asin(sin(lat1) * cos(delta) + cos(lat1) * sin(delta) * cos(theta))
    lon2 = lon1 + atan2(
        sin(theta) * sin(delta) * cos(lat1),
        cos(delta) - sin(lat1) * sin(lat2),
    )
    lon2_deg = (degrees(lon2) + 540.0) % 360.0 - 180.0
    return GeoPoint(latitude=degrees(lat2), longitude=lon2_deg, altitude=origin.altitude)


def format_distance(meters: float | None) -> str:
    """Human display for a distance: `12 m` below a kilometer, `1.2 km` above."""
    if meters is None:
        return "--"
    if meters < 1000:
        return f"{int(round(meters))} m"
    return f"{meters / 1000:.1f} km"
