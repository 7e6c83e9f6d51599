"""Geodesic helpers behind every "near me" lookup.

All distances are great-circle distances on a spherical Earth
(radius 6371 km) computed with the Haversine formula. Entities are
filtered in process: the document store only hands back candidates.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from typing import Final, TypeVar

from src.models.geo import GeoPoint, ServiceArea

EARTH_RADIUS_KM: Final[float] = 6371.0

T = TypeVar("T")


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between *a* and *b* in kilometres."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_km(a, b) * 1000


# ---------------------------------------------------------------------------
# Polygons
# ---------------------------------------------------------------------------


def _contains(ring: list[GeoPoint], point: GeoPoint) -> bool:
    """Ray-casting point-in-polygon test in lon/lat space."""
    inside = False
    x, y = point.longitude, point.latitude
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i].longitude, ring[i].latitude
        xj, yj = ring[j].longitude, ring[j].latitude
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def _segment_distance_km(point: GeoPoint, a: GeoPoint, b: GeoPoint) -> float:
    # Project onto the segment in a local equirectangular frame, then
    # measure the geodesic distance to the projected point.
    scale = math.cos(math.radians(point.latitude))
    ax, ay = a.longitude * scale, a.latitude
    bx, by = b.longitude * scale, b.latitude
    px, py = point.longitude * scale, point.latitude

    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return haversine_km(point, a)

    t = max(0.0, min(1.0, ((px - ax) * dx + (py - ay) * dy) / length_sq))
    nearest = GeoPoint(
        longitude=a.longitude + t * (b.longitude - a.longitude),
        latitude=a.latitude + t * (b.latitude - a.latitude),
    )
    return haversine_km(point, nearest)


def distance_to_area_km(point: GeoPoint, area: ServiceArea) -> float:
    """Distance from *point* to a service area.

    A point inside a polygon is at distance 0; otherwise the distance is
    measured to the nearest edge.
    """
    vertices = area.points()
    if not area.is_polygon:
        return haversine_km(point, vertices[0])

    ring = vertices[:-1] if vertices[0] == vertices[-1] else vertices
    if _contains(ring, point):
        return 0.0
    return min(
        _segment_distance_km(point, ring[i], ring[(i + 1) % len(ring)])
        for i in range(len(ring))
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def within_radius(
    items: Iterable[T],
    center: GeoPoint,
    radius_m: float,
    distance_of: Callable[[T], float | None],
) -> list[T]:
    """Items whose distance from *center* is at most *radius_m*, nearest first.

    *distance_of* returns the distance in metres, or ``None`` for an item
    without a location (such items never match).
    """
    scored: list[tuple[float, int, T]] = []
    for index, item in enumerate(items):
        distance = distance_of(item)
        if distance is not None and distance <= radius_m:
            scored.append((distance, index, item))
    scored.sort(key=lambda entry: (entry[0], entry[1]))
    return [item for _, _, item in scored]


def points_within(
    items: Iterable[T],
    center: GeoPoint,
    radius_m: float,
    location_of: Callable[[T], GeoPoint | None],
) -> list[T]:
    """Point-located variant of :func:`within_radius`."""

    def _distance(item: T) -> float | None:
        location = location_of(item)
        return haversine_m(center, location) if location is not None else None

    return within_radius(items, center, radius_m, _distance)


def within_spherical_cap(point: GeoPoint, center: GeoPoint, radius_km: float) -> bool:
    """True if *point* lies on the cap of angular radius ``radius_km / R``."""
    return haversine_km(point, center) <= radius_km
