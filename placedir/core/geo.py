from __future__ import annotations

import math

from .entities import GeoPoint

EARTH_RADIUS_M = 6_371_008.8

LngRange = tuple[float, float]


def distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle (haversine) distance in meters."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def bounding_box(center: GeoPoint, radius_m: float) -> tuple[float, float, list[LngRange]]:
    """
    Lat bounds and lng ranges enclosing the spherical cap of ``radius_m`` around ``center``.

    Returns two lng ranges when the box crosses the antimeridian and the whole
    [-180, 180] range when the cap reaches a pole.
    """
    ang = radius_m / EARTH_RADIUS_M
    dlat = math.degrees(ang)
    min_lat = center.lat - dlat
    max_lat = center.lat + dlat
    if min_lat <= -90.0 or max_lat >= 90.0 or ang >= math.pi / 2:
        return max(min_lat, -90.0), min(max_lat, 90.0), [(-180.0, 180.0)]

    ratio = math.sin(ang) / math.cos(math.radians(center.lat))
    if ratio >= 1.0:
        return min_lat, max_lat, [(-180.0, 180.0)]
    dlng = math.degrees(math.asin(ratio))

    lo, hi = center.lng - dlng, center.lng + dlng
    if lo < -180.0:
        return min_lat, max_lat, [(lo + 360.0, 180.0), (-180.0, hi)]
    if hi > 180.0:
        return min_lat, max_lat, [(lo, 180.0), (-180.0, hi - 360.0)]
    return min_lat, max_lat, [(lo, hi)]


def valid_point(lng: float, lat: float) -> bool:
    return -180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0
