import math

import pytest

from placedir.core.entities import GeoPoint
from placedir.core.geo import EARTH_RADIUS_M, bounding_box, distance_m


def test_distance_one_degree_of_latitude():
    d = distance_m(GeoPoint(lng=0, lat=0), GeoPoint(lng=0, lat=1))
    assert d == pytest.approx(math.radians(1) * EARTH_RADIUS_M, rel=1e-9)


def test_distance_is_symmetric_and_zero_on_same_point():
    a, b = GeoPoint(lng=29.9, lat=31.2), GeoPoint(lng=31.2, lat=30.0)
    assert distance_m(a, a) == 0
    assert distance_m(a, b) == pytest.approx(distance_m(b, a))


def test_bounding_box_contains_radius():
    center = GeoPoint(lng=29.9, lat=31.2)
    min_lat, max_lat, ranges = bounding_box(center, 10_000)
    assert min_lat < center.lat < max_lat
    assert len(ranges) == 1
    lo, hi = ranges[0]
    assert lo < center.lng < hi


def test_bounding_box_splits_across_antimeridian():
    _, _, ranges = bounding_box(GeoPoint(lng=179.99, lat=0), 10_000)
    assert len(ranges) == 2
    assert ranges[0][1] == 180.0
    assert ranges[1][0] == -180.0


def test_bounding_box_near_pole_covers_all_longitudes():
    _, max_lat, ranges = bounding_box(GeoPoint(lng=10, lat=89.95), 20_000)
    assert max_lat == 90.0
    assert ranges == [(-180.0, 180.0)]
