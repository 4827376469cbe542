"""Tests for great-circle distance."""
import math

import pytest

from floodwatch.services.geo import EARTH_RADIUS_KM, distance_km

POINTS = [
    (0.0, 0.0),
    (6.9271, 79.8612),
    (-33.8688, 151.2093),
    (51.5074, -0.1278),
    (89.9, 179.9),
    (-90.0, 0.0),
]


@pytest.mark.parametrize("lat,lon", POINTS)
def test_distance_to_itself_is_zero(lat, lon):
    assert distance_km(lat, lon, lat, lon) == pytest.approx(0.0, abs=1e-9)


@pytest.mark.parametrize("a", POINTS)
@pytest.mark.parametrize("b", POINTS)
def test_distance_is_symmetric(a, b):
    forward = distance_km(a[0], a[1], b[0], b[1])
    backward = distance_km(b[0], b[1], a[0], a[1])
    assert forward == pytest.approx(backward, rel=1e-12, abs=1e-9)
    assert forward >= 0


def test_one_degree_of_longitude_at_equator():
    assert distance_km(0, 0, 0, 1) == pytest.approx(111.19, abs=0.5)


def test_antipodal_points_are_half_circumference_apart():
    assert distance_km(0, 0, 0, 180) == pytest.approx(math.pi * EARTH_RADIUS_KM, rel=1e-9)


def test_known_city_pair():
    # Colombo to Kandy, roughly 94 km as the crow flies.
    assert distance_km(6.9271, 79.8612, 7.2906, 80.6337) == pytest.approx(94, abs=3)
