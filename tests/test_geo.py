"""Coordinate validation, bounding boxes and distance tests."""

import math

import pytest

from rescue_engine.core.errors import ValidationError
from rescue_engine.services.geo_service import Bounds, haversine_km, validate_coordinates


def test_haversine_known_distance():
    """Mar del Plata to Buenos Aires is roughly 385 km."""
    d = haversine_km(-38.0055, -57.5426, -34.6037, -58.3816)
    assert 370 < d < 400


def test_haversine_same_point_is_zero():
    assert haversine_km(10.0, 20.0, 10.0, 20.0) == 0


@pytest.mark.parametrize("lat,lng", [(-90, -180), (90, 180), (0, 0), (-38.0055, -57.5426)])
def test_validate_coordinates_accepts_edges(lat, lng):
    assert validate_coordinates(lat, lng) == (float(lat), float(lng))


@pytest.mark.parametrize(
    "lat,lng,field",
    [
        (90.0001, 0, "latitude"),
        (0, -180.5, "longitude"),
        (math.nan, 0, "latitude"),
        (0, math.inf, "longitude"),
        ("12", 0, "latitude"),
        (True, 0, "latitude"),
    ],
)
def test_validate_coordinates_rejects(lat, lng, field):
    with pytest.raises(ValidationError) as exc:
        validate_coordinates(lat, lng)
    assert exc.value.field == field


def test_bounds_all_or_none():
    assert Bounds.from_values(None, None, None, None) == Bounds.world()
    with pytest.raises(ValidationError):
        Bounds.from_values(-39, None, -58, -57)


def test_bounds_clamps_wrapped_longitudes():
    b = Bounds.from_values(-10, 10, -250, 300)
    assert (b.min_lng, b.max_lng) == (-180.0, 180.0)


def test_bounds_rejects_inverted_box():
    with pytest.raises(ValidationError) as exc:
        Bounds.from_values(10, -10, 0, 1)
    assert exc.value.field == "minLat"


def test_bounds_contains_is_inclusive():
    b = Bounds.from_values(-39, -37, -58, -57)
    assert b.contains(-39, -58)
    assert b.contains(-38.0055, -57.5426)
    assert not b.contains(-36.9, -57.5)
