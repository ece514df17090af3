from __future__ import annotations

import math

import pytest

from parking_scraper.geo import haversine_distance, parse_coordinate, within_bounds
from parking_scraper.models import Bounds

MELBOURNE = (-37.8136, 144.9631)
SYDNEY = (-33.8688, 151.2093)


def test_distance_to_self_is_zero() -> None:
    assert haversine_distance(*MELBOURNE, *MELBOURNE) == 0


def test_distance_is_symmetric() -> None:
    there = haversine_distance(*MELBOURNE, *SYDNEY)
    back = haversine_distance(*SYDNEY, *MELBOURNE)

    assert there == pytest.approx(back)


def test_melbourne_to_sydney_is_about_714_km() -> None:
    assert haversine_distance(*MELBOURNE, *SYDNEY) == pytest.approx(713_800, rel=0.01)


def test_parse_coordinate_returns_nan_for_garbage() -> None:
    assert math.isnan(parse_coordinate("north-ish"))
    assert math.isnan(parse_coordinate(None))
    assert parse_coordinate(" -37.81 ") == -37.81


def test_parse_coordinate_rejects_infinities() -> None:
    assert math.isnan(parse_coordinate("Infinity"))
    assert math.isnan(parse_coordinate("-inf"))
    assert math.isnan(parse_coordinate("1e999"))


def test_within_bounds_excludes_edges() -> None:
    bounds = Bounds(min_lat=-38.0, max_lat=-37.0, min_lon=144.0, max_lon=145.0)

    assert within_bounds(-37.5, 144.5, bounds)
    assert not within_bounds(-38.0, 144.5, bounds)
    assert not within_bounds(-37.5, 145.0, bounds)
    assert not within_bounds(math.nan, 144.5, bounds)
