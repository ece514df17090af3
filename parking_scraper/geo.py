"""Coordinate helpers."""

from __future__ import annotations

import math

from .models import Bounds

EARTH_RADIUS_M = 6_371_000.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres between two WGS-84 points."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def parse_coordinate(value: object) -> float:
    """Parse a stored coordinate, returning NaN when it is not a finite number."""

    if value is None:
        return math.nan
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return math.nan
    return parsed if math.isfinite(parsed) else math.nan


def within_bounds(lat: float, lon: float, bounds: Bounds) -> bool:
    # Strict on both axes; points on an edge are outside.
    return (
        bounds.min_lat < lat < bounds.max_lat
        and bounds.min_lon < lon < bounds.max_lon
    )
