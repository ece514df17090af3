"""Pure transforms over a scraped record set.

Nothing here performs I/O or mutates its input. Coordinates are stored as
strings and parsed on every call; a record whose coordinates do not parse
compares as NaN and simply drops out of radius and area filters.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from .config import DATA_SOURCE
from .geo import haversine_distance, parse_coordinate, within_bounds
from .models import STATUS_PRESENT, BaySpot, Bounds, Location, RawBayRecord


@dataclass(frozen=True, slots=True)
class SpotList:
    total: int
    spots: tuple[BaySpot, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "spots": [spot.to_dict() for spot in self.spots]}


@dataclass(frozen=True, slots=True)
class NearbyResult:
    total: int
    available: int
    radius: float
    center: Location
    spots: tuple[BaySpot, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "available": self.available,
            "radius": self.radius,
            "center": self.center.to_dict(),
            "spots": [spot.to_dict() for spot in self.spots],
        }


@dataclass(frozen=True, slots=True)
class AreaResult:
    bounds: Bounds
    total: int
    available: int
    spots: tuple[BaySpot, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "bounds": self.bounds.to_dict(),
            "total": self.total,
            "available": self.available,
            "spots": [spot.to_dict() for spot in self.spots],
        }


@dataclass(frozen=True, slots=True)
class Statistics:
    total: int
    available: int
    occupied: int
    occupancy_rate: str
    last_updated: str
    data_source: str
    synthetic: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "available": self.available,
            "occupied": self.occupied,
            "occupancyRate": self.occupancy_rate,
            "lastUpdated": self.last_updated,
            "dataSource": self.data_source,
            "synthetic": self.synthetic,
        }


def is_available(status: str) -> bool:
    return status.strip().lower() != STATUS_PRESENT.lower()


def to_spot(record: RawBayRecord) -> BaySpot:
    return BaySpot(
        bay_id=record.bay_id,
        status=record.status,
        is_available=is_available(record.status),
        location=Location(lat=parse_coordinate(record.lat), lon=parse_coordinate(record.lon)),
        last_updated=record.lastupdated,
        street_marker=record.st_marker_id,
        zone_number=record.zone_number,
        status_timestamp=record.status_timestamp,
        is_synthetic=record.is_synthetic,
    )


def to_spots(records: Iterable[RawBayRecord]) -> tuple[BaySpot, ...]:
    return tuple(to_spot(record) for record in records)


def available_spots(records: Sequence[RawBayRecord]) -> SpotList:
    spots = tuple(spot for spot in to_spots(records) if spot.is_available)
    return SpotList(total=len(spots), spots=spots)


def nearby_spots(
    records: Sequence[RawBayRecord], lat: float, lon: float, radius: float
) -> NearbyResult:
    spots = tuple(
        spot
        for spot in to_spots(records)
        if haversine_distance(lat, lon, spot.location.lat, spot.location.lon) <= radius
    )
    return NearbyResult(
        total=len(spots),
        available=sum(1 for spot in spots if spot.is_available),
        radius=radius,
        center=Location(lat=lat, lon=lon),
        spots=spots,
    )


def area_spots(records: Sequence[RawBayRecord], bounds: Bounds) -> AreaResult:
    spots = tuple(
        spot
        for spot in to_spots(records)
        if within_bounds(spot.location.lat, spot.location.lon, bounds)
    )
    return AreaResult(
        bounds=bounds,
        total=len(spots),
        available=sum(1 for spot in spots if spot.is_available),
        spots=spots,
    )


def bay_info(records: Sequence[RawBayRecord], bay_id: str) -> BaySpot | None:
    for record in records:
        if record.bay_id == bay_id:
            return to_spot(record)
    return None


def statistics(records: Sequence[RawBayRecord], *, now: datetime | None = None) -> Statistics:
    total = len(records)
    available = sum(1 for record in records if is_available(record.status))
    occupied = total - available
    occupancy_rate = f"{occupied / total * 100:.2f}%" if total else "0%"
    moment = now or datetime.now(timezone.utc)
    return Statistics(
        total=total,
        available=available,
        occupied=occupied,
        occupancy_rate=occupancy_rate,
        last_updated=moment.isoformat(),
        data_source=DATA_SOURCE,
        synthetic=sum(1 for record in records if record.is_synthetic),
    )
