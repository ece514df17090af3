"""Data models used across the Melbourne parking scraper."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

STATUS_PRESENT = "Present"
STATUS_UNOCCUPIED = "Unoccupied"

# Ids of generated placeholder records start with this prefix.
SYNTHETIC_ID_PREFIX = "MOCK-"


@dataclass(frozen=True, slots=True)
class RawBayRecord:
    """A parking bay row as extracted from the source, before any parsing."""

    bay_id: str
    st_marker_id: str
    status: str
    lat: str
    lon: str
    lastupdated: str
    zone_number: Optional[str] = None
    status_timestamp: Optional[str] = None
    row_number: Optional[str] = None

    def is_complete(self) -> bool:
        return all(
            value.strip()
            for value in (self.bay_id, self.status, self.lat, self.lon)
        )

    @property
    def is_synthetic(self) -> bool:
        return self.bay_id.startswith(SYNTHETIC_ID_PREFIX)

    def to_dict(self) -> dict[str, Any]:
        return {
            "bay_id": self.bay_id,
            "st_marker_id": self.st_marker_id,
            "status": self.status,
            "lat": self.lat,
            "lon": self.lon,
            "lastupdated": self.lastupdated,
            "status_timestamp": self.status_timestamp,
            "zone_number": self.zone_number,
            "row_number": self.row_number,
        }


@dataclass(frozen=True, slots=True)
class Location:
    lat: float
    lon: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}


@dataclass(frozen=True, slots=True)
class BaySpot:
    """Query-layer view of a bay, derived from a :class:`RawBayRecord`."""

    bay_id: str
    status: str
    is_available: bool
    location: Location
    last_updated: str
    street_marker: str
    zone_number: Optional[str]
    status_timestamp: Optional[str]
    is_synthetic: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "bayId": self.bay_id,
            "status": self.status,
            "isAvailable": self.is_available,
            "location": self.location.to_dict(),
            "lastUpdated": self.last_updated,
            "streetMarker": self.street_marker,
            "zoneNumber": self.zone_number,
            "statusTimestamp": self.status_timestamp,
            "isSynthetic": self.is_synthetic,
        }


@dataclass(frozen=True, slots=True)
class Bounds:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def to_dict(self) -> dict[str, float]:
        return {
            "minLat": self.min_lat,
            "maxLat": self.max_lat,
            "minLon": self.min_lon,
            "maxLon": self.max_lon,
        }


@dataclass(frozen=True, slots=True)
class Area:
    """A named rectangular region of the city."""

    name: str
    bounds: Bounds
