"""Placeholder bay records served when nothing could be scraped.

Every generated id starts with ``MOCK-`` so consumers can tell these records
apart from real sensor data.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from .models import STATUS_PRESENT, STATUS_UNOCCUPIED, SYNTHETIC_ID_PREFIX, RawBayRecord

MOCK_RECORD_COUNT = 100
CITY_CENTER = (-37.8136, 144.9631)
COORDINATE_SPREAD = 0.02
OCCUPIED_PROBABILITY = 0.3
MAX_AGE_SECONDS = 3600


def generate_mock_records(
    count: int = MOCK_RECORD_COUNT,
    *,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> list[RawBayRecord]:
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)
    center_lat, center_lon = CITY_CENTER

    records: list[RawBayRecord] = []
    for index in range(1, count + 1):
        status = STATUS_PRESENT if rng.random() < OCCUPIED_PROBABILITY else STATUS_UNOCCUPIED
        records.append(
            RawBayRecord(
                bay_id=f"{SYNTHETIC_ID_PREFIX}{index:03d}",
                st_marker_id=f"M{index // 10}-{index % 10:03d}",
                status=status,
                lat=str(center_lat + (rng.random() - 0.5) * COORDINATE_SPREAD),
                lon=str(center_lon + (rng.random() - 0.5) * COORDINATE_SPREAD),
                lastupdated=_recent_timestamp(now, rng),
                zone_number=f"708{rng.randrange(10)}",
                status_timestamp=_recent_timestamp(now, rng),
            )
        )
    return records


def _recent_timestamp(now: datetime, rng: random.Random) -> str:
    moment = now - timedelta(seconds=rng.random() * MAX_AGE_SECONDS)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
