"""Validation of extracted bay records."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Iterable

from .geo import parse_coordinate
from .models import RawBayRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationReport:
    total: int
    invalid_coordinates: int
    status_values: tuple[str, ...]
    synthetic: int

    @property
    def ok(self) -> bool:
        return self.total > 0 and self.invalid_coordinates == 0


def validate_records(records: Iterable[RawBayRecord]) -> list[RawBayRecord]:
    """Keep complete records with unique bay ids, with fields stripped."""

    kept: list[RawBayRecord] = []
    seen: set[str] = set()
    incomplete = 0
    duplicates = 0

    for record in records:
        record = _strip(record)
        if not record.is_complete():
            incomplete += 1
            continue
        if record.bay_id in seen:
            duplicates += 1
            continue
        seen.add(record.bay_id)
        kept.append(record)

    if incomplete or duplicates:
        logger.info(
            "Dropped %d incomplete and %d duplicate records (%d kept)",
            incomplete,
            duplicates,
            len(kept),
        )
    return kept


def build_report(records: Iterable[RawBayRecord]) -> ValidationReport:
    items = list(records)
    invalid = 0
    statuses: list[str] = []
    for record in items:
        lat = parse_coordinate(record.lat)
        lon = parse_coordinate(record.lon)
        if math.isnan(lat) or math.isnan(lon) or lat == 0 or lon == 0:
            invalid += 1
        if record.status not in statuses:
            statuses.append(record.status)
    return ValidationReport(
        total=len(items),
        invalid_coordinates=invalid,
        status_values=tuple(statuses),
        synthetic=sum(1 for record in items if record.is_synthetic),
    )


def _strip(record: RawBayRecord) -> RawBayRecord:
    return replace(
        record,
        bay_id=record.bay_id.strip(),
        st_marker_id=record.st_marker_id.strip(),
        status=record.status.strip(),
        lat=record.lat.strip(),
        lon=record.lon.strip(),
        lastupdated=record.lastupdated.strip(),
    )
