"""Heuristics for recognising parking data in JSON payloads and scripts."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Iterator, Mapping

from .models import RawBayRecord

logger = logging.getLogger(__name__)

# Fragments that mark a URL or response body as carrying bay sensor data
PARKING_KEYWORDS: tuple[str, ...] = (
    "parking",
    "bay-sensor",
    "bay_sensor",
    "kerbside",
    "status_description",
    "on-street",
)

# Field aliases, most specific first
BAY_ID_KEYS: tuple[str, ...] = ("bay_id", "kerbsideid", "kerbside_id", "bayid", "bayId")
MARKER_KEYS: tuple[str, ...] = ("st_marker_id", "streetmarker", "street_marker", "streetMarker")
STATUS_KEYS: tuple[str, ...] = ("status_description", "status", "statusDescription")
LAT_KEYS: tuple[str, ...] = ("lat", "latitude")
LON_KEYS: tuple[str, ...] = ("lon", "lng", "longitude")
LOCATION_KEYS: tuple[str, ...] = ("location", "geo_point_2d", "coordinates", "point")
LAST_UPDATED_KEYS: tuple[str, ...] = ("lastupdated", "last_updated", "lastUpdated")
STATUS_TS_KEYS: tuple[str, ...] = ("status_timestamp", "statusTimestamp")
ZONE_KEYS: tuple[str, ...] = ("zone_number", "zonenumber", "zoneNumber")

# Keys under which record lists are commonly nested
CONTAINER_KEYS: tuple[str, ...] = ("results", "records", "data", "items", "features", "rows")

MAX_DEPTH = 6
MAX_JSON_CANDIDATES = 200

_COORDINATE_PAIR = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")
_JSON_START = re.compile(r"[\[{]")


def looks_parking_related(url: str, body: str | None = None) -> bool:
    """Return True if *url* or *body* mentions bay sensor data."""

    lowered_url = url.lower()
    if any(keyword in lowered_url for keyword in PARKING_KEYWORDS):
        return True
    if not body:
        return False
    lowered_body = body[:20_000].lower()
    return any(keyword in lowered_body for keyword in PARKING_KEYWORDS)


def records_from_payload(payload: Any) -> list[RawBayRecord]:
    """Extract every bay-shaped object found anywhere in a JSON payload."""

    records: list[RawBayRecord] = []
    for candidate in _iter_record_dicts(payload, depth=0):
        record = record_from_mapping(candidate)
        if record is not None:
            records.append(record)
    return records


def record_from_mapping(item: Mapping[str, Any]) -> RawBayRecord | None:
    fields = _flatten_fields(item)

    bay_id = _first_value(fields, BAY_ID_KEYS)
    status = _first_value(fields, STATUS_KEYS)
    if not bay_id or not status:
        return None

    lat = _first_value(fields, LAT_KEYS)
    lon = _first_value(fields, LON_KEYS)
    if not (lat and lon):
        lat, lon = _coordinates_from_location(fields)
    if not (lat and lon):
        return None

    return RawBayRecord(
        bay_id=bay_id,
        st_marker_id=_first_value(fields, MARKER_KEYS) or bay_id,
        status=status,
        lat=lat,
        lon=lon,
        lastupdated=_first_value(fields, LAST_UPDATED_KEYS) or "",
        zone_number=_first_value(fields, ZONE_KEYS),
        status_timestamp=_first_value(fields, STATUS_TS_KEYS),
    )


def iter_json_blobs(text: str) -> Iterator[Any]:
    """Yield JSON objects or arrays embedded in arbitrary script text."""

    decoder = json.JSONDecoder()
    position = 0
    attempts = 0
    length = len(text)
    while position < length and attempts < MAX_JSON_CANDIDATES:
        match = _JSON_START.search(text, position)
        if match is None:
            return
        start = match.start()
        attempts += 1
        try:
            value, end = decoder.raw_decode(text, start)
        except ValueError:
            position = start + 1
            continue
        if isinstance(value, (dict, list)):
            yield value
        position = end


def parse_coordinate_pair(text: str) -> tuple[str, str]:
    """Split a ``"lat, lon"`` string into its two parts, or two empty strings."""

    parts = [part.strip() for part in text.split(",")]
    if len(parts) >= 2 and parts[0] and parts[1]:
        return parts[0], parts[1]
    return "", ""


def is_coordinate_pair(text: str) -> bool:
    return bool(_COORDINATE_PAIR.match(text))


def _iter_record_dicts(node: Any, *, depth: int) -> Iterable[Mapping[str, Any]]:
    if depth > MAX_DEPTH:
        return
    if isinstance(node, list):
        for item in node:
            yield from _iter_record_dicts(item, depth=depth + 1)
        return
    if not isinstance(node, dict):
        return

    fields = _flatten_fields(node)
    if _first_value(fields, BAY_ID_KEYS) and _first_value(fields, STATUS_KEYS):
        yield node
        return

    for key in CONTAINER_KEYS:
        if key in node:
            yield from _iter_record_dicts(node[key], depth=depth + 1)


def _flatten_fields(item: Mapping[str, Any]) -> dict[str, Any]:
    # Opendatasoft v1 wraps values in "fields", v2 records in "record"/"fields",
    # GeoJSON in "properties".
    fields: dict[str, Any] = {}
    for wrapper in ("record", "fields", "properties"):
        nested = item.get(wrapper)
        if isinstance(nested, dict):
            fields.update(_flatten_fields(nested))
    for key, value in item.items():
        if key not in ("record", "fields", "properties"):
            fields.setdefault(key, value)
    if "geometry" in item and isinstance(item["geometry"], dict):
        fields.setdefault("point", item["geometry"].get("coordinates"))
    return fields


def _first_value(fields: Mapping[str, Any], keys: Iterable[str]) -> str | None:
    lowered = {key.lower(): value for key, value in fields.items()}
    for key in keys:
        value = fields.get(key, lowered.get(key.lower()))
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _coordinates_from_location(fields: Mapping[str, Any]) -> tuple[str, str]:
    for key in LOCATION_KEYS:
        value = fields.get(key)
        if isinstance(value, dict):
            lat = _first_value(value, LAT_KEYS)
            lon = _first_value(value, LON_KEYS)
            if lat and lon:
                return lat, lon
        elif isinstance(value, list) and len(value) >= 2 and key in ("coordinates", "point"):
            # GeoJSON order is [lon, lat]
            return str(value[1]), str(value[0])
        elif isinstance(value, str) and is_coordinate_pair(value):
            return parse_coordinate_pair(value)
    return "", ""
