from __future__ import annotations

from parking_scraper.detection import (
    is_coordinate_pair,
    iter_json_blobs,
    looks_parking_related,
    parse_coordinate_pair,
    record_from_mapping,
    records_from_payload,
)


def test_looks_parking_related_checks_url_then_body() -> None:
    assert looks_parking_related("https://example.com/api/on-street-parking-bay-sensors")
    assert looks_parking_related("https://example.com/x", '{"status_description": "Present"}')
    assert not looks_parking_related("https://example.com/x", '{"colour": "blue"}')
    assert not looks_parking_related("https://example.com/x")


def test_record_from_geojson_feature_uses_lon_lat_order() -> None:
    feature = {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [144.96, -37.81]},
        "properties": {"kerbsideid": "K7", "status_description": "Unoccupied"},
    }

    record = record_from_mapping(feature)

    assert record is not None
    assert (record.lat, record.lon) == ("-37.81", "144.96")
    assert record.st_marker_id == "K7"


def test_record_from_mapping_reads_string_location() -> None:
    record = record_from_mapping(
        {"bayId": "3", "statusDescription": "Present", "location": "-37.8, 144.9", "zoneNumber": 7}
    )

    assert record is not None
    assert (record.lat, record.lon) == ("-37.8", "144.9")
    assert record.zone_number == "7"


def test_record_without_coordinates_is_rejected() -> None:
    assert record_from_mapping({"bay_id": "1", "status": "Present"}) is None


def test_records_from_nested_containers() -> None:
    payload = {
        "data": {
            "records": [
                {"record": {"fields": {"bay_id": "1", "status": "Present", "lat": 1, "lon": 2}}},
                {"unrelated": True},
            ]
        }
    }

    records = records_from_payload(payload)

    assert [record.bay_id for record in records] == ["1"]


def test_iter_json_blobs_skips_invalid_fragments() -> None:
    text = 'if (a[0]) { call(); } var x = {"a": 1}; var y = [1, 2];'

    blobs = list(iter_json_blobs(text))

    assert {"a": 1} in blobs
    assert [1, 2] in blobs


def test_coordinate_pair_helpers() -> None:
    assert is_coordinate_pair("-37.81, 144.96")
    assert not is_coordinate_pair("B-12")
    assert parse_coordinate_pair("-37.81 ,144.96") == ("-37.81", "144.96")
    assert parse_coordinate_pair("nowhere") == ("", "")
