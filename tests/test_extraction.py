from __future__ import annotations

import asyncio
import json

import pytest
from bs4 import BeautifulSoup

from fakes import FakePage, json_response, ods_table_html, sample_ods_rows

from parking_scraper.extraction import (
    ApiInterceptionExtractor,
    EmbeddedJsonExtractor,
    GenericTableExtractor,
    TableScanExtractor,
    cell_value,
    default_extractors,
    extract_records,
)
from parking_scraper.models import RawBayRecord
from parking_scraper.pagination import RowLoader
from parking_scraper.renderer import RendererTimeout, RendererUnavailable

EMPTY_PAGE = "<html><body><p>Dataset temporarily unavailable</p></body></html>"
SEARCH_URL = (
    "https://data.melbourne.vic.gov.au/api/explore/v2.1/catalog/datasets/"
    "on-street-parking-bay-sensors/records?limit=100"
)


class _Exploding:
    name = "exploding"

    async def extract(self, page):
        raise ValueError("selector syntax changed")


class _Fixed:
    name = "fixed"

    def __init__(self, records):
        self._records = records

    async def extract(self, page):
        return list(self._records)


class _Crashing:
    name = "crashing"

    async def extract(self, page):
        raise RendererUnavailable("Target page, context or browser has been closed")


def test_table_scan_reads_every_row(timings) -> None:
    page = FakePage(ods_table_html(sample_ods_rows(25)))
    extractor = TableScanExtractor(loader=RowLoader(timings=timings), timings=timings)

    records = asyncio.run(extractor.extract(page))

    assert len(records) == 25
    first = records[0]
    assert first.bay_id == "50000"
    assert first.st_marker_id == "50000"
    assert first.status == "Present"
    assert (first.lat, first.lon) == ("-37.8136", "144.9631")
    assert first.zone_number == "7001"
    assert first.row_number == "1"


def test_table_scan_prefers_title_over_truncated_text(timings) -> None:
    page = FakePage(ods_table_html(sample_ods_rows(1)))

    records = asyncio.run(TableScanExtractor(timings=timings).extract(page))

    # Visible text is cut to 8 characters; the title keeps the full value
    assert records[0].lastupdated == "2024-05-01T10:00:00+10:00"


def test_table_scan_skips_short_rows(timings) -> None:
    rows = sample_ods_rows(2)
    rows[1] = rows[1][:5]
    page = FakePage(ods_table_html(rows))

    records = asyncio.run(TableScanExtractor(timings=timings).extract(page))

    assert [record.bay_id for record in records] == ["50000"]


def test_chain_uses_first_strategy_for_well_formed_table(timings) -> None:
    page = FakePage(ods_table_html(sample_ods_rows(12)))

    result = asyncio.run(extract_records(page, default_extractors(timings)))

    assert result.strategy == "table-scan"
    assert len(result.records) == 12
    assert not result.is_synthetic


def test_chain_falls_back_to_synthetic_batch_when_nothing_matches(timings) -> None:
    page = FakePage(EMPTY_PAGE)

    result = asyncio.run(extract_records(page, default_extractors(timings)))

    assert result.is_synthetic
    assert result.strategy == "synthetic"
    assert len(result.records) == 100
    assert all(record.bay_id.startswith("MOCK-") for record in result.records)
    assert page.reloads == 1


def test_chain_treats_strategy_errors_as_empty() -> None:
    record = RawBayRecord("7", "7", "Present", "-37.81", "144.96", "t")

    result = asyncio.run(
        extract_records(FakePage(), [_Exploding(), _Fixed([]), _Fixed([record])])
    )

    assert result.strategy == "fixed"
    assert result.records == (record,)


def test_chain_discards_strategy_output_that_fails_validation() -> None:
    incomplete = RawBayRecord("7", "7", "", "-37.81", "144.96", "t")

    result = asyncio.run(
        extract_records(FakePage(), [_Fixed([incomplete])], fallback=lambda: [])
    )

    assert result.is_synthetic
    assert result.records == ()


def test_chain_propagates_renderer_crash() -> None:
    with pytest.raises(RendererUnavailable):
        asyncio.run(extract_records(FakePage(), [_Crashing(), _Exploding()]))


def test_generic_table_maps_cells_by_content() -> None:
    html = (
        "<table><thead><tr><th>Status</th><th>Where</th><th>Id</th></tr></thead><tbody>"
        "<tr><td>Unoccupied</td><td>-37.81, 144.96</td><td>B-12</td>"
        "<td>2024-05-01T10:00:00</td></tr>"
        "<tr><td>Present</td><td>-37.82, 144.97</td><td>B-13</td></tr>"
        "<tr><td>no</td><td>data</td><td>here</td></tr>"
        "</tbody></table>"
    )

    records = asyncio.run(GenericTableExtractor().extract(FakePage(html)))

    assert [record.bay_id for record in records] == ["B-12", "B-13"]
    assert records[0].lat == "-37.81"
    assert records[0].lastupdated == "2024-05-01T10:00:00"


def test_generic_table_synthesizes_id_when_row_has_none() -> None:
    html = (
        "<table><tbody>"
        "<tr><td>Present</td><td>-37.81, 144.96</td><td>2024-05-01T10:00:00</td></tr>"
        "</tbody></table>"
    )

    records = asyncio.run(GenericTableExtractor().extract(FakePage(html)))

    assert records[0].bay_id == "ROW-1"


def test_generic_table_keeps_ordinal_apart_from_bay_id() -> None:
    html = (
        "<table>"
        "<tr><th>#</th><th>Status</th><th>Where</th><th>Bay</th></tr>"
        "<tr><td>1</td><td>Unoccupied</td><td>-37.81, 144.96</td><td>B-12</td></tr>"
        "<tr><td>2</td><td>Present</td><td>-37.82, 144.97</td><td>B-13</td></tr>"
        "</table>"
    )

    records = asyncio.run(GenericTableExtractor().extract(FakePage(html)))

    assert [record.bay_id for record in records] == ["B-12", "B-13"]
    assert [record.row_number for record in records] == ["1", "2"]


def test_generic_table_reads_positional_layout() -> None:
    row = sample_ods_rows(1)[0]
    cells = "".join(f"<td>{value}</td>" for value in row)
    html = f"<table><tbody><tr>{cells}</tr></tbody></table>"

    records = asyncio.run(GenericTableExtractor().extract(FakePage(html)))

    assert records[0].bay_id == "50000"
    assert records[0].zone_number == "7001"


def test_embedded_json_in_assignment() -> None:
    payload = {
        "results": [
            {
                "kerbsideid": "K1",
                "status_description": "Present",
                "location": {"lat": -37.81, "lon": 144.96},
                "lastupdated": "2024-05-01T10:00:00+10:00",
            }
        ]
    }
    html = f"<html><script>window.__DATA__ = {json.dumps(payload)};</script></html>"

    records = asyncio.run(EmbeddedJsonExtractor().extract(FakePage(html)))

    assert len(records) == 1
    assert records[0].bay_id == "K1"
    assert (records[0].lat, records[0].lon) == ("-37.81", "144.96")


def test_embedded_json_script_tag() -> None:
    payload = [{"bay_id": "9", "status": "Unoccupied", "lat": "-37.8", "lon": "144.9"}]
    html = f'<script type="application/json">{json.dumps(payload)}</script>'

    records = asyncio.run(EmbeddedJsonExtractor().extract(FakePage(html)))

    assert [record.bay_id for record in records] == ["9"]


def test_embedded_json_ignores_unrelated_scripts() -> None:
    html = '<script>var config = {"theme": "dark", "items": [1, 2]};</script>'

    assert asyncio.run(EmbeddedJsonExtractor().extract(FakePage(html))) == []


def test_api_interception_collects_parking_responses(timings) -> None:
    body = json.dumps(
        {
            "results": [
                {
                    "kerbsideid": 101,
                    "status_description": "Unoccupied",
                    "location": {"lon": 144.96, "lat": -37.81},
                },
                {
                    "kerbsideid": 102,
                    "status_description": "Present",
                    "location": {"lon": 144.97, "lat": -37.82},
                },
            ]
        }
    )
    page = FakePage(
        responses=[
            json_response("https://cdn.example.com/theme.json", '{"colour": "blue"}'),
            json_response(SEARCH_URL, body, status=500),
            json_response(SEARCH_URL, body),
        ]
    )

    records = asyncio.run(ApiInterceptionExtractor(timings=timings).extract(page))

    assert [record.bay_id for record in records] == ["101", "102"]
    assert page.handlers == []


def test_api_interception_keeps_responses_when_reload_times_out(timings) -> None:
    body = json.dumps(
        {"records": [{"fields": {"bay_id": "5", "status": "Present", "lat": 1, "lon": 2}}]}
    )
    page = FakePage(
        responses=[json_response(SEARCH_URL, body)],
        reload_error=RendererTimeout("reload timed out"),
    )

    records = asyncio.run(ApiInterceptionExtractor(timings=timings).extract(page))

    assert [record.bay_id for record in records] == ["5"]


def test_cell_value_precedence() -> None:
    soup = BeautifulSoup(
        '<table><tr>'
        '<td title="outer"><span title="inner">in…</span></td>'
        '<td title="cell title">visible</td>'
        "<td> plain text </td>"
        "</tr></table>",
        "lxml",
    )
    cells = soup.select("td")

    assert [cell_value(cell) for cell in cells] == ["inner", "cell title", "plain text"]
