"""Strategies that turn a rendered page into raw bay records.

The upstream table is a third-party widget whose markup changes without
notice, so extraction runs an ordered list of strategies, each assuming less
about the page than the one before. The first strategy that produces a valid
record wins; when none does, a synthetic batch is returned instead.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

from .config import ScrapeTimings
from .detection import (
    is_coordinate_pair,
    iter_json_blobs,
    looks_parking_related,
    parse_coordinate_pair,
    records_from_payload,
)
from .models import RawBayRecord
from .pagination import ODS_ROW_SELECTOR, RowLoader
from .renderer import InterceptedResponse, Page, RendererTimeout, RendererUnavailable
from .synthetic import generate_mock_records
from .validators import validate_records

logger = logging.getLogger(__name__)

ODS_TABLE_SELECTOR = ".odswidget-table__internal-table"
ODS_DATA_ROW_SELECTOR = (
    ".odswidget-table__internal-table tbody tr.odswidget-table__internal-table-row"
)
ODS_CELL_SELECTOR = "td.odswidget-table__cell"

# Column layout of the ODS table widget
COL_ROW_NUMBER = 0
COL_LAST_UPDATED = 1
COL_STATUS_TIMESTAMP = 2
COL_ZONE_NUMBER = 3
COL_STATUS = 4
COL_KERBSIDE_ID = 5
COL_LOCATION = 6
MIN_ODS_CELLS = 7

# Tried in order; covers plain tables, ARIA grids and older ODS markup
GENERIC_ROW_SELECTORS: tuple[str, ...] = (
    "table tbody tr",
    '[role="grid"] [role="row"]',
    ".ods-table tbody tr",
    ".dataset-table tbody tr",
    "table tr",
)
GENERIC_CELL_SELECTOR = 'td, [role="gridcell"], [role="cell"]'
MIN_GENERIC_CELLS = 3

KNOWN_STATUSES: tuple[str, ...] = ("present", "unoccupied")
SYNTHESIZED_ID_PREFIX = "ROW-"

_ISO_TIMESTAMP = re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")

SyntheticFactory = Callable[[], Sequence[RawBayRecord]]


class Extractor(Protocol):
    name: str

    async def extract(self, page: Page) -> list[RawBayRecord]: ...


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    records: tuple[RawBayRecord, ...]
    strategy: str
    is_synthetic: bool = False
    reason: str | None = None


async def extract_records(
    page: Page,
    extractors: Sequence[Extractor],
    *,
    fallback: SyntheticFactory = generate_mock_records,
) -> ExtractionResult:
    """Run *extractors* in order and return the first non-empty valid result."""

    for extractor in extractors:
        try:
            found = await extractor.extract(page)
        except RendererUnavailable:
            raise
        except Exception as exc:
            logger.info("Strategy %s failed: %s", extractor.name, exc)
            continue

        records = validate_records(found)
        if records:
            logger.info("Strategy %s extracted %d records", extractor.name, len(records))
            return ExtractionResult(records=tuple(records), strategy=extractor.name)
        logger.info("Strategy %s yielded no records", extractor.name)

    return fallback_result("no extraction strategy produced records", fallback)


def fallback_result(
    reason: str, fallback: SyntheticFactory = generate_mock_records
) -> ExtractionResult:
    logger.warning("Using synthetic parking data: %s", reason)
    return ExtractionResult(
        records=tuple(fallback()),
        strategy="synthetic",
        is_synthetic=True,
        reason=reason,
    )


def default_extractors(
    timings: ScrapeTimings | None = None, *, reload_timeout: float = 30.0
) -> list[Extractor]:
    timings = timings or ScrapeTimings()
    loader = RowLoader(timings=timings)
    return [
        TableScanExtractor(loader=loader, timings=timings),
        GenericTableExtractor(loader=loader),
        EmbeddedJsonExtractor(),
        ApiInterceptionExtractor(timings=timings, reload_timeout=reload_timeout),
    ]


class TableScanExtractor:
    """Reads the ODS table widget by fixed column position."""

    name = "table-scan"

    def __init__(
        self,
        *,
        loader: RowLoader | None = None,
        timings: ScrapeTimings | None = None,
    ) -> None:
        self._loader = loader
        self._timings = timings or ScrapeTimings()

    async def extract(self, page: Page) -> list[RawBayRecord]:
        timings = self._timings
        if not await page.wait_for_selector(
            ODS_TABLE_SELECTOR, timeout=timings.table_timeout, visible=True
        ):
            logger.info("Data table did not become visible")
        if not await page.wait_for_selector(ODS_ROW_SELECTOR, timeout=timings.row_timeout):
            logger.info("No data table rows found")
            return []

        await asyncio.sleep(timings.table_settle)
        if self._loader is not None:
            await self._loader.load_all(page)

        return parse_ods_table(await page.content())


class GenericTableExtractor:
    """Falls back to any table-like markup, mapping cells by content."""

    name = "generic-table"

    def __init__(self, *, loader: RowLoader | None = None) -> None:
        self._loader = loader

    async def extract(self, page: Page) -> list[RawBayRecord]:
        for selector in GENERIC_ROW_SELECTORS:
            if not await page.count(selector):
                continue
            if self._loader is not None:
                await self._loader.for_rows(selector).load_all(page)
            records = parse_generic_rows(await page.content(), selector)
            if records:
                logger.debug("Selector %r matched %d records", selector, len(records))
                return records
            logger.debug("Selector %r matched rows but no usable records", selector)
        return []


class EmbeddedJsonExtractor:
    """Looks for parking data serialized into inline ``<script>`` tags."""

    name = "embedded-json"

    async def extract(self, page: Page) -> list[RawBayRecord]:
        return parse_embedded_json(await page.content())


class ApiInterceptionExtractor:
    """Reloads the page and keeps every parking-shaped JSON response it sees."""

    name = "api-interception"

    def __init__(
        self,
        *,
        timings: ScrapeTimings | None = None,
        reload_timeout: float = 30.0,
    ) -> None:
        self._timings = timings or ScrapeTimings()
        self._reload_timeout = reload_timeout

    async def extract(self, page: Page) -> list[RawBayRecord]:
        payloads: list[Any] = []
        arrived = asyncio.Event()

        def _on_response(response: InterceptedResponse) -> None:
            if not _is_parking_api_response(response):
                return
            try:
                payload = json.loads(response.body or "")
            except ValueError:
                logger.debug("Ignoring undecodable JSON from %s", response.url)
                return
            logger.debug("Captured parking API response from %s", response.url)
            payloads.append(payload)
            arrived.set()

        unsubscribe = page.on_response(_on_response)
        try:
            try:
                await page.reload(timeout=self._reload_timeout)
            except RendererTimeout:
                logger.info("Reload timed out; using responses captured so far")
            await self._wait_until_quiet(payloads, arrived)
        finally:
            unsubscribe()

        logger.info("Intercepted %d parking API responses", len(payloads))
        records: list[RawBayRecord] = []
        for payload in payloads:
            records.extend(records_from_payload(payload))
        return records

    async def _wait_until_quiet(self, payloads: list[Any], arrived: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timings.interception_timeout
        quiet = self._timings.interception_quiet_period

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            # Until the first response arrives only the hard deadline applies
            timeout = min(quiet, remaining) if payloads else remaining
            try:
                await asyncio.wait_for(arrived.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                if payloads:
                    return
                continue
            arrived.clear()


def cell_value(cell: Tag) -> str:
    """Return a cell's full value, preferring ``title`` attributes over visible text.

    The widget truncates long values on screen but keeps them intact in
    ``title``.
    """

    span = cell.select_one("span[title]")
    if span is not None:
        title = str(span.get("title") or "").strip()
        return title or span.get_text(" ", strip=True)
    title = str(cell.get("title") or "").strip()
    if title:
        return title
    return cell.get_text(" ", strip=True)


def parse_ods_table(html: str) -> list[RawBayRecord]:
    soup = BeautifulSoup(html, "lxml")
    rows = soup.select(ODS_DATA_ROW_SELECTOR)
    logger.debug("Found %d data rows", len(rows))

    records: list[RawBayRecord] = []
    for index, row in enumerate(rows, start=1):
        cells = row.select(ODS_CELL_SELECTOR)
        if len(cells) < MIN_ODS_CELLS:
            logger.debug(
                "Row %d has only %d cells, expected at least %d",
                index,
                len(cells),
                MIN_ODS_CELLS,
            )
            continue
        record = _record_from_positions([cell_value(cell) for cell in cells])
        if record.is_complete():
            records.append(record)
        else:
            logger.debug("Skipping row %d: missing required data", index)
    return records


def parse_generic_rows(html: str, row_selector: str) -> list[RawBayRecord]:
    soup = BeautifulSoup(html, "lxml")
    records: list[RawBayRecord] = []
    for row in soup.select(row_selector):
        cells = row.select(GENERIC_CELL_SELECTOR)
        if len(cells) < MIN_GENERIC_CELLS:
            continue
        values = [cell_value(cell) for cell in cells]

        record: RawBayRecord | None = None
        if _matches_ods_layout(values):
            record = _record_from_positions(values)
        if record is None or not record.is_complete():
            record = _record_from_content(values, len(records) + 1)
        if record is not None and record.is_complete():
            records.append(record)
    return records


def parse_embedded_json(html: str) -> list[RawBayRecord]:
    soup = BeautifulSoup(html, "lxml")
    records: list[RawBayRecord] = []
    for script in soup.find_all("script"):
        text = script.string or script.get_text()
        if not text or not text.strip():
            continue

        script_type = str(script.get("type") or "").lower()
        if "json" in script_type:
            try:
                payload = json.loads(text)
            except ValueError:
                continue
            records.extend(records_from_payload(payload))
            continue

        if not looks_parking_related("", text):
            continue
        for blob in iter_json_blobs(text):
            records.extend(records_from_payload(blob))
    return records


def _record_from_positions(values: Sequence[str]) -> RawBayRecord:
    lat, lon = parse_coordinate_pair(values[COL_LOCATION])
    kerbside_id = values[COL_KERBSIDE_ID]
    return RawBayRecord(
        bay_id=kerbside_id,
        st_marker_id=kerbside_id,
        status=values[COL_STATUS],
        lat=lat,
        lon=lon,
        lastupdated=values[COL_LAST_UPDATED],
        zone_number=values[COL_ZONE_NUMBER] or None,
        status_timestamp=values[COL_STATUS_TIMESTAMP] or None,
        row_number=values[COL_ROW_NUMBER] or None,
    )


def _matches_ods_layout(values: Sequence[str]) -> bool:
    return (
        len(values) >= MIN_ODS_CELLS
        and values[COL_STATUS].strip().lower() in KNOWN_STATUSES
        and is_coordinate_pair(values[COL_LOCATION])
    )


def _record_from_content(values: Sequence[str], index: int) -> RawBayRecord | None:
    status = next((v for v in values if v.strip().lower() in KNOWN_STATUSES), "")
    location = next((v for v in values if is_coordinate_pair(v)), "")
    if not status or not location:
        return None

    lat, lon = parse_coordinate_pair(location)
    timestamps = [v for v in values if _ISO_TIMESTAMP.search(v)]
    remaining = [v for v in values if v and v not in (status, location) and v not in timestamps]

    row_number: str | None = None
    if remaining and remaining[0] == str(index):
        row_number = remaining.pop(0)

    bay_id = remaining[0] if remaining else f"{SYNTHESIZED_ID_PREFIX}{index}"
    return RawBayRecord(
        bay_id=bay_id,
        st_marker_id=bay_id,
        status=status,
        lat=lat,
        lon=lon,
        lastupdated=timestamps[0] if timestamps else "",
        status_timestamp=timestamps[1] if len(timestamps) > 1 else None,
        row_number=row_number,
    )


def _is_parking_api_response(response: InterceptedResponse) -> bool:
    if not response.is_json or not response.body:
        return False
    if response.status >= 400:
        return False
    return looks_parking_related(response.url, response.body)
