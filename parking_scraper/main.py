"""CLI entry point for the Melbourne parking scraper."""

from __future__ import annotations

import argparse
import asyncio
import csv
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Sequence

import uvicorn

from .config import RENDERER_CHOICES, Settings
from .models import RawBayRecord
from .queries import statistics
from .service import ParkingService, build_service
from .validators import build_report

CSV_FIELDNAMES = [
    "bay_id",
    "st_marker_id",
    "status",
    "lat",
    "lon",
    "lastupdated",
    "status_timestamp",
    "zone_number",
]


def main(argv: Sequence[str] | None = None) -> None:
    """Execute the CLI."""

    args = _parse_args(argv)
    settings = _settings_from_args(args)
    _configure_logging(settings.log_level)

    if args.serve:
        _export_settings(settings)
        _serve(args.host, args.port, settings.log_level)
        return

    service = build_service(settings, with_scheduler=False)
    records = asyncio.run(_scrape_once(service))

    report = build_report(records)
    logging.info(
        "Scraped %d records (%d synthetic, %d with invalid coordinates); statuses: %s",
        report.total,
        report.synthetic,
        report.invalid_coordinates,
        ", ".join(report.status_values) or "none",
    )
    if report.synthetic:
        logging.warning("Live extraction failed; the records are synthetic placeholders")

    stats = statistics(records)
    logging.info(
        "Total %d, available %d, occupied %d, occupancy %s",
        stats.total,
        stats.available,
        stats.occupied,
        stats.occupancy_rate,
    )

    if args.output:
        output_path = Path(args.output)
        _write_results(output_path, records)
        logging.info("Wrote %d rows to %s", len(records), output_path)

    if not report.ok:
        raise SystemExit(1)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--url", default=None, help="Override the source table URL")
    parser.add_argument(
        "--renderer",
        choices=RENDERER_CHOICES,
        default=None,
        help="Render pages with a headless browser or plain HTTP",
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window while scraping",
    )
    parser.add_argument("--output", default=None, help="Optional CSV path for the records")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. INFO, DEBUG)",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the HTTP API instead of a one-off scrape",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address for --serve")
    parser.add_argument("--port", type=int, default=5000, help="Port for --serve")
    return parser.parse_args(argv)


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    overrides: dict[str, object] = {}
    if args.url:
        overrides["scrape_url"] = args.url.strip()
    if args.renderer:
        overrides["renderer"] = args.renderer
    if args.headful:
        overrides["headless"] = False
    if args.log_level:
        overrides["log_level"] = args.log_level
    return replace(settings, **overrides) if overrides else settings


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def _scrape_once(service: ParkingService) -> tuple[RawBayRecord, ...]:
    try:
        return await service.refresh()
    finally:
        await service.cleanup()


def _write_results(path: Path, records: Sequence[RawBayRecord]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=CSV_FIELDNAMES, extrasaction="ignore")
        writer.writeheader()
        for record in records:
            row = record.to_dict()
            writer.writerow({key: row.get(key) or "" for key in CSV_FIELDNAMES})


def _export_settings(settings: Settings) -> None:
    # web.app reads its settings from the environment when uvicorn imports it
    os.environ["SCRAPE_URL"] = settings.scrape_url
    os.environ["PARKING_RENDERER"] = settings.renderer
    os.environ["ENABLE_HEADLESS"] = "true" if settings.headless else "false"
    os.environ["LOG_LEVEL"] = settings.log_level


def _serve(host: str, port: int, log_level: str) -> None:
    uvicorn.run("web.app:app", host=host, port=port, log_level=log_level.lower())


if __name__ == "__main__":
    main()
