"""Wires cache, scraper and scheduler together and exposes the query API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from . import queries
from .cache import CacheStats, TTLCache
from .config import Settings
from .http_renderer import open_http_renderer
from .models import Bounds, BaySpot
from .orchestrator import ParkingScraper, RecordSet
from .playwright_renderer import launch_playwright_renderer
from .renderer import Renderer, RendererFactory
from .scheduler import SchedulerStatus, ScrapingScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScraperStatus:
    is_initialized: bool
    is_running: bool
    last_scrape_time: str | None
    next_scrape_in: float | None
    last_strategy: str | None
    last_record_count: int
    is_synthetic: bool
    consecutive_errors: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "isInitialized": self.is_initialized,
            "isRunning": self.is_running,
            "lastScrapeTime": self.last_scrape_time or "Never",
            "nextScrapeIn": (
                f"{self.next_scrape_in:.0f} seconds" if self.next_scrape_in is not None else "Unknown"
            ),
            "lastStrategy": self.last_strategy,
            "lastRecordCount": self.last_record_count,
            "isSynthetic": self.is_synthetic,
            "consecutiveErrors": self.consecutive_errors,
        }


class ParkingService:
    """Outbound operations consumed by the HTTP layer and the CLI.

    Every query refreshes first, so results reflect the latest cached set.
    """

    def __init__(
        self,
        *,
        scraper: ParkingScraper,
        cache: TTLCache,
        scheduler: ScrapingScheduler | None = None,
    ) -> None:
        self.scraper = scraper
        self.cache = cache
        self.scheduler = scheduler

    async def refresh(self) -> RecordSet:
        return await self.scraper.refresh()

    async def all_records(self) -> RecordSet:
        return await self.refresh()

    async def available_spots(self) -> queries.SpotList:
        return queries.available_spots(await self.refresh())

    async def nearby_spots(self, lat: float, lon: float, radius: float) -> queries.NearbyResult:
        return queries.nearby_spots(await self.refresh(), lat, lon, radius)

    async def area_spots(self, bounds: Bounds) -> queries.AreaResult:
        return queries.area_spots(await self.refresh(), bounds)

    async def bay_info(self, bay_id: str) -> BaySpot | None:
        return queries.bay_info(await self.refresh(), bay_id)

    async def statistics(self) -> queries.Statistics:
        return queries.statistics(await self.refresh())

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def scheduler_status(self) -> SchedulerStatus | None:
        if self.scheduler is None:
            return None
        return self.scheduler.status()

    def scraper_status(self) -> ScraperStatus:
        session = self.scraper.session
        return ScraperStatus(
            is_initialized=self.scraper.is_initialized,
            is_running=session.is_running,
            last_scrape_time=session.last_scrape_at.isoformat() if session.last_scrape_at else None,
            next_scrape_in=self.scraper.seconds_until_next_scrape(),
            last_strategy=session.last_strategy,
            last_record_count=session.last_record_count,
            is_synthetic=session.last_was_synthetic,
            consecutive_errors=session.consecutive_errors,
        )

    def start(self) -> None:
        if self.scheduler is not None:
            self.scheduler.start()

    def stop(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()

    async def cleanup(self) -> None:
        self.stop()
        await self.scraper.cleanup()


def renderer_factory_for(settings: Settings) -> RendererFactory:
    async def _factory() -> Renderer:
        if settings.renderer == "http":
            return await open_http_renderer(user_agent=settings.user_agent)
        return await launch_playwright_renderer(
            headless=settings.headless, user_agent=settings.user_agent
        )

    return _factory


def build_service(
    settings: Settings | None = None,
    *,
    renderer_factory: RendererFactory | None = None,
    with_scheduler: bool = True,
) -> ParkingService:
    settings = settings or Settings.from_env()
    cache = TTLCache()
    scraper = ParkingScraper(
        settings=settings,
        cache=cache,
        renderer_factory=renderer_factory or renderer_factory_for(settings),
    )
    scheduler = None
    if with_scheduler:
        scheduler = ScrapingScheduler(
            scraper.refresh, interval_minutes=settings.scrape_interval_minutes
        )
    logger.debug(
        "Built parking service (renderer=%s, interval=%d min)",
        settings.renderer,
        settings.scrape_interval_minutes,
    )
    return ParkingService(scraper=scraper, cache=cache, scheduler=scheduler)
