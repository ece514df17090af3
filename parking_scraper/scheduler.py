"""Periodic trigger for scrape cycles."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from .orchestrator import ErrorInfo

logger = logging.getLogger(__name__)

ERROR_WARNING_THRESHOLD = 5

ScrapeJob = Callable[[], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class SchedulerStatus:
    is_running: bool
    is_scheduled: bool
    scrape_count: int
    error_count: int
    last_error: ErrorInfo | None
    next_run: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isRunning": self.is_running,
            "isScheduled": self.is_scheduled,
            "scrapeCount": self.scrape_count,
            "errorCount": self.error_count,
            "lastError": self.last_error.to_dict() if self.last_error else None,
            "nextRun": self.next_run.isoformat() if self.next_run else None,
        }


class ScrapingScheduler:
    """Runs *job* every ``interval_minutes`` on wall-clock boundaries.

    Ticks are aligned to multiples of the interval since the epoch, so an
    interval of 2 fires at :00, :02, :04 and so on. A tick that arrives while
    the previous cycle is still running is skipped, not queued.
    """

    def __init__(
        self,
        job: ScrapeJob,
        *,
        interval_minutes: int,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        if interval_minutes < 1:
            raise ValueError("interval_minutes must be >= 1")
        self._job = job
        self._interval_seconds = interval_minutes * 60
        self._wall_clock = wall_clock
        self._ticker: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[None]] = set()
        self._next_run: float | None = None
        self.is_running = False
        self.scrape_count = 0
        self.error_count = 0
        self.last_error: ErrorInfo | None = None

    @property
    def interval_minutes(self) -> int:
        return self._interval_seconds // 60

    def start(self) -> None:
        """Schedule periodic cycles and run one immediately. Needs a running loop."""

        if self._ticker is not None and not self._ticker.done():
            return
        self._ticker = asyncio.create_task(self._tick_forever())
        logger.info(
            "Scraping scheduler started - will run every %d minutes", self.interval_minutes
        )
        self.run_now()

    def run_now(self) -> asyncio.Task[None]:
        task = asyncio.create_task(self.execute_scrape())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)
        return task

    def stop(self) -> None:
        """Cancel future ticks; a cycle already running is left to finish."""

        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
            self._next_run = None
            logger.info("Scraping scheduler stopped")

    async def execute_scrape(self) -> None:
        if self.is_running:
            logger.warning("[Scraping Job] Previous scrape still running, skipping...")
            return

        self.is_running = True
        started = time.monotonic()
        logger.info("[Scraping Job] Starting scheduled scrape #%d...", self.scrape_count + 1)
        try:
            await self._job()
        except Exception as exc:
            self.error_count += 1
            self.last_error = ErrorInfo(
                message=str(exc) or type(exc).__name__,
                timestamp=datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
            )
            logger.error(
                "[Scraping Job] Scrape failed (error #%d): %s", self.error_count, exc
            )
            if self.error_count > ERROR_WARNING_THRESHOLD:
                logger.error(
                    "[Scraping Job] Too many errors, consider checking the scraper"
                )
        else:
            self.scrape_count += 1
            logger.info(
                "[Scraping Job] Scrape #%d completed successfully in %.0fms",
                self.scrape_count,
                (time.monotonic() - started) * 1000,
            )
        finally:
            self.is_running = False

    def status(self) -> SchedulerStatus:
        next_run = None
        if self._next_run is not None:
            next_run = datetime.fromtimestamp(self._next_run, tz=timezone.utc)
        return SchedulerStatus(
            is_running=self.is_running,
            is_scheduled=self._ticker is not None,
            scrape_count=self.scrape_count,
            error_count=self.error_count,
            last_error=self.last_error,
            next_run=next_run,
        )

    def next_tick_after(self, now: float) -> float:
        return (math.floor(now / self._interval_seconds) + 1) * self._interval_seconds

    async def _tick_forever(self) -> None:
        last_fired: float | None = None
        while True:
            now = self._wall_clock()
            # A timer that wakes marginally early must not fire the same tick twice
            reference = now if last_fired is None else max(now, last_fired)
            self._next_run = self.next_tick_after(reference)
            await asyncio.sleep(max(0.0, self._next_run - now))
            last_fired = self._next_run
            self.run_now()
