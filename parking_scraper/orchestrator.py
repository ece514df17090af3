"""Scrape orchestration: freshness policy, single-flight refreshes, caching."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from .cache import TTLCache
from .config import Settings
from .extraction import (
    ExtractionResult,
    Extractor,
    SyntheticFactory,
    default_extractors,
    extract_records,
    fallback_result,
)
from .models import RawBayRecord
from .renderer import Page, Renderer, RendererFactory, RendererTimeout, RendererUnavailable
from .synthetic import generate_mock_records

logger = logging.getLogger(__name__)

CACHE_KEY = "parking:scraped:all"

RecordSet = tuple[RawBayRecord, ...]


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    message: str
    timestamp: str

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "timestamp": self.timestamp}


@dataclass(slots=True)
class ScrapeSession:
    """Bookkeeping for the scrape loop, read by health reporting."""

    last_scrape_at: datetime | None = None
    last_scrape_monotonic: float | None = None
    is_running: bool = False
    consecutive_errors: int = 0
    last_error: ErrorInfo | None = None
    last_strategy: str | None = None
    last_record_count: int = 0
    last_was_synthetic: bool = False

    def record_result(self, result: ExtractionResult, *, monotonic_now: float) -> None:
        self.last_scrape_at = datetime.now(timezone.utc)
        self.last_scrape_monotonic = monotonic_now
        self.last_strategy = result.strategy
        self.last_record_count = len(result.records)
        self.last_was_synthetic = result.is_synthetic
        if result.is_synthetic:
            self.record_error(result.reason or "extraction produced no records")
        else:
            self.consecutive_errors = 0

    def record_error(self, message: str) -> None:
        self.consecutive_errors += 1
        self.last_error = ErrorInfo(message=message, timestamp=_utc_now())


class ParkingScraper:
    """Keeps the cached bay records fresh.

    ``refresh()`` serves the cached record set while it is both unexpired and
    younger than the scrape interval. The session's last-scrape instant is an
    audit of the last completed scrape, kept separate from the cache so the
    scrape cadence holds even if the cache is cleared from outside. Concurrent
    callers that find the data stale share a single in-flight scrape.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        cache: TTLCache,
        renderer_factory: RendererFactory,
        extractors: Sequence[Extractor] | None = None,
        fallback: SyntheticFactory = generate_mock_records,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._cache = cache
        self._renderer_factory = renderer_factory
        self._extractors = (
            list(extractors)
            if extractors is not None
            else default_extractors(settings.timings, reload_timeout=settings.navigation_timeout)
        )
        self._fallback = fallback
        self._clock = clock
        self._renderer: Renderer | None = None
        self._renderer_lock = asyncio.Lock()
        self._inflight: asyncio.Task[RecordSet] | None = None
        self.session = ScrapeSession()

    @property
    def is_initialized(self) -> bool:
        return self._renderer is not None

    @property
    def scrape_interval(self) -> float:
        return self._settings.scrape_interval_seconds

    async def refresh(self) -> RecordSet:
        cached = self._fresh_cached()
        if cached is not None:
            logger.debug("Returning cached scraped data")
            return cached

        task = self._inflight
        if task is None or task.done():
            task = asyncio.create_task(self._scrape())
            task.add_done_callback(self._on_scrape_done)
            self._inflight = task
        else:
            logger.debug("Joining in-flight scrape")

        return await asyncio.shield(task)

    def seconds_until_next_scrape(self) -> float | None:
        last = self.session.last_scrape_monotonic
        if last is None:
            return None
        return max(0.0, self.scrape_interval - (self._clock() - last))

    async def cleanup(self) -> None:
        """Wait for any in-flight scrape, then close the renderer."""

        task = self._inflight
        if task is not None and not task.done():
            logger.info("Waiting for in-flight scrape before shutdown")
            await asyncio.wait([task])
        logger.info("Cleaning up page renderer...")
        await self._close_renderer()

    def _fresh_cached(self) -> RecordSet | None:
        cached = self._cache.get(CACHE_KEY)
        if cached is None:
            return None
        last = self.session.last_scrape_monotonic
        if last is None or self._clock() - last >= self.scrape_interval:
            return None
        return cached

    def _on_scrape_done(self, task: asyncio.Task[Any]) -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Scrape task finished with %r", task.exception())

    async def _scrape(self) -> RecordSet:
        started = self._clock()
        self.session.is_running = True
        logger.info("Starting web scraping from: %s", self._settings.scrape_url)
        try:
            result = await self._render_and_extract()
        except RendererUnavailable as exc:
            logger.error("Page renderer failed: %s", exc)
            self.session.record_error(str(exc))
            await self._close_renderer()
            raise
        finally:
            self.session.is_running = False

        self._cache.set(CACHE_KEY, result.records, self._settings.effective_cache_ttl)
        self.session.record_result(result, monotonic_now=self._clock())
        logger.info(
            "Cached %d %s records from %s in %.1fs",
            len(result.records),
            "synthetic" if result.is_synthetic else "scraped",
            result.strategy,
            self._clock() - started,
        )
        return result.records

    async def _render_and_extract(self) -> ExtractionResult:
        renderer = await self._ensure_renderer()
        page = await renderer.new_page()
        try:
            await self._navigate(page)
            return await extract_records(page, self._extractors, fallback=self._fallback)
        except RendererUnavailable:
            raise
        except Exception as exc:
            logger.error("Scraping error: %s", exc)
            return fallback_result(str(exc) or type(exc).__name__, self._fallback)
        finally:
            await page.close()

    async def _navigate(self, page: Page) -> None:
        url = self._settings.scrape_url
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.navigation_attempts),
            wait=wait_exponential_jitter(initial=1.0, max=5.0),
            retry=retry_if_exception_type(RendererTimeout),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info("Retrying navigation (attempt %d)", attempt.retry_state.attempt_number)
                await page.navigate(url, timeout=self._settings.navigation_timeout)

    async def _ensure_renderer(self) -> Renderer:
        async with self._renderer_lock:
            if self._renderer is None:
                logger.info("Initializing page renderer...")
                self._renderer = await self._renderer_factory()
            return self._renderer

    async def _close_renderer(self) -> None:
        async with self._renderer_lock:
            renderer, self._renderer = self._renderer, None
            if renderer is not None:
                await renderer.close()


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()
