"""Coaxes a paginated or virtualized table into rendering all of its rows."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .config import ScrapeTimings
from .renderer import Page, RendererUnavailable

logger = logging.getLogger(__name__)

ODS_ROW_SELECTOR = ".odswidget-table__internal-table-row"
ODS_SCROLL_CONTAINER = ".odswidget-table__records"

LOAD_MORE_SELECTORS: tuple[str, ...] = (
    "button.load-more",
    ".odswidget-table__load-more",
    "button:has-text('Load more')",
    "button:has-text('Show more')",
    "a:has-text('Load more')",
)
PAGE_SIZE_SELECTORS: tuple[str, ...] = (
    "select.odswidget-pagination__limit",
    "select[name='limit']",
    "select[aria-label*='rows' i]",
    ".page-size select",
)


@dataclass(frozen=True, slots=True)
class LoadResult:
    method: str
    initial_rows: int
    final_rows: int
    attempts: int


class RowLoader:
    """Clicks "load more", widens the page size, or scrolls until rows stop appearing."""

    def __init__(
        self,
        *,
        row_selector: str = ODS_ROW_SELECTOR,
        container_selector: str | None = ODS_SCROLL_CONTAINER,
        timings: ScrapeTimings | None = None,
        load_more_selectors: tuple[str, ...] = LOAD_MORE_SELECTORS,
        page_size_selectors: tuple[str, ...] = PAGE_SIZE_SELECTORS,
    ) -> None:
        self.row_selector = row_selector
        self.container_selector = container_selector
        self._timings = timings or ScrapeTimings()
        self._load_more_selectors = load_more_selectors
        self._page_size_selectors = page_size_selectors

    def for_rows(self, row_selector: str) -> "RowLoader":
        """Return a loader with the same settings that counts *row_selector*."""

        return RowLoader(
            row_selector=row_selector,
            container_selector=self.container_selector,
            timings=self._timings,
            load_more_selectors=self._load_more_selectors,
            page_size_selectors=self._page_size_selectors,
        )

    async def load_all(self, page: Page) -> LoadResult:
        try:
            return await self._load_all(page)
        except RendererUnavailable:
            raise
        except Exception as exc:
            logger.info("Error while loading additional rows: %s", exc)
            return LoadResult(method="error", initial_rows=0, final_rows=0, attempts=0)

    async def _load_all(self, page: Page) -> LoadResult:
        initial = await page.count(self.row_selector)
        logger.info("Initial row count: %d", initial)

        result = await self._click_load_more(page, initial)
        if result is None:
            result = await self._expand_page_size(page, initial)
        if result is None:
            result = await self._scroll_until_stable(page, initial)

        logger.info(
            "Final row count after %s: %d (%d attempts)",
            result.method,
            result.final_rows,
            result.attempts,
        )
        return result

    async def _click_load_more(self, page: Page, initial: int) -> LoadResult | None:
        for selector in self._load_more_selectors:
            if not await page.click(selector):
                continue

            logger.debug("Clicked load-more control %s", selector)
            previous = initial
            attempts = 1
            while True:
                await asyncio.sleep(self._timings.scroll_settle)
                current = await page.count(self.row_selector)
                if current == previous or attempts >= self._timings.max_scroll_attempts:
                    previous = current
                    break
                previous = current
                if not await page.click(selector):
                    break
                attempts += 1
            return LoadResult("load-more", initial, previous, attempts)
        return None

    async def _expand_page_size(self, page: Page, initial: int) -> LoadResult | None:
        for selector in self._page_size_selectors:
            if not await page.select_max_option(selector):
                continue
            await asyncio.sleep(self._timings.table_settle)
            current = await page.count(self.row_selector)
            return LoadResult("page-size", initial, current, 1)
        return None

    async def _scroll_until_stable(self, page: Page, initial: int) -> LoadResult:
        previous = initial
        attempts = 0

        while attempts < self._timings.max_scroll_attempts:
            await page.scroll(self.container_selector)
            await asyncio.sleep(self._timings.scroll_settle)
            current = await page.count(self.row_selector)
            logger.debug("Scroll attempt %d: %d rows loaded", attempts + 1, current)

            if current == previous:
                # Virtualized widgets sometimes only react to a real scroll event
                if self.container_selector:
                    await page.dispatch_scroll(self.container_selector)
                await asyncio.sleep(self._timings.aggressive_scroll_settle)
                final = await page.count(self.row_selector)
                if final == current:
                    attempts += 1
                    logger.debug("No new rows after aggressive scroll; stopping")
                    break
                current = final

            previous = current
            attempts += 1

        return LoadResult("scroll", initial, previous, attempts)
