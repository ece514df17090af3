from __future__ import annotations

import asyncio

import pytest

from fakes import FakePage, FakeRendererFactory, ods_table_html, sample_ods_rows

from parking_scraper.cache import TTLCache
from parking_scraper.orchestrator import CACHE_KEY, ParkingScraper
from parking_scraper.renderer import RendererTimeout, RendererUnavailable


def _table_page() -> FakePage:
    return FakePage(ods_table_html(sample_ods_rows(20)))


def _scraper(settings, clock, factory) -> tuple[ParkingScraper, TTLCache]:
    cache = TTLCache(clock=clock)
    scraper = ParkingScraper(
        settings=settings, cache=cache, renderer_factory=factory, clock=clock
    )
    return scraper, cache


def test_refresh_serves_cache_within_interval(settings, clock) -> None:
    factory = FakeRendererFactory(_table_page)
    scraper, _ = _scraper(settings, clock, factory)

    async def scenario():
        first = await scraper.refresh()
        clock.advance(60)
        second = await scraper.refresh()
        return first, second

    first, second = asyncio.run(scenario())

    assert len(first) == 20
    assert second is first
    assert len(factory.launched) == 1
    assert len(factory.launched[0].pages) == 1
    assert scraper.session.last_strategy == "table-scan"
    assert scraper.session.consecutive_errors == 0
    assert scraper.seconds_until_next_scrape() == pytest.approx(60)


def test_refresh_scrapes_again_once_interval_elapses(settings, clock) -> None:
    factory = FakeRendererFactory(_table_page)
    scraper, _ = _scraper(settings, clock, factory)

    async def scenario():
        await scraper.refresh()
        clock.advance(settings.scrape_interval_seconds)
        await scraper.refresh()

    asyncio.run(scenario())

    assert len(factory.launched) == 1
    assert len(factory.launched[0].pages) == 2
    assert all(page.closed for page in factory.launched[0].pages)


def test_cleared_cache_forces_scrape(settings, clock) -> None:
    factory = FakeRendererFactory(_table_page)
    scraper, cache = _scraper(settings, clock, factory)

    async def scenario():
        await scraper.refresh()
        cache.delete(CACHE_KEY)
        await scraper.refresh()

    asyncio.run(scenario())

    assert len(factory.launched[0].pages) == 2


def test_concurrent_refreshes_share_one_scrape(settings, clock) -> None:
    factory = FakeRendererFactory(_table_page)
    scraper, _ = _scraper(settings, clock, factory)

    async def scenario():
        return await asyncio.gather(scraper.refresh(), scraper.refresh(), scraper.refresh())

    results = asyncio.run(scenario())

    assert len(factory.launched[0].pages) == 1
    assert results[0] is results[1] is results[2]


def test_navigation_timeout_yields_synthetic_batch(settings, clock) -> None:
    factory = FakeRendererFactory(
        lambda: FakePage(navigate_errors=[RendererTimeout("Navigation timeout of 30000 ms")])
    )
    scraper, cache = _scraper(settings, clock, factory)

    records = asyncio.run(scraper.refresh())

    assert len(records) == 100
    assert all(record.is_synthetic for record in records)
    assert cache.get(CACHE_KEY) == records
    assert scraper.session.last_was_synthetic
    assert scraper.session.last_strategy == "synthetic"
    assert scraper.session.consecutive_errors == 1
    assert "Navigation timeout" in scraper.session.last_error.message
    assert factory.launched[0].pages[0].closed


def test_real_scrape_resets_error_streak(settings, clock) -> None:
    pages = iter(
        [FakePage(navigate_errors=[RendererTimeout("slow")]), _table_page()]
    )
    factory = FakeRendererFactory(lambda: next(pages))
    scraper, _ = _scraper(settings, clock, factory)

    async def scenario():
        await scraper.refresh()
        clock.advance(settings.scrape_interval_seconds)
        await scraper.refresh()

    asyncio.run(scenario())

    assert scraper.session.consecutive_errors == 0
    assert not scraper.session.last_was_synthetic


def test_renderer_crash_propagates_and_renderer_is_relaunched(settings, clock) -> None:
    factory = FakeRendererFactory(_table_page, crash=True)
    scraper, cache = _scraper(settings, clock, factory)

    async def scenario():
        with pytest.raises(RendererUnavailable):
            await scraper.refresh()
        assert not scraper.is_initialized
        factory.crash = False
        return await scraper.refresh()

    records = asyncio.run(scenario())

    assert len(records) == 20
    assert len(factory.launched) == 2
    assert factory.launched[0].closed
    assert scraper.is_initialized


def test_crash_leaves_cache_untouched(settings, clock) -> None:
    factory = FakeRendererFactory(_table_page, crash=True)
    scraper, cache = _scraper(settings, clock, factory)

    with pytest.raises(RendererUnavailable):
        asyncio.run(scraper.refresh())

    assert cache.get(CACHE_KEY) is None
    assert scraper.session.consecutive_errors == 1
    assert scraper.session.last_scrape_at is None


def test_cleanup_without_initialization_is_a_no_op(settings, clock) -> None:
    scraper, _ = _scraper(settings, clock, FakeRendererFactory(_table_page))

    asyncio.run(scraper.cleanup())

    assert not scraper.is_initialized
    assert scraper.seconds_until_next_scrape() is None


def test_cleanup_closes_renderer(settings, clock) -> None:
    factory = FakeRendererFactory(_table_page)
    scraper, _ = _scraper(settings, clock, factory)

    async def scenario():
        await scraper.refresh()
        await scraper.cleanup()

    asyncio.run(scenario())

    assert factory.launched[0].closed
    assert not scraper.is_initialized
