from __future__ import annotations

import asyncio
import logging

import pytest

from parking_scraper.scheduler import ScrapingScheduler


def test_execute_scrape_is_skipped_while_running(caplog) -> None:
    async def scenario():
        gate = asyncio.Event()

        async def job():
            await gate.wait()

        scheduler = ScrapingScheduler(job, interval_minutes=2)
        first = asyncio.create_task(scheduler.execute_scrape())
        await asyncio.sleep(0)
        assert scheduler.is_running

        await scheduler.execute_scrape()
        skipped_counts = (scheduler.scrape_count, scheduler.error_count)

        gate.set()
        await first
        return scheduler, skipped_counts

    with caplog.at_level(logging.WARNING):
        scheduler, skipped_counts = asyncio.run(scenario())

    assert skipped_counts == (0, 0)
    assert scheduler.scrape_count == 1
    assert "skipping" in caplog.text


def test_failures_are_counted_and_remembered() -> None:
    async def job():
        raise RuntimeError("browser launch failed")

    scheduler = ScrapingScheduler(job, interval_minutes=2)
    asyncio.run(scheduler.execute_scrape())

    status = scheduler.status().to_dict()
    assert status["errorCount"] == 1
    assert status["scrapeCount"] == 0
    assert status["lastError"]["message"] == "browser launch failed"
    assert not scheduler.is_running


def test_ticks_align_to_interval_boundaries() -> None:
    scheduler = ScrapingScheduler(lambda: asyncio.sleep(0), interval_minutes=2)

    assert scheduler.next_tick_after(0) == 120
    assert scheduler.next_tick_after(119.5) == 120
    assert scheduler.next_tick_after(120) == 240


def test_start_runs_immediately_and_stop_leaves_cycle_running() -> None:
    async def scenario():
        gate = asyncio.Event()
        finished = asyncio.Event()

        async def job():
            await gate.wait()
            finished.set()

        scheduler = ScrapingScheduler(job, interval_minutes=2)
        scheduler.start()
        await asyncio.sleep(0)
        scheduled = scheduler.status()

        scheduler.stop()
        still_running = scheduler.is_running
        gate.set()
        await asyncio.wait_for(finished.wait(), timeout=1)
        await asyncio.sleep(0)
        return scheduler, scheduled, still_running

    scheduler, scheduled, still_running = asyncio.run(scenario())

    assert scheduled.is_scheduled
    assert scheduled.next_run is not None
    assert still_running
    assert scheduler.scrape_count == 1
    assert not scheduler.status().is_scheduled


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ScrapingScheduler(lambda: asyncio.sleep(0), interval_minutes=0)
