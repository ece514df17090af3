from __future__ import annotations

import pytest

from fakes import CENTER, ManualClock, bay

from parking_scraper.config import ScrapeTimings, Settings


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def timings() -> ScrapeTimings:
    return ScrapeTimings.immediate()


@pytest.fixture
def settings(timings: ScrapeTimings) -> Settings:
    return Settings(navigation_attempts=1, timings=timings)


@pytest.fixture
def scenario_records():
    lat, lon = CENTER
    # ~0.0009 degrees of latitude is ~100 m; 0.009 is ~1000 m
    return (
        bay("A1", "Unoccupied", lat + 0.0005, lon),
        bay("A2", "Unoccupied", lat, lon + 0.0005),
        bay("P1", "Present", lat + 0.009, lon),
    )
