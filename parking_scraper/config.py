"""Runtime configuration for the Melbourne parking scraper."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

from .models import Area, Bounds

logger = logging.getLogger(__name__)

SCRAPE_URL = (
    "https://data.melbourne.vic.gov.au/explore/dataset/on-street-parking-bay-sensors/table/"
)
DEFAULT_SCRAPE_INTERVAL_MINUTES = 2
DEFAULT_RADIUS_M = 500
MAX_RADIUS_M = 5000
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DATA_SOURCE = "web-scraping"
RENDERER_CHOICES = ("browser", "http")

AREAS: Mapping[str, Area] = {
    "cbd": Area(
        name="Melbourne CBD",
        bounds=Bounds(min_lat=-37.825, max_lat=-37.81, min_lon=144.955, max_lon=144.975),
    ),
    "southbank": Area(
        name="Southbank",
        bounds=Bounds(min_lat=-37.83, max_lat=-37.815, min_lon=144.955, max_lon=144.97),
    ),
    "docklands": Area(
        name="Docklands",
        bounds=Bounds(min_lat=-37.825, max_lat=-37.81, min_lon=144.935, max_lon=144.955),
    ),
    "carlton": Area(
        name="Carlton",
        bounds=Bounds(min_lat=-37.81, max_lat=-37.79, min_lon=144.96, max_lon=144.975),
    ),
    "fitzroy": Area(
        name="Fitzroy",
        bounds=Bounds(min_lat=-37.81, max_lat=-37.79, min_lon=144.975, max_lon=144.99),
    ),
}


@dataclass(frozen=True, slots=True)
class ScrapeTimings:
    """Waits and settle delays used while driving a rendered page, in seconds."""

    table_timeout: float = 15.0
    row_timeout: float = 10.0
    table_settle: float = 3.0
    scroll_settle: float = 2.0
    aggressive_scroll_settle: float = 3.0
    max_scroll_attempts: int = 15
    interception_quiet_period: float = 3.0
    interception_timeout: float = 20.0

    @classmethod
    def immediate(cls) -> "ScrapeTimings":
        """Timings with every delay removed, for fixtures and dry runs."""

        return cls(
            table_timeout=0.0,
            row_timeout=0.0,
            table_settle=0.0,
            scroll_settle=0.0,
            aggressive_scroll_settle=0.0,
            interception_quiet_period=0.0,
            interception_timeout=0.0,
        )


@dataclass(frozen=True, slots=True)
class Settings:
    scrape_url: str = SCRAPE_URL
    scrape_interval_minutes: int = DEFAULT_SCRAPE_INTERVAL_MINUTES
    cache_ttl_seconds: float | None = None
    default_radius_m: int = DEFAULT_RADIUS_M
    max_radius_m: int = MAX_RADIUS_M
    headless: bool = True
    renderer: str = "browser"
    navigation_timeout: float = 30.0
    navigation_attempts: int = 2
    user_agent: str = DEFAULT_USER_AGENT
    cors_origin: str = "*"
    log_level: str = "INFO"
    timings: ScrapeTimings = field(default_factory=ScrapeTimings)
    areas: Mapping[str, Area] = field(default_factory=lambda: AREAS)

    @property
    def scrape_interval_seconds(self) -> float:
        return self.scrape_interval_minutes * 60.0

    @property
    def effective_cache_ttl(self) -> float:
        if self.cache_ttl_seconds is None:
            return self.scrape_interval_seconds
        return self.cache_ttl_seconds

    @classmethod
    def from_env(cls) -> "Settings":
        renderer = os.getenv("PARKING_RENDERER", "browser").strip().lower()
        if renderer not in RENDERER_CHOICES:
            logger.warning("Unknown PARKING_RENDERER=%r; using 'browser'", renderer)
            renderer = "browser"

        cache_ms = _env_int("CACHE_DURATION", 0)
        return cls(
            scrape_url=os.getenv("SCRAPE_URL", SCRAPE_URL).strip() or SCRAPE_URL,
            scrape_interval_minutes=max(
                1, _env_int("SCRAPE_INTERVAL_MINUTES", DEFAULT_SCRAPE_INTERVAL_MINUTES)
            ),
            cache_ttl_seconds=cache_ms / 1000.0 if cache_ms > 0 else None,
            default_radius_m=_env_int("DEFAULT_RADIUS", DEFAULT_RADIUS_M),
            max_radius_m=_env_int("MAX_RADIUS", MAX_RADIUS_M),
            headless=os.getenv("ENABLE_HEADLESS", "true").strip().lower() != "false",
            renderer=renderer,
            navigation_timeout=_env_float("NAVIGATION_TIMEOUT", 30.0),
            navigation_attempts=max(1, _env_int("NAVIGATION_ATTEMPTS", 2)),
            user_agent=os.getenv("SCRAPER_USER_AGENT", DEFAULT_USER_AGENT),
            cors_origin=os.getenv("CORS_ORIGIN", "*"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
