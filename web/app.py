"""HTTP API over the Melbourne parking scraper."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from parking_scraper.config import DATA_SOURCE, Settings
from parking_scraper.renderer import RendererUnavailable
from parking_scraper.service import ParkingService, build_service

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logging.getLogger("httpx").setLevel(logging.INFO)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

API_VERSION = "2.0.0"
CACHE_SWEEP_INTERVAL_SECONDS = 10 * 60  # 10 minutes

router = APIRouter(prefix="/api/parking")
health_router = APIRouter(prefix="/api/health")


def create_app(
    service: ParkingService | None = None,
    *,
    settings: Settings | None = None,
    start_background: bool = True,
) -> FastAPI:
    settings = settings or Settings.from_env()
    service = service or build_service(settings)

    app = FastAPI(title="Melbourne Parking API", version=API_VERSION)
    app.state.service = service
    app.state.settings = settings
    app.state.started_at = time.monotonic()
    app.state.sweep_task = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _log_requests(request: Request, call_next):
        started = time.monotonic()
        logger.info("%s %s", request.method, request.url.path)
        if request.query_params:
            logger.info("  Query: %s", dict(request.query_params))
        response = await call_next(request)
        logger.info(
            "%s %s - %s (%.0fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - started) * 1000,
        )
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return _error_response(message, exc.status_code)

    @app.exception_handler(RendererUnavailable)
    async def _renderer_unavailable(request: Request, exc: RendererUnavailable) -> JSONResponse:
        logger.error("Renderer failure on %s %s: %s", request.method, request.url.path, exc)
        return _error_response("Web scraping error - please try again later", 500)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(str(exc) or "Internal server error", 500)

    @app.on_event("startup")
    async def _on_startup() -> None:
        if not start_background:
            return
        service.start()
        if app.state.sweep_task is None:
            app.state.sweep_task = asyncio.create_task(_cache_sweep_loop(service))

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        task = app.state.sweep_task
        if task is not None:
            task.cancel()
            app.state.sweep_task = None
        await service.cleanup()

    @app.get("/")
    def root() -> dict[str, Any]:
        return {
            "message": "Melbourne Parking API (Web Scraping)",
            "version": API_VERSION,
            "dataSource": DATA_SOURCE,
            "updateFrequency": f"Every {settings.scrape_interval_minutes} minutes",
            "endpoints": {
                "health": "/api/health",
                "parking": {
                    "all": "/api/parking/all",
                    "available": "/api/parking/available",
                    "nearby": "/api/parking/nearby?lat=X&lon=Y&radius=Z",
                    "area": "/api/parking/area/:areaName",
                    "bay": "/api/parking/bay/:bayId",
                    "stats": "/api/parking/stats",
                },
            },
        }

    app.include_router(router)
    app.include_router(health_router)
    return app


@router.get("/all")
async def get_all(request: Request) -> dict[str, Any]:
    service = _service(request)
    records = await service.all_records()
    return {
        **_envelope(service),
        "count": len(records),
        "data": [record.to_dict() for record in records],
    }


@router.get("/available")
async def get_available(request: Request) -> dict[str, Any]:
    service = _service(request)
    result = await service.available_spots()
    return {**_envelope(service), **result.to_dict()}


@router.get("/nearby")
async def get_nearby(
    request: Request,
    lat: str | None = None,
    lon: str | None = None,
    radius: str | None = None,
):
    service = _service(request)
    settings: Settings = request.app.state.settings

    if not lat or not lon:
        return _error_response("Latitude and longitude are required", 400)

    latitude = _parse_float(lat)
    longitude = _parse_float(lon)
    if latitude is None or longitude is None:
        return _error_response("Invalid latitude or longitude", 400)

    search_radius = _parse_float(radius) if radius is not None else float(settings.default_radius_m)
    if search_radius is None or search_radius < 0:
        return _error_response("Invalid radius", 400)
    if search_radius > settings.max_radius_m:
        return _error_response(f"Radius cannot exceed {settings.max_radius_m} meters", 400)

    result = await service.nearby_spots(latitude, longitude, int(search_radius))
    return {**_envelope(service), **result.to_dict()}


@router.get("/stats")
async def get_statistics(request: Request) -> dict[str, Any]:
    service = _service(request)
    stats = await service.statistics()
    return {"success": True, "source": DATA_SOURCE, "data": stats.to_dict()}


@router.get("/area/{area_name}")
async def get_by_area(request: Request, area_name: str):
    service = _service(request)
    settings: Settings = request.app.state.settings
    area = settings.areas.get(area_name.lower())
    if area is None:
        return _error_response("Area not found", 404, availableAreas=list(settings.areas))

    result = await service.area_spots(area.bounds)
    return {**_envelope(service), "area": area.name, **result.to_dict()}


@router.get("/bay/{bay_id}")
async def get_bay(request: Request, bay_id: str):
    service = _service(request)
    spot = await service.bay_info(bay_id)
    if spot is None:
        return _error_response("Bay not found", 404)
    return {**_envelope(service), "data": spot.to_dict()}


@health_router.get("")
@health_router.get("/")
def health(request: Request) -> dict[str, Any]:
    service = _service(request)
    scheduler_status = service.scheduler_status()
    return {
        "status": "OK",
        "timestamp": _utc_now(),
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "scraper": service.scraper_status().to_dict(),
        "cache": service.cache_stats().to_dict(),
        "scheduler": scheduler_status.to_dict() if scheduler_status else None,
    }


async def _cache_sweep_loop(service: ParkingService) -> None:
    while True:
        await asyncio.sleep(CACHE_SWEEP_INTERVAL_SECONDS)
        removed = service.cache.cleanup()
        if removed:
            logger.info("Cache sweep removed %d expired entries", removed)


def _service(request: Request) -> ParkingService:
    return request.app.state.service


def _envelope(service: ParkingService) -> dict[str, Any]:
    last_scrape = service.scraper.session.last_scrape_at
    return {
        "success": True,
        "source": DATA_SOURCE,
        "lastUpdated": last_scrape.isoformat() if last_scrape else None,
        "synthetic": service.scraper.session.last_was_synthetic,
    }


def _error_response(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": {"message": message, "status": status_code}, **extra},
        status_code=status_code,
    )


def _parse_float(value: str) -> float | None:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


app = create_app()
