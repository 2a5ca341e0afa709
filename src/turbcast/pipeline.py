"""Core forecast pipeline, shared by CLI and API.

Orchestrates: route → {raster sampler, hazard feeds} concurrently → fusion →
cache. Upstream failures degrade the result and are reflected in its
metadata; only invalid input and unknown airports reach the caller.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, TypeVar

from pydantic import ValidationError
from sqlalchemy.orm import Session

from turbcast.airports import AirportDirectory
from turbcast.analysis.fusion import fuse_forecast, summarize_forecast
from turbcast.analysis.reports import BBOX_MARGIN_DEG, MatchedHazards, match_hazards, route_bbox
from turbcast.config import Settings, load_settings
from turbcast.fetch.aviation_weather import AviationWeatherClient
from turbcast.fetch.wafs import RasterSampler, WafsSampler
from turbcast.models import (
    BoundingBox,
    FlightRoute,
    ForecastMetadata,
    ForecastResult,
    HazardFeeds,
    RasterSample,
    RouteSummary,
    SegmentForecast,
)
from turbcast.route import calculate_great_circle_route
from turbcast.storage.forecast_cache import ForecastCache, departure_minute, route_cache_key
from turbcast.storage.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_PIPELINE_TIMEOUT = 60.0

T = TypeVar("T")


class HazardSource(Protocol):
    """Anything that returns SIGMETs, AIRMETs and PIREPs for a bounding box."""

    def fetch_hazards(self, bbox: BoundingBox) -> HazardFeeds:
        ...


def _join(future: Future[T], deadline: float, label: str) -> Optional[T]:
    """Wait for ``future`` until ``deadline``; None if it failed or ran out of time."""
    remaining = max(0.0, deadline - time.monotonic())
    try:
        return future.result(timeout=remaining)
    except FutureTimeoutError:
        logger.warning("%s timed out after the pipeline deadline", label)
        future.cancel()
    except Exception:
        logger.warning("%s failed", label, exc_info=True)
    return None


def compute_turbulence_forecast(
    route: FlightRoute,
    sampler: RasterSampler,
    hazards: HazardSource,
    departure_time: Optional[datetime] = None,
    timeout: float = DEFAULT_PIPELINE_TIMEOUT,
    bbox_margin_deg: float = BBOX_MARGIN_DEG,
    now: Optional[datetime] = None,
) -> tuple[list[SegmentForecast], ForecastMetadata]:
    """Sample the raster and fetch hazards in parallel, then fuse them.

    Never raises for upstream problems: a failed or slow raster leaves the
    forecast to reports and the heuristic, failed feeds mark it model-only.
    """
    waypoints = route.waypoints
    bbox = route_bbox(waypoints, bbox_margin_deg)
    deadline = time.monotonic() + timeout
    cancel = threading.Event()

    pool = ThreadPoolExecutor(max_workers=2)
    try:
        raster_future = pool.submit(
            sampler.sample, waypoints, departure_time, route.estimated_duration_min, cancel,
        )
        feeds_future = pool.submit(hazards.fetch_hazards, bbox)

        raster: Optional[RasterSample] = _join(raster_future, deadline, "Raster sampling")
        feeds: Optional[HazardFeeds] = _join(feeds_future, deadline, "Hazard feeds")
    finally:
        # Stops a sampler still walking forecast hours after the deadline.
        cancel.set()
        pool.shutdown(wait=False, cancel_futures=True)

    matched: Optional[MatchedHazards] = None
    if feeds is not None:
        matched = match_hazards(feeds, waypoints)
        logger.info(
            "Matched %d PIREPs, %d SIGMETs, %d AIRMETs along route",
            len(matched.pireps), len(matched.sigmets), len(matched.airmets),
        )

    return fuse_forecast(waypoints, raster, matched, now=now)


class ForecastService:
    """Read-through cached forecasts for airport pairs."""

    def __init__(
        self,
        airports: AirportDirectory,
        cache: Optional[ForecastCache],
        sampler: RasterSampler,
        hazards: HazardSource,
        settings: Optional[Settings] = None,
    ):
        self.airports = airports
        self.cache = cache
        self.sampler = sampler
        self.hazards = hazards
        self.settings = settings or Settings()

    def get_forecast(
        self,
        origin_code: str,
        destination_code: str,
        departure: Optional[datetime] = None,
        flight_number: Optional[str] = None,
        use_cache: bool = True,
        spacing_km: Optional[float] = None,
    ) -> ForecastResult:
        """Forecast for a route between two airport codes.

        Raises:
            AirportNotFoundError: If either code is unknown.
            InvalidInputError: If the route cannot be built (same airport,
                non-positive spacing).
        """
        origin = self.airports.get(origin_code)
        destination = self.airports.get(destination_code)
        flight_number = flight_number or f"{origin.iata}-{destination.iata}"
        spacing = spacing_km if spacing_km is not None else self.settings.spacing_km
        if departure is not None:
            # Computed at the same resolution the cache key records.
            departure = departure_minute(departure)

        route = calculate_great_circle_route(origin.coordinate, destination.coordinate, spacing)

        # Custom spacing yields a different waypoint set; keep it out of the shared cache.
        cacheable = use_cache and self.cache is not None and spacing == self.settings.spacing_km
        key = route_cache_key(origin.iata, destination.iata, departure)

        if cacheable:
            cached = self._load_cached(key)
            if cached is not None:
                logger.info("Cache hit for %s", key)
                return cached.model_copy(update={"flight_number": flight_number, "cached": True})

        started = time.monotonic()
        segments, metadata = compute_turbulence_forecast(
            route,
            self.sampler,
            self.hazards,
            departure_time=departure,
            timeout=self.settings.pipeline_timeout,
            bbox_margin_deg=self.settings.bbox_margin_deg,
            now=datetime.now(timezone.utc),
        )
        logger.info(
            "Computed forecast %s: %d segments in %.1fs (quality=%s, fallback=%s)",
            key, len(segments), time.monotonic() - started,
            metadata.data_quality.value, metadata.using_fallback,
        )

        result = ForecastResult(
            flight_number=flight_number,
            origin=origin,
            destination=destination,
            route=RouteSummary(
                total_distance_km=route.total_distance_km,
                cruise_altitude_ft=route.cruise_altitude_ft,
                estimated_duration_min=route.estimated_duration_min,
            ),
            forecast=segments,
            summary=summarize_forecast(segments),
            metadata=metadata,
        )

        if cacheable:
            self.cache.set(key, result.model_dump(mode="json"))
        return result

    def _load_cached(self, key: str) -> Optional[ForecastResult]:
        payload = self.cache.get(key)
        if payload is None:
            return None
        try:
            return ForecastResult.model_validate(payload)
        except ValidationError:
            logger.warning("Discarding invalid cached forecast %s", key, exc_info=True)
            return None


def build_forecast_service(
    settings: Optional[Settings] = None,
    session_factory: Optional[Callable[[], Session]] = None,
) -> ForecastService:
    """Wire the production collaborators from settings.

    ``session_factory=None`` disables the forecast cache.
    """
    settings = settings or load_settings()
    sampler = WafsSampler(
        base_url=settings.wafs_base_url,
        timeout=settings.http_timeout,
        image_cache=TTLCache(settings.raster_ttl_seconds),
        run_cache=TTLCache(settings.raster_ttl_seconds),
        max_forecast_hour=settings.max_forecast_hour,
    )
    hazards = AviationWeatherClient(base_url=settings.awc_base_url, timeout=settings.http_timeout)
    cache = ForecastCache(session_factory, ttl=settings.cache_ttl) if session_factory else None
    return ForecastService(
        airports=AirportDirectory.from_yaml(settings.airports_path),
        cache=cache,
        sampler=sampler,
        hazards=hazards,
        settings=settings,
    )
