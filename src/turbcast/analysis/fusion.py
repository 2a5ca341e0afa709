"""Fusion of raster, report and heuristic signals into a route forecast."""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import datetime, timezone
from typing import Optional, Sequence

from turbcast.analysis.heuristic import (
    BASE_EDR,
    atmospheric_edr,
    synthetic_wind_direction_deg,
    synthetic_wind_speed_kt,
)
from turbcast.analysis.reports import MatchedHazards, edr_floor_for_waypoint
from turbcast.models import (
    LEVEL_ORDER,
    DataQuality,
    ForecastMetadata,
    ForecastSummary,
    RasterSample,
    RouteWaypoint,
    SegmentForecast,
    TurbulenceLevel,
    TurbulenceSample,
)

logger = logging.getLogger(__name__)

# EDR thresholds based on FAA/ICAO guidance
LIGHT_EDR = 0.15
MODERATE_EDR = 0.25
SEVERE_EDR = 0.40

LEVEL_DESCRIPTIONS = {
    TurbulenceLevel.SMOOTH: "Smooth flight conditions expected",
    TurbulenceLevel.LIGHT: "Light turbulence - minor discomfort possible",
    TurbulenceLevel.MODERATE: "Moderate turbulence - seatbelt advised",
    TurbulenceLevel.SEVERE: "Severe turbulence - may be uncomfortable",
}


def classify_edr(edr: float) -> TurbulenceLevel:
    if edr < LIGHT_EDR:
        return TurbulenceLevel.SMOOTH
    if edr < MODERATE_EDR:
        return TurbulenceLevel.LIGHT
    if edr < SEVERE_EDR:
        return TurbulenceLevel.MODERATE
    return TurbulenceLevel.SEVERE


def describe_level(level: TurbulenceLevel) -> str:
    return LEVEL_DESCRIPTIONS[level]


def compute_data_quality(pirep_count: int, sigmet_count: int, airmet_count: int) -> DataQuality:
    """HIGH with plenty of observations, MEDIUM with any, LOW with none."""
    if pirep_count >= 3 or sigmet_count >= 2 or airmet_count >= 2:
        return DataQuality.HIGH
    if pirep_count >= 1 or sigmet_count >= 1 or airmet_count >= 1:
        return DataQuality.MEDIUM
    return DataQuality.LOW


def fuse_waypoint(
    wp: RouteWaypoint,
    raster_edr: Optional[float],
    raster_wind_kt: Optional[float],
    matched: MatchedHazards,
) -> TurbulenceSample:
    """Turbulence estimate for one waypoint.

    Raster EDR is the starting point when present; report floors can only
    raise it. With neither raster nor a triggered floor, the atmospheric
    heuristic supplies the value.
    """
    floor = edr_floor_for_waypoint(wp, matched)

    if raster_edr is None and floor is None:
        edr = atmospheric_edr(wp)
    else:
        edr = raster_edr if raster_edr is not None else BASE_EDR
        if floor is not None:
            edr = max(edr, floor)

    edr = round(min(1.0, max(0.0, edr)), 3)

    if raster_wind_kt is not None:
        wind_speed = max(0.0, float(raster_wind_kt))
    else:
        wind_speed = synthetic_wind_speed_kt(wp)

    return TurbulenceSample(
        edr=edr,
        level=classify_edr(edr),
        wind_speed_kt=wind_speed,
        wind_direction_deg=synthetic_wind_direction_deg(wp),
    )


def fuse_forecast(
    waypoints: Sequence[RouteWaypoint],
    raster: Optional[RasterSample],
    matched: Optional[MatchedHazards],
    now: Optional[datetime] = None,
) -> tuple[list[SegmentForecast], ForecastMetadata]:
    """Combine raster and report data into per-segment forecasts and metadata.

    ``raster=None`` means the model was unavailable; ``matched=None`` means
    the advisory feeds failed. Neither condition raises: the worst case is the
    pure heuristic path with low data quality.
    """
    if raster is not None and (
        len(raster.edr_by_point) != len(waypoints)
        or len(raster.wind_speed_kt_by_point) != len(waypoints)
    ):
        logger.warning(
            "Raster sample has %d points for %d waypoints, ignoring it",
            len(raster.edr_by_point), len(waypoints),
        )
        raster = None

    if matched is None:
        matched = MatchedHazards(feeds_available=False)

    segments: list[SegmentForecast] = []
    for i, wp in enumerate(waypoints):
        sample = fuse_waypoint(
            wp,
            raster.edr_by_point[i] if raster is not None else None,
            raster.wind_speed_kt_by_point[i] if raster is not None else None,
            matched,
        )
        segments.append(SegmentForecast(**wp.model_dump(), turbulence=sample))

    pirep_count = len(matched.pireps)
    sigmet_count = len(matched.sigmets)
    airmet_count = len(matched.airmets)

    metadata = ForecastMetadata(
        pirep_count=pirep_count,
        sigmet_count=sigmet_count,
        airmet_count=airmet_count,
        data_quality=compute_data_quality(pirep_count, sigmet_count, airmet_count),
        last_updated=now or datetime.now(timezone.utc),
        using_fallback=raster is None and not matched.has_reports,
        model_only=not matched.feeds_available,
        model=raster.model if raster is not None else None,
    )
    return segments, metadata


def summarize_forecast(segments: Sequence[SegmentForecast]) -> ForecastSummary:
    """Worst EDR and level, level histogram and share of smooth segments."""
    if not segments:
        return ForecastSummary()

    counts = Counter(s.turbulence.level.value for s in segments)
    max_level = max((s.turbulence.level for s in segments), key=LEVEL_ORDER.index)
    smooth_pct = math.floor(counts.get(TurbulenceLevel.SMOOTH.value, 0) / len(segments) * 100 + 0.5)

    return ForecastSummary(
        max_edr=max(s.turbulence.edr for s in segments),
        max_level=max_level,
        smooth_percentage=smooth_pct,
        level_counts=dict(counts),
    )
