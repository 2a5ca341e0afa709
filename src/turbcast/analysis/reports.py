"""Relevance scoring of SIGMETs, AIRMETs and PIREPs against a route."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from turbcast.analysis.heuristic import Salt, deterministic_unit
from turbcast.models import BoundingBox, HazardFeeds, HazardReport, RouteWaypoint
from turbcast.route import haversine_nm

BBOX_MARGIN_DEG = 2.0
PIREP_ROUTE_RADIUS_NM = 50.0
PIREP_WAYPOINT_RADIUS_NM = 50.0
MAX_SAMPLED_WAYPOINTS = 60

ADVISORY_TOKENS = ("turb", "convect", "tstm", "thunderstorm")

SEVERE_ADVISORY_FLOOR = 0.40
MODERATE_ADVISORY_FLOOR = 0.25

_TB_GROUP = re.compile(r"/TB\s+([A-Z\-]+)")


class PirepIntensity(str, Enum):
    LIGHT = "light"
    MODERATE = "moderate"
    SEVERE = "severe"


# (floor, jitter span) per reported intensity
PIREP_FLOORS: dict[PirepIntensity, tuple[float, float]] = {
    PirepIntensity.SEVERE: (0.45, 0.15),
    PirepIntensity.MODERATE: (0.25, 0.10),
    PirepIntensity.LIGHT: (0.15, 0.05),
}


def route_bbox(waypoints: Sequence[RouteWaypoint], margin_deg: float = BBOX_MARGIN_DEG) -> BoundingBox:
    """Bounding box around all waypoints, padded by ``margin_deg`` and clamped."""
    lats = [wp.lat for wp in waypoints]
    lons = [wp.lon for wp in waypoints]
    return BoundingBox(
        min_lat=max(-90.0, min(lats) - margin_deg),
        min_lon=max(-180.0, min(lons) - margin_deg),
        max_lat=min(90.0, max(lats) + margin_deg),
        max_lon=min(180.0, max(lons) + margin_deg),
    )


def is_turbulence_advisory(report: HazardReport) -> bool:
    """True if the hazard tag or raw text mentions turbulence or convection."""
    text = f"{report.hazard or ''} {report.raw_text or ''}".lower()
    return any(token in text for token in ADVISORY_TOKENS)


def pirep_intensity(report: HazardReport) -> Optional[PirepIntensity]:
    """Turbulence category of a PIREP, from its intensity field or the /TB group."""
    raw = report.turbulence_intensity
    if not raw and report.raw_text:
        match = _TB_GROUP.search(report.raw_text.upper())
        raw = match.group(1) if match else None
    if not raw:
        return None

    value = raw.upper()
    if "SEV" in value or "EXTM" in value or "EXTREME" in value:
        return PirepIntensity.SEVERE
    if "MOD" in value:
        return PirepIntensity.MODERATE
    if "LGT" in value or "LIGHT" in value:
        return PirepIntensity.LIGHT
    return None


def pirep_key(report: HazardReport) -> tuple:
    """Composite identity used to count a report once across waypoints."""
    return (
        round(report.lat, 4) if report.lat is not None else None,
        round(report.lon, 4) if report.lon is not None else None,
        report.observed_at,
        (report.turbulence_intensity or "").upper(),
    )


def sample_waypoints(
    waypoints: Sequence[RouteWaypoint], max_points: int = MAX_SAMPLED_WAYPOINTS
) -> list[RouteWaypoint]:
    """Evenly strided subset of waypoints, always including the last one."""
    if not waypoints:
        return []
    stride = max(1, math.ceil(len(waypoints) / max_points))
    sampled = list(waypoints[::stride])
    if sampled[-1] is not waypoints[-1]:
        sampled.append(waypoints[-1])
    return sampled


def route_relevant_pireps(
    pireps: Sequence[HazardReport],
    waypoints: Sequence[RouteWaypoint],
    radius_nm: float = PIREP_ROUTE_RADIUS_NM,
    max_points: int = MAX_SAMPLED_WAYPOINTS,
) -> list[HazardReport]:
    """PIREPs within ``radius_nm`` of the route, deduplicated.

    Bounding-box membership alone over-counts reports far from the path, so
    each report is checked against a strided sample of waypoints instead.
    """
    sampled = sample_waypoints(waypoints, max_points)
    seen: set[tuple] = set()
    relevant: list[HazardReport] = []

    for report in pireps:
        if report.lat is None or report.lon is None:
            continue
        key = pirep_key(report)
        if key in seen:
            continue
        if any(haversine_nm(wp.lat, wp.lon, report.lat, report.lon) <= radius_nm for wp in sampled):
            seen.add(key)
            relevant.append(report)

    return relevant


@dataclass
class MatchedHazards:
    """Route-relevant reports and whether the feeds could be read at all."""

    pireps: list[HazardReport] = field(default_factory=list)
    sigmets: list[HazardReport] = field(default_factory=list)
    airmets: list[HazardReport] = field(default_factory=list)
    feeds_available: bool = True

    @property
    def has_reports(self) -> bool:
        return bool(self.pireps or self.sigmets or self.airmets)

    def advisory_floor(self) -> Optional[float]:
        """Route-wide floor from the most severe turbulence advisory, if any.

        Advisories are region-scoped; without polygon intersection any
        turbulence advisory inside the bbox applies to the whole route.
        """
        floor: Optional[float] = None
        for advisory in (*self.sigmets, *self.airmets):
            severity = (advisory.severity or "").upper()
            if "SEV" in severity:
                value = SEVERE_ADVISORY_FLOOR
            elif "MOD" in severity:
                value = MODERATE_ADVISORY_FLOOR
            else:
                continue
            floor = value if floor is None else max(floor, value)
        return floor


def match_hazards(feeds: HazardFeeds, waypoints: Sequence[RouteWaypoint]) -> MatchedHazards:
    """Keep only turbulence advisories and PIREPs near the route."""
    return MatchedHazards(
        pireps=route_relevant_pireps(feeds.pireps, waypoints),
        sigmets=[r for r in feeds.sigmets if is_turbulence_advisory(r)],
        airmets=[r for r in feeds.airmets if is_turbulence_advisory(r)],
    )


def pirep_floor_for_waypoint(
    wp: RouteWaypoint,
    pireps: Sequence[HazardReport],
    radius_nm: float = PIREP_WAYPOINT_RADIUS_NM,
) -> Optional[float]:
    """Highest EDR floor implied by PIREPs within ``radius_nm`` of the waypoint."""
    floor: Optional[float] = None
    jitter = deterministic_unit(wp.lat, wp.lon, wp.index, Salt.PIREP_JITTER)

    for report in pireps:
        if report.lat is None or report.lon is None:
            continue
        intensity = pirep_intensity(report)
        if intensity is None:
            continue
        if haversine_nm(wp.lat, wp.lon, report.lat, report.lon) > radius_nm:
            continue
        base, span = PIREP_FLOORS[intensity]
        value = base + jitter * span
        floor = value if floor is None else max(floor, value)

    return floor


def edr_floor_for_waypoint(wp: RouteWaypoint, matched: MatchedHazards) -> Optional[float]:
    """Combined PIREP and advisory floor for one waypoint, or None if nothing applies."""
    floors = [
        f for f in (pirep_floor_for_waypoint(wp, matched.pireps), matched.advisory_floor())
        if f is not None
    ]
    return max(floors) if floors else None
