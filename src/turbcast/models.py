"""Pydantic v2 models for turbcast."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from turbcast.errors import InvalidInputError


class Coordinate(BaseModel):
    """A geographic position in decimal degrees."""

    lat: float = Field(ge=-90, le=90)
    lon: float = Field(gt=-180, le=180)


class Airport(BaseModel):
    """An airport entry from the coordinate store."""

    iata: str
    icao: str = ""
    name: str = ""
    city: str = ""
    country: str = ""
    lat: float
    lon: float

    @property
    def coordinate(self) -> Coordinate:
        """Position as a validated Coordinate.

        Raises:
            InvalidInputError: If the stored position is out of range.
        """
        try:
            return Coordinate(lat=self.lat, lon=self.lon)
        except ValidationError as exc:
            raise InvalidInputError(
                f"Invalid coordinate for {self.iata}: ({self.lat}, {self.lon})"
            ) from exc


class RouteWaypoint(Coordinate):
    """A point along a great-circle route."""

    distance_from_origin_km: float = Field(ge=0)
    altitude_ft: int
    index: int = Field(ge=0)


class FlightRoute(BaseModel):
    """A great-circle route with a climb/cruise/descent profile."""

    origin: Coordinate
    destination: Coordinate
    waypoints: list[RouteWaypoint]
    total_distance_km: float
    cruise_altitude_ft: int
    estimated_duration_min: int


class RouteSummary(BaseModel):
    """Route figures returned alongside a forecast."""

    total_distance_km: float
    cruise_altitude_ft: int
    estimated_duration_min: int


class TurbulenceLevel(str, Enum):
    """Turbulence intensity category derived from EDR."""

    SMOOTH = "smooth"
    LIGHT = "light"
    MODERATE = "moderate"
    SEVERE = "severe"


LEVEL_ORDER = [
    TurbulenceLevel.SMOOTH,
    TurbulenceLevel.LIGHT,
    TurbulenceLevel.MODERATE,
    TurbulenceLevel.SEVERE,
]


class TurbulenceSample(BaseModel):
    """Turbulence and wind estimate at one waypoint."""

    edr: float = Field(ge=0, le=1)
    level: TurbulenceLevel
    wind_speed_kt: float = Field(ge=0)
    wind_direction_deg: float = Field(ge=0, lt=360)


class SegmentForecast(RouteWaypoint):
    """A route waypoint with its turbulence estimate."""

    turbulence: TurbulenceSample


class DataQuality(str, Enum):
    """Confidence in a forecast, driven by observation counts."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ModelProvenance(BaseModel):
    """Which model run and forecast hour a raster sample came from."""

    source: str = "noaa-awc-wafs"
    run: str  # YYYYMMDD_HH
    forecast_hour: int
    level_mb: int = 301


class RasterSample(BaseModel):
    """Per-waypoint values decoded from the model raster."""

    edr_by_point: list[float] = Field(default_factory=list)
    wind_speed_kt_by_point: list[float] = Field(default_factory=list)
    model: ModelProvenance


class BoundingBox(BaseModel):
    """A lat/lon rectangle used to scope feed queries."""

    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    def as_query(self) -> str:
        """Format as the ``minLon,minLat,maxLon,maxLat`` string the feeds expect."""
        return f"{self.min_lon:.4f},{self.min_lat:.4f},{self.max_lon:.4f},{self.max_lat:.4f}"


class HazardReport(BaseModel):
    """A SIGMET, AIRMET or PIREP record, normalized to one shape."""

    lat: Optional[float] = None
    lon: Optional[float] = None
    hazard: Optional[str] = None
    severity: Optional[str] = None
    raw_text: Optional[str] = None
    turbulence_intensity: Optional[str] = None
    observed_at: Optional[str] = None


class HazardFeeds(BaseModel):
    """Everything the advisory feeds returned for one bounding box."""

    sigmets: list[HazardReport] = Field(default_factory=list)
    airmets: list[HazardReport] = Field(default_factory=list)
    pireps: list[HazardReport] = Field(default_factory=list)


class ForecastMetadata(BaseModel):
    """Provenance and confidence for a route forecast."""

    pirep_count: int = Field(default=0, ge=0)
    sigmet_count: int = Field(default=0, ge=0)
    airmet_count: int = Field(default=0, ge=0)
    data_quality: DataQuality = DataQuality.LOW
    last_updated: datetime
    using_fallback: bool = False
    model_only: bool = False
    model: Optional[ModelProvenance] = None


class ForecastSummary(BaseModel):
    """Route-level aggregate of segment forecasts."""

    max_edr: float = 0.0
    max_level: TurbulenceLevel = TurbulenceLevel.SMOOTH
    smooth_percentage: int = 0
    level_counts: dict[str, int] = Field(default_factory=dict)


class ForecastResult(BaseModel):
    """The complete, cacheable forecast for an origin/destination pair."""

    flight_number: str
    origin: Airport
    destination: Airport
    route: RouteSummary
    forecast: list[SegmentForecast]
    summary: ForecastSummary
    metadata: ForecastMetadata
    cached: bool = False
