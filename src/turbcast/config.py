"""Runtime settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from turbcast.analysis.reports import BBOX_MARGIN_DEG
from turbcast.fetch.aviation_weather import AWC_BASE_URL
from turbcast.fetch.wafs import RASTER_CACHE_TTL_SECONDS, WAFS_BASE_URL, WAFS_MAX_FORECAST_HOUR

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"


@dataclass
class Settings:
    """Knobs for the forecast service. Defaults match the public NOAA endpoints."""

    wafs_base_url: str = WAFS_BASE_URL
    awc_base_url: str = AWC_BASE_URL
    http_timeout: float = 20.0
    spacing_km: float = 50.0
    bbox_margin_deg: float = BBOX_MARGIN_DEG
    max_forecast_hour: int = WAFS_MAX_FORECAST_HOUR
    cache_ttl: timedelta = timedelta(minutes=30)
    raster_ttl_seconds: float = RASTER_CACHE_TTL_SECONDS
    airports_path: Path = CONFIG_DIR / "airports.yaml"

    @property
    def pipeline_timeout(self) -> float:
        """Upper bound on waiting for the sampler and feeds, over all their requests."""
        return self.http_timeout * 3


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings() -> Settings:
    """Build Settings from ``TURBCAST_*`` environment variables."""
    defaults = Settings()
    airports = os.environ.get("TURBCAST_AIRPORTS")
    return Settings(
        wafs_base_url=os.environ.get("TURBCAST_WAFS_BASE_URL", defaults.wafs_base_url).rstrip("/"),
        awc_base_url=os.environ.get("TURBCAST_AWC_BASE_URL", defaults.awc_base_url).rstrip("/"),
        http_timeout=_env_float("TURBCAST_HTTP_TIMEOUT", defaults.http_timeout),
        spacing_km=_env_float("TURBCAST_SPACING_KM", defaults.spacing_km),
        cache_ttl=timedelta(
            minutes=_env_float("TURBCAST_CACHE_TTL_MINUTES", defaults.cache_ttl.total_seconds() / 60)
        ),
        raster_ttl_seconds=60 * _env_float(
            "TURBCAST_RASTER_TTL_MINUTES", defaults.raster_ttl_seconds / 60
        ),
        airports_path=Path(airports) if airports else defaults.airports_path,
    )
