"""NOAA AWC WAFS raster sampler.

Fetches the pre-rendered WAFS turbulence (EDR) and wind overlay PNGs for a
model run and forecast hour, then decodes the colour under each waypoint via
the legend tables in :mod:`turbcast.fetch.legend`.
"""

from __future__ import annotations

import logging
import math
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from io import BytesIO
from typing import Optional, Protocol, Sequence

import requests
from PIL import Image

from turbcast.errors import RasterNotFoundError, SamplingCancelledError
from turbcast.fetch.legend import (
    NO_DATA_EDR,
    NO_DATA_WIND_KT,
    classify_edr_pixel,
    classify_wind_pixel,
)
from turbcast.models import ModelProvenance, RasterSample, RouteWaypoint
from turbcast.storage.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

WAFS_BASE_URL = "https://aviationweather.gov/data/products/wafs"
WAFS_SOURCE = "noaa-awc-wafs"
WAFS_LEVEL_MB = 301

EARTH_RADIUS_M = 6378137.0
WEB_MERCATOR_X_MAX = math.pi * EARTH_RADIUS_M
MAX_MERCATOR_LAT = 85.0

RUN_CYCLE_HOURS = 6
FORECAST_STEP_HOURS = 3
MAX_RUN_ATTEMPTS = 4
WAFS_MAX_FORECAST_HOUR = 36

RASTER_CACHE_TTL_SECONDS = 20 * 60

PRODUCTS = ("edr", "wind")


@dataclass(frozen=True)
class ModelRun:
    """A model cycle identified by its UTC date and hour."""

    date: str  # YYYYMMDD
    hour: str  # HH, one of 00/06/12/18

    @classmethod
    def from_datetime(cls, when: datetime) -> ModelRun:
        """Floor ``when`` to the latest 6-hourly cycle (naive datetimes are UTC)."""
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        when = when.astimezone(timezone.utc)
        cycle = (when.hour // RUN_CYCLE_HOURS) * RUN_CYCLE_HOURS
        return cls(date=when.strftime("%Y%m%d"), hour=f"{cycle:02d}")

    @property
    def start(self) -> datetime:
        return datetime.strptime(f"{self.date}{self.hour}", "%Y%m%d%H").replace(tzinfo=timezone.utc)

    @property
    def run_id(self) -> str:
        return f"{self.date}_{self.hour}"

    def previous(self) -> ModelRun:
        """The cycle six hours earlier."""
        return ModelRun.from_datetime(self.start - timedelta(hours=RUN_CYCLE_HOURS))


def build_wafs_url(run: ModelRun, forecast_hour: int, product: str, base_url: str = WAFS_BASE_URL) -> str:
    """Resource address of one overlay image, matching the AWC naming scheme."""
    if product not in PRODUCTS:
        raise ValueError(f"Unknown WAFS product: {product}")
    fhr = f"{forecast_hour:02d}"
    return (
        f"{base_url}/{run.date}/{run.hour}/"
        f"{run.date}_{run.hour}_F{fhr}_wafs_{WAFS_LEVEL_MB}_{product}_m.png"
    )


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def forecast_hours_for_points(
    count: int,
    run: ModelRun,
    departure: datetime,
    duration_minutes: float,
    max_forecast_hour: int = WAFS_MAX_FORECAST_HOUR,
) -> list[int]:
    """Forecast hour bucket for each of ``count`` evenly spread route points.

    Each point's time is departure plus its share of the flight duration;
    the offset from the run start is rounded to the nearest 3-hour step and
    clamped to the model horizon.
    """
    if departure.tzinfo is None:
        departure = departure.replace(tzinfo=timezone.utc)
    hours: list[int] = []
    for idx in range(count):
        minutes = duration_minutes * (idx / max(1, count - 1))
        point_time = departure + timedelta(minutes=minutes)
        raw = (point_time - run.start).total_seconds() / 3600
        stepped = _round_half_up(raw / FORECAST_STEP_HOURS) * FORECAST_STEP_HOURS
        hours.append(max(0, min(max_forecast_hour, stepped)))
    return hours


def headline_forecast_hour(hours: Sequence[int]) -> int:
    """Most frequent forecast hour; ties resolve to the first one seen."""
    if not hours:
        return 0
    return Counter(hours).most_common(1)[0][0]


def inferred_mercator_y_max(width: int, height: int) -> float:
    """Y extent of the overlay, assuming x and y share the same scale.

    The AWC overlays are 900x600 which puts the cutoff near +/-76 degrees.
    """
    return WEB_MERCATOR_X_MAX * (height / width)


def lonlat_to_pixel(lon: float, lat: float, width: int, height: int) -> Optional[tuple[int, int]]:
    """Project (lon, lat) to pixel coordinates on a Web Mercator overlay.

    Returns None when the point falls outside the image's latitude band.
    """
    lat_clamped = max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, lat))
    lon_norm = ((lon + 180) % 360 + 360) % 360 - 180

    x_m = math.radians(lon_norm) * EARTH_RADIUS_M
    y_m = EARTH_RADIUS_M * math.log(math.tan(math.pi / 4 + math.radians(lat_clamped) / 2))

    y_max = inferred_mercator_y_max(width, height)
    if y_m < -y_max or y_m > y_max:
        return None

    x = _round_half_up((x_m + WEB_MERCATOR_X_MAX) / (2 * WEB_MERCATOR_X_MAX) * (width - 1))
    y = _round_half_up((y_max - y_m) / (2 * y_max) * (height - 1))

    if x < 0 or x >= width or y < 0 or y >= height:
        return None
    return x, y


class RasterSampler(Protocol):
    """Anything that can turn route waypoints into per-point EDR and wind."""

    def sample(
        self,
        waypoints: Sequence[RouteWaypoint],
        departure_time: Optional[datetime] = None,
        duration_minutes: float = 0,
        cancel: Optional[threading.Event] = None,
    ) -> RasterSample:
        ...


class WafsSampler:
    """Samples the WAFS EDR and wind overlays along a route.

    Decoded images and resolved runs are kept in injected TTL caches so that
    overlapping requests share downloads. A cache slot is written only after
    the image has been fully downloaded and decoded.
    """

    def __init__(
        self,
        base_url: str = WAFS_BASE_URL,
        timeout: float = 20,
        image_cache: TTLCache[Image.Image] | None = None,
        run_cache: TTLCache[ModelRun] | None = None,
        max_forecast_hour: int = WAFS_MAX_FORECAST_HOUR,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.max_forecast_hour = max_forecast_hour
        self.image_cache = image_cache if image_cache is not None else TTLCache(RASTER_CACHE_TTL_SECONDS)
        self.run_cache = run_cache if run_cache is not None else TTLCache(RASTER_CACHE_TTL_SECONDS)
        self.session = session or requests.Session()

    def fetch_image(self, url: str) -> Image.Image:
        """Download and decode one overlay, served from cache when fresh.

        Raises:
            requests.HTTPError: On any non-success status (404 included).
        """
        cached = self.image_cache.get(url)
        if cached is not None:
            return cached

        logger.debug("Fetching WAFS overlay %s", url)
        resp = self.session.get(
            url,
            headers={"User-Agent": "TurbCast/1.0", "Accept": "image/png"},
            timeout=self.timeout,
        )
        resp.raise_for_status()

        with Image.open(BytesIO(resp.content)) as raw:
            image = raw.convert("RGBA")

        self.image_cache.set(url, image)
        return image

    def fetch_with_run_fallback(
        self, initial_run: ModelRun, forecast_hour: int, product: str
    ) -> tuple[Image.Image, ModelRun]:
        """Fetch a product, stepping back one cycle on each 404.

        At most ``MAX_RUN_ATTEMPTS`` runs are tried counting from
        ``initial_run``. Non-404 HTTP errors propagate immediately.

        Raises:
            RasterNotFoundError: If every attempted run returned 404.
        """
        key = (initial_run.run_id, forecast_hour, product)
        run = self.run_cache.get(key) or initial_run
        steps_back = int((initial_run.start - run.start) / timedelta(hours=RUN_CYCLE_HOURS))
        attempted: list[str] = []

        for _ in range(max(1, MAX_RUN_ATTEMPTS - steps_back)):
            url = build_wafs_url(run, forecast_hour, product, self.base_url)
            attempted.append(run.run_id)
            try:
                image = self.fetch_image(url)
            except requests.HTTPError as exc:
                if exc.response is None or exc.response.status_code != 404:
                    raise
                logger.info(
                    "WAFS %s F%02d not published for run %s, stepping back",
                    product, forecast_hour, run.run_id,
                )
                run = run.previous()
                continue

            self.run_cache.set(key, run)
            return image, run

        raise RasterNotFoundError(product, forecast_hour, attempted)

    def sample(
        self,
        waypoints: Sequence[RouteWaypoint],
        departure_time: Optional[datetime] = None,
        duration_minutes: float = 0,
        cancel: Optional[threading.Event] = None,
    ) -> RasterSample:
        """Decode EDR and wind speed at every waypoint.

        ``cancel`` is checked before each forecast hour is fetched.

        Raises:
            SamplingCancelledError: If ``cancel`` was set part way through.
            RasterNotFoundError: If a needed product could not be found.
            requests.RequestException: On other transport or HTTP failures.
        """
        if not waypoints:
            return RasterSample(
                model=ModelProvenance(source=WAFS_SOURCE, run="00000000_00", forecast_hour=0),
            )

        base_time = departure_time or datetime.now(timezone.utc)
        run = ModelRun.from_datetime(base_time)
        hours = forecast_hours_for_points(
            len(waypoints), run, base_time, duration_minutes, self.max_forecast_hour,
        )
        headline_fh = headline_forecast_hour(hours)
        headline_run: ModelRun | None = None

        edr_by_point = [NO_DATA_EDR] * len(waypoints)
        wind_by_point = [NO_DATA_WIND_KT] * len(waypoints)

        with ThreadPoolExecutor(max_workers=len(PRODUCTS)) as pool:
            for fh in dict.fromkeys(hours):
                if cancel is not None and cancel.is_set():
                    raise SamplingCancelledError(
                        f"WAFS sampling cancelled before F{fh:02d} (run {run.run_id})"
                    )
                edr_future = pool.submit(self.fetch_with_run_fallback, run, fh, "edr")
                wind_future = pool.submit(self.fetch_with_run_fallback, run, fh, "wind")
                try:
                    edr_image, edr_run = edr_future.result()
                    wind_image, _ = wind_future.result()
                except BaseException:
                    wind_future.cancel()
                    raise

                for i, wp in enumerate(waypoints):
                    if hours[i] != fh:
                        continue
                    edr_by_point[i] = _sample_pixel(edr_image, wp, classify_edr_pixel, NO_DATA_EDR)
                    wind_by_point[i] = _sample_pixel(wind_image, wp, classify_wind_pixel, NO_DATA_WIND_KT)

                if fh == headline_fh:
                    headline_run = edr_run

        resolved = headline_run or run
        logger.info(
            "WAFS sampled %d points (run %s, headline F%02d, %d forecast hours)",
            len(waypoints), resolved.run_id, headline_fh, len(set(hours)),
        )
        return RasterSample(
            edr_by_point=edr_by_point,
            wind_speed_kt_by_point=wind_by_point,
            model=ModelProvenance(
                source=WAFS_SOURCE,
                run=resolved.run_id,
                forecast_hour=headline_fh,
                level_mb=WAFS_LEVEL_MB,
            ),
        )


def _sample_pixel(image: Image.Image, wp: RouteWaypoint, classify, no_data: float) -> float:
    pixel = lonlat_to_pixel(wp.lon, wp.lat, image.width, image.height)
    if pixel is None:
        return no_data
    return classify(image.getpixel(pixel))
