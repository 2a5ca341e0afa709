"""Aviation Weather Center client for SIGMETs, AIRMETs and PIREPs.

All three feeds are queried with the same bounding box. Records from the
different feeds are normalized into :class:`HazardReport`.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import requests

from turbcast.errors import UpstreamUnavailableError
from turbcast.models import BoundingBox, HazardFeeds, HazardReport

logger = logging.getLogger(__name__)

AWC_BASE_URL = "https://aviationweather.gov/api/data"

FEEDS = ("sigmet", "airmet", "pirep")

_RAW_TEXT_KEYS = ("rawAirSigmet", "rawSigmet", "rawAirmet", "rawText", "rawOb", "raw")
_TIMESTAMP_KEYS = ("obsTime", "receiptTime", "validTimeFrom", "issueTime")


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _first(raw: dict, keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def parse_hazard_record(raw: dict) -> HazardReport:
    """Normalize one feed record (SIGMET, AIRMET or PIREP JSON) into a HazardReport."""
    intensity = None
    turbulence = raw.get("turbulence")
    if isinstance(turbulence, dict):
        intensity = turbulence.get("intensity")
    intensity = intensity or raw.get("tbInt1") or raw.get("turbulenceIntensity")

    severity = raw.get("severity")

    return HazardReport(
        lat=_as_float(raw.get("lat")),
        lon=_as_float(raw.get("lon")),
        hazard=str(raw["hazard"]) if raw.get("hazard") else None,
        severity=str(severity) if severity not in (None, "") else None,
        raw_text=_first(raw, _RAW_TEXT_KEYS),
        turbulence_intensity=str(intensity) if intensity else None,
        observed_at=_first(raw, _TIMESTAMP_KEYS),
    )


class AviationWeatherClient:
    """Client for the AWC data API hazard feeds."""

    def __init__(self, base_url: str = AWC_BASE_URL, timeout: float = 20):
        self.base_url = base_url
        self.timeout = timeout
        self.session = requests.Session()

    def fetch_feed(self, feed: str, bbox: BoundingBox) -> list[HazardReport]:
        """Fetch one feed for a bounding box.

        Raises:
            UpstreamUnavailableError: On transport errors, non-success status
                or an unparseable body.
        """
        url = f"{self.base_url}/{feed}"
        params = {"bbox": bbox.as_query(), "format": "json"}
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            # AWC answers 204 with an empty body when nothing matches.
            if resp.status_code == 204 or not resp.content:
                return []
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise UpstreamUnavailableError(f"{feed} feed failed: {exc}") from exc

        if not isinstance(data, list):
            logger.warning("Unexpected %s payload shape: %s", feed, type(data).__name__)
            return []

        records = [parse_hazard_record(r) for r in data if isinstance(r, dict)]
        logger.info("Fetched %d %s records for bbox %s", len(records), feed, bbox.as_query())
        return records

    def fetch_hazards(self, bbox: BoundingBox) -> HazardFeeds:
        """Fetch all three feeds in parallel, continuing on individual failures.

        Raises:
            UpstreamUnavailableError: If every feed failed.
        """
        results: dict[str, list[HazardReport]] = {}
        failures: list[str] = []

        with ThreadPoolExecutor(max_workers=len(FEEDS)) as pool:
            futures = {feed: pool.submit(self.fetch_feed, feed, bbox) for feed in FEEDS}
            for feed, future in futures.items():
                try:
                    results[feed] = future.result()
                except UpstreamUnavailableError:
                    logger.warning("Failed to fetch %s feed", feed, exc_info=True)
                    failures.append(feed)

        if len(failures) == len(FEEDS):
            raise UpstreamUnavailableError("All advisory feeds failed")

        return HazardFeeds(
            sigmets=results.get("sigmet", []),
            airmets=results.get("airmet", []),
            pireps=results.get("pirep", []),
        )
