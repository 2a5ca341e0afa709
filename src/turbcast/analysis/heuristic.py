"""Heuristic turbulence and wind estimates used when no model data is available.

Randomness is replaced by :func:`deterministic_unit`, a pure function of the
point and a per-phenomenon salt, so identical routes always produce identical
forecasts.
"""

from __future__ import annotations

import hashlib
from enum import IntEnum

from turbcast.models import RouteWaypoint

BASE_EDR = 0.05
HEURISTIC_EDR_CAP = 0.65


class Salt(IntEnum):
    """One salt per phenomenon so each draws an independent value."""

    JET_STREAM = 1
    MOUNTAIN_WAVE = 2
    CONVECTIVE_TRIGGER = 3
    CONVECTIVE_MAGNITUDE = 4
    CLEAR_AIR = 5
    WIND_SPEED = 6
    WIND_DIRECTION = 7
    PIREP_JITTER = 8


def deterministic_unit(lat: float, lon: float, index: int, salt: int) -> float:
    """Map (lat, lon, index, salt) to a uniform-looking value in [0, 1)."""
    key = f"{lat:.6f}|{lon:.6f}|{index}|{int(salt)}".encode()
    digest = hashlib.sha256(key).digest()
    return int.from_bytes(digest[:8], "big") / 2**64


def _unit(wp: RouteWaypoint, salt: Salt) -> float:
    return deterministic_unit(wp.lat, wp.lon, wp.index, salt)


def atmospheric_edr(wp: RouteWaypoint) -> float:
    """Estimate EDR from altitude/latitude bands.

    - Jet stream: FL280-FL420 between 30 and 45 degrees latitude.
    - Mountain wave: 35-50 degrees latitude between 15000 and 35000 ft.
    - Convection: below 35 degrees and 30000 ft, triggered 15% of the time.
    - Clear air: a small component everywhere.
    """
    edr = BASE_EDR
    abs_lat = abs(wp.lat)
    alt = wp.altitude_ft

    if 28000 < alt < 42000 and 30 < abs_lat < 45:
        edr += 0.08 + _unit(wp, Salt.JET_STREAM) * 0.12

    if 35 < abs_lat < 50 and 15000 < alt < 35000:
        edr += _unit(wp, Salt.MOUNTAIN_WAVE) * 0.1

    if abs_lat < 35 and alt < 30000:
        if _unit(wp, Salt.CONVECTIVE_TRIGGER) < 0.15:
            edr += 0.15 + _unit(wp, Salt.CONVECTIVE_MAGNITUDE) * 0.15

    edr += _unit(wp, Salt.CLEAR_AIR) * 0.05

    return min(edr, HEURISTIC_EDR_CAP)


def synthetic_wind_speed_kt(wp: RouteWaypoint) -> float:
    """Wind speed that scales roughly with altitude, with a +/-20 kt perturbation."""
    base = wp.altitude_ft / 400
    speed = round(base + (_unit(wp, Salt.WIND_SPEED) - 0.5) * 40)
    return float(max(0, speed))


def synthetic_wind_direction_deg(wp: RouteWaypoint) -> float:
    """Westerly in the northern hemisphere, easterly in the southern, +/-30 degrees."""
    base = 270 if wp.lat > 0 else 90
    direction = round(base + (_unit(wp, Salt.WIND_DIRECTION) - 0.5) * 60)
    return float(direction % 360)
