"""Great-circle route construction with a climb/cruise/descent altitude profile."""

from __future__ import annotations

import math

from turbcast.errors import InvalidInputError, InvalidRouteError
from turbcast.models import Coordinate, FlightRoute, RouteWaypoint

EARTH_RADIUS_KM = 6371.0088
EARTH_RADIUS_NM = 3440.065

CRUISE_SPEED_KMH = 800.0

CLIMB_START_FT = 5000
DESCENT_END_FT = 2000
MAX_CLIMB_KM = 150.0
MAX_DESCENT_KM = 200.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    return _central_angle(lat1, lon1, lat2, lon2) * EARTH_RADIUS_KM


def haversine_nm(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in nautical miles."""
    return _central_angle(lat1, lon1, lat2, lon2) * EARTH_RADIUS_NM


def _central_angle(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def initial_bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute great-circle initial bearing from point 1 to point 2 in degrees [0, 360)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dlon = math.radians(lon2 - lon1)

    x = math.sin(dlon) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlon)
    return math.degrees(math.atan2(x, y)) % 360


def normalize_lon(lon: float) -> float:
    """Wrap a longitude into (-180, 180]."""
    wrapped = (lon + 180.0) % 360.0 - 180.0
    return 180.0 if wrapped == -180.0 else wrapped


def destination_point(
    lat: float, lon: float, bearing_deg: float, distance_km: float
) -> tuple[float, float]:
    """Advance ``distance_km`` along ``bearing_deg`` from (lat, lon) on the sphere.

    Returns:
        (lat, lon) of the destination, longitude wrapped into (-180, 180].
    """
    delta = distance_km / EARTH_RADIUS_KM
    theta = math.radians(bearing_deg)
    phi1 = math.radians(lat)
    lam1 = math.radians(lon)

    sin_phi2 = math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    phi2 = math.asin(max(-1.0, min(1.0, sin_phi2)))
    lam2 = lam1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * sin_phi2,
    )
    return math.degrees(phi2), normalize_lon(math.degrees(lam2))


def cruise_altitude_for_distance(distance_km: float) -> int:
    """Pick a cruise altitude (ft) from the route length."""
    if distance_km < 500:
        return 25000
    if distance_km < 1500:
        return 33000
    if distance_km < 3000:
        return 37000
    return 41000


def altitude_at_fraction(fraction: float, cruise_altitude_ft: int, total_distance_km: float) -> int:
    """Altitude (ft) at a fraction of the route: linear climb, cruise, linear descent."""
    climb_fraction = min(MAX_CLIMB_KM, total_distance_km * 0.15) / total_distance_km
    descent_fraction = min(MAX_DESCENT_KM, total_distance_km * 0.2) / total_distance_km

    if fraction < climb_fraction:
        progress = fraction / climb_fraction
        return round(CLIMB_START_FT + (cruise_altitude_ft - CLIMB_START_FT) * progress)
    if fraction > 1 - descent_fraction:
        progress = (fraction - (1 - descent_fraction)) / descent_fraction
        return round(cruise_altitude_ft - (cruise_altitude_ft - DESCENT_END_FT) * progress)
    return cruise_altitude_ft


def calculate_great_circle_route(
    origin: Coordinate,
    destination: Coordinate,
    spacing_km: float = 50.0,
) -> FlightRoute:
    """Build an evenly spaced great-circle route between two coordinates.

    Each intermediate waypoint is placed with the direct geodesic formula,
    advancing ``fraction * total_distance`` along the initial bearing, so the
    path stays on the great circle for long-haul routes.

    Raises:
        InvalidInputError: If ``spacing_km`` is not positive.
        InvalidRouteError: If origin and destination coincide.
    """
    if spacing_km <= 0:
        raise InvalidInputError(f"Waypoint spacing must be positive, got {spacing_km}")

    total_distance = haversine_km(origin.lat, origin.lon, destination.lat, destination.lon)
    if total_distance <= 0:
        raise InvalidRouteError("Origin and destination are the same point")

    cruise_altitude = cruise_altitude_for_distance(total_distance)
    count = math.ceil(total_distance / spacing_km)
    bearing = initial_bearing_deg(origin.lat, origin.lon, destination.lat, destination.lon)

    waypoints: list[RouteWaypoint] = []
    for i in range(count + 1):
        fraction = i / count
        if i == 0:
            lat, lon = origin.lat, origin.lon
        elif i == count:
            lat, lon = destination.lat, destination.lon
        else:
            lat, lon = destination_point(origin.lat, origin.lon, bearing, total_distance * fraction)

        waypoints.append(
            RouteWaypoint(
                lat=lat,
                lon=lon,
                distance_from_origin_km=total_distance * fraction,
                altitude_ft=altitude_at_fraction(fraction, cruise_altitude, total_distance),
                index=i,
            )
        )

    return FlightRoute(
        origin=origin,
        destination=destination,
        waypoints=waypoints,
        total_distance_km=total_distance,
        cruise_altitude_ft=cruise_altitude,
        estimated_duration_min=round(total_distance / CRUISE_SPEED_KMH * 60),
    )
