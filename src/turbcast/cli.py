"""CLI entry point."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime

from dotenv import load_dotenv

from turbcast.airports import AirportDirectory
from turbcast.analysis.fusion import describe_level
from turbcast.config import load_settings
from turbcast.db.engine import SessionLocal, get_engine, init_db
from turbcast.errors import AirportNotFoundError, InvalidInputError
from turbcast.models import ForecastResult
from turbcast.pipeline import build_forecast_service
from turbcast.storage.forecast_cache import ForecastCache

logger = logging.getLogger(__name__)


def _parse_departure(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid ISO datetime: {value}")


def print_forecast(result: ForecastResult) -> None:
    """Human-readable segment table plus summary."""
    route = result.route
    meta = result.metadata
    print(f"{result.flight_number}: {result.origin.iata} → {result.destination.iata}")
    print(
        f"  {route.total_distance_km:.0f} km, cruise {route.cruise_altitude_ft} ft, "
        f"~{route.estimated_duration_min} min"
    )
    if meta.model is not None:
        print(f"  Model: {meta.model.source} run {meta.model.run} F{meta.model.forecast_hour:02d}")
    else:
        print("  Model: unavailable")
    print(
        f"  Reports: {meta.pirep_count} PIREP, {meta.sigmet_count} SIGMET, "
        f"{meta.airmet_count} AIRMET (quality {meta.data_quality.value})"
    )
    if meta.using_fallback:
        print("  Using heuristic estimates (no model or report data)")
    if meta.model_only:
        print("  Advisory feeds unavailable, model data only")
    if result.cached:
        print("  (cached)")
    print()

    print(f"  {'#':>4} {'Lat':>8} {'Lon':>9} {'Dist km':>8} {'Alt ft':>7} {'EDR':>6}  {'Level':<9} {'Wind':>8}")
    for seg in result.forecast:
        t = seg.turbulence
        print(
            f"  {seg.index:>4} {seg.lat:>8.3f} {seg.lon:>9.3f} {seg.distance_from_origin_km:>8.0f} "
            f"{seg.altitude_ft:>7} {t.edr:>6.3f}  {t.level.value:<9} "
            f"{t.wind_direction_deg:03.0f}/{t.wind_speed_kt:.0f}kt"
        )

    summary = result.summary
    print()
    print(f"  Worst: {summary.max_level.value} (EDR {summary.max_edr:.3f}), {summary.smooth_percentage}% smooth")
    print(f"  {describe_level(summary.max_level)}")


def run_forecast(args: argparse.Namespace) -> int:
    settings = load_settings()
    session_factory = None
    if not args.no_cache:
        init_db(get_engine())
        session_factory = SessionLocal

    service = build_forecast_service(settings, session_factory)
    try:
        result = service.get_forecast(
            args.origin,
            args.destination,
            departure=args.departure,
            use_cache=not args.no_cache,
            spacing_km=args.spacing,
        )
    except (AirportNotFoundError, InvalidInputError) as exc:
        print(f"Error: {exc}")
        return 1

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), indent=2))
    else:
        print_forecast(result)
    return 0


def run_airports(args: argparse.Namespace) -> int:
    directory = AirportDirectory.from_yaml(load_settings().airports_path)
    for airport in directory.search(args.query or "", limit=len(directory)):
        print(f"  {airport.iata}  {airport.icao:<4}  {airport.name}, {airport.city} ({airport.country})")
    return 0


def run_cache_clean(args: argparse.Namespace) -> int:
    settings = load_settings()
    init_db(get_engine())
    removed = ForecastCache(SessionLocal, ttl=settings.cache_ttl).sweep_expired()
    print(f"Removed {removed} expired cache entries")
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="turbcast",
        description="Turbulence forecasts along great-circle flight routes",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    forecast_parser = subparsers.add_parser(
        "forecast", help="Forecast turbulence between two airports"
    )
    forecast_parser.add_argument("origin", metavar="ORIGIN", help="IATA or ICAO code")
    forecast_parser.add_argument("destination", metavar="DEST", help="IATA or ICAO code")
    forecast_parser.add_argument(
        "--departure", type=_parse_departure,
        help="Departure time, ISO 8601 (default: now, naive times are UTC)",
    )
    forecast_parser.add_argument(
        "--spacing", type=float, default=None,
        help="Waypoint spacing in km (default: TURBCAST_SPACING_KM or 50)",
    )
    forecast_parser.add_argument(
        "--json", action="store_true", help="Print the full result as JSON"
    )
    forecast_parser.add_argument(
        "--no-cache", action="store_true", help="Bypass the forecast cache"
    )

    airports_parser = subparsers.add_parser("airports", help="List known airports")
    airports_parser.add_argument("query", nargs="?", help="Filter by code, name or city")

    subparsers.add_parser("cache-clean", help="Delete expired cache entries")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if args.command == "forecast":
        code = run_forecast(args)
    elif args.command == "airports":
        code = run_airports(args)
    else:
        code = run_cache_clean(args)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
