"""Exceptions raised by the forecast pipeline."""

from __future__ import annotations


class TurbcastError(Exception):
    """Base exception for all turbcast errors."""


class InvalidInputError(TurbcastError, ValueError):
    """Raised for malformed caller input (coordinates, spacing, codes)."""


class InvalidRouteError(InvalidInputError):
    """Raised when a route cannot be built, e.g. origin equals destination."""


class AirportNotFoundError(TurbcastError, KeyError):
    """Raised when an airport code is not in the coordinate store."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Airport not found: {code}")

    def __str__(self) -> str:
        return self.args[0]


class UpstreamUnavailableError(TurbcastError):
    """Raised when an external feed, raster or store cannot be reached."""


class RasterNotFoundError(UpstreamUnavailableError):
    """Raised when every run in the fallback chain returned 404."""

    def __init__(self, product: str, forecast_hour: int, attempted_runs: list[str]):
        self.product = product
        self.forecast_hour = forecast_hour
        self.attempted_runs = attempted_runs
        super().__init__(
            f"WAFS product not found after run fallbacks: {product} F{forecast_hour:02d} "
            f"(tried {', '.join(attempted_runs)})"
        )


class SamplingCancelledError(TurbcastError):
    """Raised when raster sampling is abandoned before all forecast hours ran."""
