"""API endpoints for route forecasts and airport lookup."""

from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from turbcast.db.engine import SessionLocal, get_engine
from turbcast.errors import AirportNotFoundError, InvalidInputError
from turbcast.models import Airport, ForecastResult
from turbcast.pipeline import ForecastService, build_forecast_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["forecast"])

MAX_AIRPORT_RESULTS = 20


@lru_cache(maxsize=1)
def get_forecast_service() -> ForecastService:
    """Process-wide service; the raster caches are shared across requests."""
    get_engine()
    return build_forecast_service(session_factory=SessionLocal)


@router.get("/forecast", response_model=ForecastResult)
def get_forecast(
    origin: str = Query(..., min_length=3, max_length=4),
    destination: str = Query(..., min_length=3, max_length=4),
    flight_number: Optional[str] = Query(None, max_length=16),
    departure: Optional[datetime] = None,
    service: ForecastService = Depends(get_forecast_service),
):
    """Turbulence forecast along the great-circle route between two airports."""
    try:
        return service.get_forecast(
            origin, destination, departure=departure, flight_number=flight_number,
        )
    except AirportNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/airports", response_model=list[Airport])
def search_airports(
    q: str = "",
    service: ForecastService = Depends(get_forecast_service),
):
    """Airports whose code, name or city matches ``q``."""
    return service.airports.search(q, limit=MAX_AIRPORT_RESULTS)
