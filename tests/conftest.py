"""Shared test fixtures."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from io import BytesIO

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from turbcast.airports import AirportDirectory
from turbcast.db.models import Base
from turbcast.models import Airport, HazardFeeds, ModelProvenance, RasterSample, RouteWaypoint
from turbcast.route import calculate_great_circle_route


def png_bytes(rgba: tuple[int, int, int, int], size: tuple[int, int] = (90, 60)) -> bytes:
    """A solid-colour RGBA PNG, shaped like the 3:2 WAFS overlays."""
    buf = BytesIO()
    Image.new("RGBA", size, rgba).save(buf, format="PNG")
    return buf.getvalue()


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine for tests."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def jfk():
    return Airport(
        iata="JFK", icao="KJFK", name="John F. Kennedy International",
        city="New York", country="US", lat=40.6413, lon=-73.7781,
    )


@pytest.fixture
def lhr():
    return Airport(
        iata="LHR", icao="EGLL", name="Heathrow",
        city="London", country="GB", lat=51.4700, lon=-0.4543,
    )


@pytest.fixture
def bos():
    return Airport(
        iata="BOS", icao="KBOS", name="Logan International",
        city="Boston", country="US", lat=42.3656, lon=-71.0096,
    )


@pytest.fixture
def airports(jfk, lhr, bos):
    return AirportDirectory([jfk, lhr, bos])


@pytest.fixture
def short_route(jfk, bos):
    """JFK → BOS, about 300 km: a handful of waypoints."""
    return calculate_great_circle_route(jfk.coordinate, bos.coordinate, spacing_km=50.0)


@pytest.fixture
def make_waypoint():
    def _make(lat=40.0, lon=-70.0, altitude_ft=35000, index=0, distance=0.0):
        return RouteWaypoint(
            lat=lat, lon=lon, altitude_ft=altitude_ft, index=index,
            distance_from_origin_km=distance,
        )
    return _make


@pytest.fixture
def make_png():
    return png_bytes


class FakeSampler:
    """Raster sampler returning a uniform field, optionally failing or blocking."""

    def __init__(self, edr: float = 0.3, wind_kt: float = 80.0):
        self.edr = edr
        self.wind_kt = wind_kt
        self.error: Exception | None = None
        self.block: threading.Event | None = None
        self.calls = 0
        self.departures = []
        self.cancel: threading.Event | None = None

    def sample(self, waypoints, departure_time=None, duration_minutes=0, cancel=None):
        self.calls += 1
        self.departures.append(departure_time)
        self.cancel = cancel
        if self.block is not None:
            self.block.wait(5)
        if self.error is not None:
            raise self.error
        return RasterSample(
            edr_by_point=[self.edr] * len(waypoints),
            wind_speed_kt_by_point=[self.wind_kt] * len(waypoints),
            model=ModelProvenance(run="20261019_12", forecast_hour=0),
        )


class FakeHazards:
    """Hazard source returning fixed feeds, optionally failing."""

    def __init__(self, feeds: HazardFeeds | None = None):
        self.feeds = feeds or HazardFeeds()
        self.error: Exception | None = None
        self.bboxes = []

    def fetch_hazards(self, bbox):
        self.bboxes.append(bbox)
        if self.error is not None:
            raise self.error
        return self.feeds


@pytest.fixture
def fake_sampler():
    return FakeSampler()


@pytest.fixture
def fake_hazards():
    return FakeHazards()
