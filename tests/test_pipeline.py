"""Tests for the forecast pipeline and the cached forecast service."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from turbcast.config import Settings
from turbcast.errors import AirportNotFoundError, InvalidRouteError, RasterNotFoundError, UpstreamUnavailableError
from turbcast.models import DataQuality, HazardFeeds, HazardReport
from turbcast.pipeline import ForecastService, compute_turbulence_forecast
from turbcast.storage.forecast_cache import ForecastCache

NOW = datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)


class TestComputeForecast:
    def test_raster_and_feeds(self, short_route, fake_sampler, fake_hazards):
        segments, meta = compute_turbulence_forecast(short_route, fake_sampler, fake_hazards, now=NOW)

        assert len(segments) == len(short_route.waypoints)
        assert all(s.turbulence.edr == 0.3 for s in segments)
        assert meta.model.run == "20261019_12"
        assert meta.using_fallback is False
        assert meta.model_only is False

    def test_feeds_queried_with_padded_bbox(self, short_route, fake_sampler, fake_hazards):
        compute_turbulence_forecast(short_route, fake_sampler, fake_hazards, now=NOW)

        bbox = fake_hazards.bboxes[0]
        assert bbox.min_lat == pytest.approx(min(wp.lat for wp in short_route.waypoints) - 2.0)
        assert bbox.max_lon == pytest.approx(max(wp.lon for wp in short_route.waypoints) + 2.0)

    def test_feed_failure_is_model_only(self, short_route, fake_sampler, fake_hazards, caplog):
        fake_hazards.error = UpstreamUnavailableError("All advisory feeds failed")

        segments, meta = compute_turbulence_forecast(short_route, fake_sampler, fake_hazards, now=NOW)

        assert meta.model_only is True
        assert meta.using_fallback is False
        assert meta.model is not None
        assert all(s.turbulence.edr == 0.3 for s in segments)
        assert "Hazard feeds failed" in caplog.text

    def test_raster_failure_with_no_reports_is_fallback(self, short_route, fake_sampler, fake_hazards):
        fake_sampler.error = RasterNotFoundError("edr", 0, ["20261019_12"])

        _, meta = compute_turbulence_forecast(short_route, fake_sampler, fake_hazards, now=NOW)

        assert meta.using_fallback is True
        assert meta.model is None
        assert meta.model_only is False
        assert meta.data_quality == DataQuality.LOW

    def test_unexpected_sampler_error_degrades(self, short_route, fake_sampler, fake_hazards):
        fake_sampler.error = OSError("truncated PNG")
        _, meta = compute_turbulence_forecast(short_route, fake_sampler, fake_hazards, now=NOW)
        assert meta.model is None

    def test_reports_used_when_raster_missing(self, short_route, fake_sampler, fake_hazards):
        fake_sampler.error = RasterNotFoundError("edr", 0, ["20261019_12"])
        fake_hazards.feeds = HazardFeeds(sigmets=[HazardReport(hazard="TURB", severity="MOD")])

        segments, meta = compute_turbulence_forecast(short_route, fake_sampler, fake_hazards, now=NOW)

        assert meta.using_fallback is False
        assert meta.sigmet_count == 1
        assert all(s.turbulence.edr == 0.25 for s in segments)

    def test_slow_sampler_times_out(self, short_route, fake_sampler, fake_hazards):
        fake_sampler.block = threading.Event()
        try:
            _, meta = compute_turbulence_forecast(
                short_route, fake_sampler, fake_hazards, timeout=0.2, now=NOW,
            )
        finally:
            fake_sampler.block.set()

        assert meta.model is None
        assert meta.using_fallback is True
        assert meta.model_only is False
        assert fake_sampler.cancel.is_set()


@pytest.fixture
def service(airports, session_factory, fake_sampler, fake_hazards):
    return ForecastService(
        airports=airports,
        cache=ForecastCache(session_factory),
        sampler=fake_sampler,
        hazards=fake_hazards,
        settings=Settings(),
    )


class TestForecastService:
    def test_result_shape(self, service):
        result = service.get_forecast("JFK", "BOS")

        assert result.flight_number == "JFK-BOS"
        assert result.origin.iata == "JFK"
        assert result.destination.iata == "BOS"
        assert result.route.cruise_altitude_ft == 25000
        assert len(result.forecast) > 2
        assert result.summary.max_level.value == "moderate"
        assert result.cached is False

    def test_second_call_is_cached(self, service, fake_sampler):
        service.get_forecast("JFK", "BOS")
        again = service.get_forecast("jfk", "kbos")

        assert again.cached is True
        assert fake_sampler.calls == 1

    def test_cached_result_carries_new_flight_number(self, service):
        service.get_forecast("JFK", "BOS", flight_number="DL100")
        again = service.get_forecast("JFK", "BOS", flight_number="B6 1000")
        assert again.flight_number == "B6 1000"

    def test_cache_bypass(self, service, fake_sampler):
        service.get_forecast("JFK", "BOS")
        result = service.get_forecast("JFK", "BOS", use_cache=False)

        assert result.cached is False
        assert fake_sampler.calls == 2

    def test_custom_spacing_not_cached(self, service, fake_sampler):
        service.get_forecast("JFK", "BOS")
        result = service.get_forecast("JFK", "BOS", spacing_km=25)

        assert result.cached is False
        assert fake_sampler.calls == 2

    def test_departure_is_part_of_cache_identity(self, service, fake_sampler):
        service.get_forecast("JFK", "BOS", departure=datetime(2026, 10, 19, 13, tzinfo=timezone.utc))
        service.get_forecast("JFK", "BOS", departure=datetime(2026, 10, 19, 19, tzinfo=timezone.utc))
        assert fake_sampler.calls == 2

    def test_departures_within_one_hour_are_cached_separately(self, service, fake_sampler):
        first = service.get_forecast("JFK", "BOS", departure=datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc))
        second = service.get_forecast("JFK", "BOS", departure=datetime(2026, 10, 19, 13, 59, tzinfo=timezone.utc))

        assert first.cached is False
        assert second.cached is False
        assert fake_sampler.calls == 2

    def test_departure_seconds_are_truncated(self, service, fake_sampler):
        service.get_forecast("JFK", "BOS", departure=datetime(2026, 10, 19, 13, 59, 5, tzinfo=timezone.utc))
        again = service.get_forecast("JFK", "BOS", departure=datetime(2026, 10, 19, 13, 59, 55, tzinfo=timezone.utc))

        assert again.cached is True
        assert fake_sampler.departures == [datetime(2026, 10, 19, 13, 59, tzinfo=timezone.utc)]

    def test_invalid_cached_payload_is_recomputed(self, service, fake_sampler):
        service.cache.set("JFK-BOS", {"unexpected": True})

        result = service.get_forecast("JFK", "BOS")

        assert result.cached is False
        assert fake_sampler.calls == 1

    def test_works_without_cache(self, airports, fake_sampler, fake_hazards):
        service = ForecastService(airports, None, fake_sampler, fake_hazards)
        assert service.get_forecast("JFK", "LHR").route.cruise_altitude_ft == 41000

    def test_unknown_airport(self, service):
        with pytest.raises(AirportNotFoundError):
            service.get_forecast("JFK", "ZZZ")

    def test_same_airport(self, service):
        with pytest.raises(InvalidRouteError):
            service.get_forecast("JFK", "KJFK")
