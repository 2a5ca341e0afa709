"""Tests for environment-driven settings."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from turbcast.config import CONFIG_DIR, load_settings
from turbcast.fetch.wafs import WAFS_BASE_URL

ENV_VARS = (
    "TURBCAST_WAFS_BASE_URL",
    "TURBCAST_AWC_BASE_URL",
    "TURBCAST_HTTP_TIMEOUT",
    "TURBCAST_SPACING_KM",
    "TURBCAST_CACHE_TTL_MINUTES",
    "TURBCAST_RASTER_TTL_MINUTES",
    "TURBCAST_AIRPORTS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = load_settings()
    assert settings.wafs_base_url == WAFS_BASE_URL
    assert settings.http_timeout == 20.0
    assert settings.spacing_km == 50.0
    assert settings.cache_ttl == timedelta(minutes=30)
    assert settings.raster_ttl_seconds == 1200
    assert settings.airports_path == CONFIG_DIR / "airports.yaml"


def test_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("TURBCAST_WAFS_BASE_URL", "https://mirror.test/wafs/")
    monkeypatch.setenv("TURBCAST_HTTP_TIMEOUT", "5")
    monkeypatch.setenv("TURBCAST_SPACING_KM", "25")
    monkeypatch.setenv("TURBCAST_CACHE_TTL_MINUTES", "10")
    monkeypatch.setenv("TURBCAST_RASTER_TTL_MINUTES", "2")
    monkeypatch.setenv("TURBCAST_AIRPORTS", str(tmp_path / "a.yaml"))

    settings = load_settings()

    assert settings.wafs_base_url == "https://mirror.test/wafs"
    assert settings.http_timeout == 5.0
    assert settings.pipeline_timeout == 15.0
    assert settings.spacing_km == 25.0
    assert settings.cache_ttl == timedelta(minutes=10)
    assert settings.raster_ttl_seconds == 120
    assert settings.airports_path == Path(tmp_path / "a.yaml")


def test_bad_number(monkeypatch):
    monkeypatch.setenv("TURBCAST_HTTP_TIMEOUT", "soon")
    with pytest.raises(ValueError, match="TURBCAST_HTTP_TIMEOUT"):
        load_settings()
