"""Tests for engine configuration and schema creation."""

from __future__ import annotations

import pytest
from sqlalchemy import inspect

from turbcast.db.engine import SessionLocal, database_url, get_engine, init_db, reset_engine


@pytest.fixture(autouse=True)
def fresh_engine():
    reset_engine()
    yield
    reset_engine()


def test_development_uses_sqlite_in_data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))

    engine = get_engine()

    assert engine.url.database == f"{tmp_path}/data/turbcast.db"
    assert get_engine() is engine


def test_production_requires_database_url(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(ValueError, match="DATABASE_URL"):
        get_engine()


def test_init_db_creates_cache_table(tmp_path):
    engine = get_engine(f"sqlite:///{tmp_path}/t.db")
    init_db(engine)

    assert "forecast_cache" in inspect(engine).get_table_names()
    with SessionLocal() as session:
        assert session.get_bind() is engine


def test_production_url_from_environment(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("DATABASE_URL", "postgresql://cache@db.internal/turbcast")
    assert database_url() == "postgresql://cache@db.internal/turbcast"


def test_sqlite_enables_wal(tmp_path):
    engine = get_engine(f"sqlite:///{tmp_path}/wal.db")
    with engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA journal_mode").scalar() == "wal"
