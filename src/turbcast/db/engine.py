"""Engine and session factory for the forecast cache database."""

from __future__ import annotations

import logging
import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from turbcast.db.models import Base

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS = 30

_engine: Engine | None = None
SessionLocal: sessionmaker[Session] = sessionmaker()


def database_url() -> str:
    """Cache database location for the current ``ENVIRONMENT``.

    Production must name its server in ``DATABASE_URL``; anything else gets a
    SQLite file under ``DATA_DIR``, created on demand.
    """
    if os.environ.get("ENVIRONMENT", "development") == "production":
        url = os.environ.get("DATABASE_URL")
        if not url:
            raise ValueError("DATABASE_URL must be set when ENVIRONMENT=production")
        return url

    data_dir = os.environ.get("DATA_DIR", "data")
    os.makedirs(data_dir, exist_ok=True)
    return f"sqlite:///{data_dir}/turbcast.db"


def _enable_wal(dbapi_conn, _connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def get_engine(db_url: str | None = None) -> Engine:
    """Process-wide engine; the first call decides the URL and binds ``SessionLocal``."""
    global _engine
    if _engine is not None:
        return _engine

    url = db_url or database_url()
    is_sqlite = url.startswith("sqlite")
    # API worker threads and the pipeline pool share SQLite connections.
    connect_args = (
        {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS} if is_sqlite else {}
    )

    _engine = create_engine(url, connect_args=connect_args)
    if is_sqlite:
        event.listen(_engine, "connect", _enable_wal)
    SessionLocal.configure(bind=_engine)

    logger.info("Forecast cache database: %s", url.split("@")[-1])
    return _engine


def reset_engine() -> None:
    """Dispose of the engine and unbind ``SessionLocal``."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None
    SessionLocal.configure(bind=None)


def init_db(engine: Engine | None = None) -> None:
    """Create the forecast cache table if it does not exist."""
    Base.metadata.create_all(engine or get_engine())
    logger.debug("Forecast cache schema ready")
