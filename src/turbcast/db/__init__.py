"""Database package: SQLAlchemy models and engine."""

from turbcast.db.engine import SessionLocal, get_engine, init_db
from turbcast.db.models import Base

__all__ = ["Base", "SessionLocal", "get_engine", "init_db"]
