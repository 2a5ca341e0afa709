"""Database-backed TTL cache for computed route forecasts.

A cache failure must never fail a forecast, so every storage error is logged
and treated as a miss (or a skipped write).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from turbcast.db.models import ForecastCacheRow

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=30)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def departure_minute(departure: datetime) -> datetime:
    """Departure in UTC, truncated to the minute the cache key resolves."""
    return _as_utc(departure).replace(second=0, microsecond=0)


def route_cache_key(origin: str, destination: str, departure: Optional[datetime] = None) -> str:
    """Key for a route forecast; an explicit departure adds its UTC minute.

    Forecast-hour bucketing depends on the minute of departure, so a coarser
    key would hand one departure another one's model hours.
    """
    key = f"{origin.upper()}-{destination.upper()}"
    if departure is not None:
        key += "@" + departure_minute(departure).strftime("%Y%m%d%H%M")
    return key


class ForecastCache:
    """Read-through store of forecast payloads keyed by route identity."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session_factory = session_factory
        self.ttl = ttl
        self._clock = clock

    def _now(self) -> datetime:
        return _as_utc(self._clock())

    def get(self, key: str) -> Optional[dict[str, Any]]:
        """Return the payload for ``key``, or None if missing, expired or unreadable.

        An expired row is deleted on access.
        """
        try:
            with self.session_factory() as session:
                row = session.get(ForecastCacheRow, key)
                if row is None:
                    return None
                if _as_utc(row.expires_at) <= self._now():
                    session.delete(row)
                    session.commit()
                    logger.debug("Cache entry %s expired", key)
                    return None
                payload = json.loads(row.payload)
        except (SQLAlchemyError, ValueError):
            logger.warning("Forecast cache read failed for %s", key, exc_info=True)
            return None

        if not isinstance(payload, dict):
            logger.warning("Ignoring malformed cache payload for %s", key)
            return None
        return payload

    def set(self, key: str, payload: dict[str, Any]) -> None:
        """Insert or replace the payload for ``key``, then sweep expired rows."""
        now = self._now()
        try:
            body = json.dumps(payload, default=str)
            with self.session_factory() as session:
                try:
                    self._upsert(session, key, body, now)
                except IntegrityError:
                    # Another writer inserted the key between our read and commit.
                    session.rollback()
                    logger.debug("Concurrent insert for %s, retrying as update", key)
                    self._upsert(session, key, body, now)
        except (SQLAlchemyError, TypeError, ValueError):
            logger.warning("Forecast cache write failed for %s", key, exc_info=True)
            return

        self.sweep_expired()

    def _upsert(self, session: Session, key: str, body: str, now: datetime) -> None:
        existing = session.get(ForecastCacheRow, key)
        if existing:
            existing.payload = body
            existing.expires_at = now + self.ttl
            existing.created_at = now
        else:
            session.add(ForecastCacheRow(
                cache_key=key,
                payload=body,
                expires_at=now + self.ttl,
                created_at=now,
            ))
        session.commit()

    def sweep_expired(self) -> int:
        """Delete every expired row; returns how many were removed."""
        try:
            with self.session_factory() as session:
                result = session.execute(
                    delete(ForecastCacheRow).where(ForecastCacheRow.expires_at <= self._now())
                )
                session.commit()
        except SQLAlchemyError:
            logger.warning("Forecast cache sweep failed", exc_info=True)
            return 0

        removed = result.rowcount or 0
        if removed:
            logger.info("Swept %d expired forecast cache entries", removed)
        return removed
