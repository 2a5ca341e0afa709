"""In-process TTL cache for decoded rasters and resolved model runs."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value and the clock reading when it was stored."""

    loaded_at: float
    data: V

    def is_fresh(self, ttl_seconds: float, now: float) -> bool:
        return now - self.loaded_at < ttl_seconds


class TTLCache(Generic[V]):
    """A small thread-safe key/value store whose entries expire after ``ttl_seconds``.

    A slot is either absent or holds a complete value; a later ``set`` for the
    same key replaces it. The clock is injectable so tests can advance time.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 256,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[Hashable, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[V]:
        """Return the value for ``key`` or None if missing or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_fresh(self.ttl_seconds, now):
                del self._entries[key]
                return None
            return entry.data

    def set(self, key: Hashable, value: V) -> None:
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(loaded_at=now, data=value)
            if len(self._entries) > self._max_entries:
                self._prune_expired_entries(now)
            while len(self._entries) > self._max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k].loaded_at)
                del self._entries[oldest]

    def _prune_expired_entries(self, now: float) -> None:
        stale_keys = [k for k, v in self._entries.items() if not v.is_fresh(self.ttl_seconds, now)]
        for key in stale_keys:
            del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for v in self._entries.values() if v.is_fresh(self.ttl_seconds, now))
