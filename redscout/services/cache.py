"""Result cache for plain keyword searches.

Key: lowercased, trimmed query text + sort mode (+ time bucket when given).
Entries live for ``cache_ttl_seconds`` (5 minutes by default) in a
cachetools.TTLCache; expired entries are evicted on read and by a periodic
background sweep. Entries are replaced whole, never mutated.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from cachetools import TTLCache

from redscout.config import settings
from redscout.services.sweeper import Sweeper

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    posts: tuple
    created_at: float


@dataclass(frozen=True)
class CacheHit:
    posts: list
    age_seconds: int
    cached: bool = True


def _text(value) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class ResultCache:
    """In-memory TTL cache of completed searches. Safe to share across requests."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        maxsize: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float | None = None,
    ):
        self.ttl = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self._clock = clock
        self._store: TTLCache = TTLCache(
            maxsize=maxsize or settings.cache_max_entries,
            ttl=self.ttl,
            timer=clock,
        )
        self._lock = threading.Lock()
        self._sweeper = Sweeper(
            "result-cache",
            sweep_interval if sweep_interval is not None else settings.sweep_interval_seconds,
            self.sweep,
        )

    def __len__(self) -> int:
        return len(self._store)

    @staticmethod
    def make_key(query: str, sort, time_bucket=None) -> str:
        """Generate a deterministic cache key from normalized search params."""
        key = f"{query.lower().strip()}-{_text(sort)}"
        if time_bucket:
            key += f"-{_text(time_bucket)}"
        return key

    def get(self, query: str, sort, time_bucket=None) -> CacheHit | None:
        """Return the cached posts with their age, or None on miss."""
        key = self.make_key(query, sort, time_bucket)
        with self._lock:
            # Drops anything past TTL, including this key if it went stale.
            self._store.expire()
            entry: CacheEntry | None = self._store.get(key)
        if entry is None:
            return None

        age = int(self._clock() - entry.created_at)
        logger.info("Cache HIT | key=%s | age=%ds", key[:40], age)
        return CacheHit(posts=list(entry.posts), age_seconds=max(age, 0))

    def put(self, query: str, sort, time_bucket, posts: list):
        key = self.make_key(query, sort, time_bucket)
        entry = CacheEntry(posts=tuple(posts), created_at=self._clock())
        with self._lock:
            self._store[key] = entry
        logger.info("Cache SET | key=%s | posts=%d | ttl=%ds", key[:40], len(posts), self.ttl)

    def sweep(self) -> int:
        """Evict every entry past TTL. Returns how many were removed."""
        with self._lock:
            return len(self._store.expire())

    def start(self):
        self._sweeper.start()

    async def stop(self):
        await self._sweeper.stop()
