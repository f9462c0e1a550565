from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Awaitable, Callable, Generic, TypeVar

from catalogcache.models import CacheStats, HealthStatus
from catalogcache.utils import compile_pattern, generate_key

logger = logging.getLogger("catalogcache")

T = TypeVar("T")

_MISSING = object()
_EVICT_FRACTION = 0.1
_HEALTHY_FILL_RATIO = 0.9


@dataclass
class CacheEntry(Generic[T]):
    data: T
    expires_at: float
    created_at: float
    hit_count: int = 0


class QueryCache:
    """TTL cache for query results with pattern invalidation.

    Expired entries are dropped lazily on read and periodically by a
    background sweep started with :meth:`start_sweeper`. ``wrap`` does not
    de-duplicate in-flight producers: overlapping calls for the same cold key
    each run their own producer.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl_seconds: int = 300,
        sweep_interval_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max(1, max_entries)
        self._default_ttl_seconds = default_ttl_seconds
        self._sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._store: dict[str, CacheEntry[Any]] = {}
        self._lock = RLock()
        self._sweeper: asyncio.Task[None] | None = None
        self._reset_stats()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def default_ttl_seconds(self) -> int:
        return self._default_ttl_seconds

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._store.get(key)  # type: ignore[arg-type]
            return entry is not None and entry.expires_at > self._clock()

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        if ttl_seconds is None:
            ttl_seconds = self._default_ttl_seconds
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be non-negative, got {ttl_seconds}")

        with self._lock:
            if key not in self._store and len(self._store) >= self._max_entries:
                self._evict_oldest()
            now = self._clock()
            self._store[key] = CacheEntry(data=value, expires_at=now + ttl_seconds, created_at=now)
            self._sets += 1

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def invalidate_pattern(self, pattern: str) -> int:
        if not pattern:
            return 0
        regex = compile_pattern(pattern)
        with self._lock:
            matched = [key for key in self._store if regex.search(key)]
            for key in matched:
                del self._store[key]
        if matched:
            logger.debug("Invalidated %d keys matching %r", len(matched), pattern)
        return len(matched)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._reset_stats()

    async def wrap(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        ttl_seconds: float | None = None,
    ) -> T:
        cached = self._lookup(key)
        if cached is not _MISSING:
            return cached

        value = await producer()
        self.set(key, value, ttl_seconds)
        return value

    @staticmethod
    def generate_key(namespace: str, operation: str, params: dict[str, Any] | None = None) -> str:
        return generate_key(namespace, operation, params)

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                sets=self._sets,
                evictions=self._evictions,
                total_lookups=self._total_lookups,
                hit_rate=self._hit_rate,
                size=len(self._store),
                max_entries=self._max_entries,
            )

    def get_health_status(self) -> HealthStatus:
        with self._lock:
            total = len(self._store)
            return HealthStatus(
                is_healthy=total < self._max_entries * _HEALTHY_FILL_RATIO,
                memory_usage=self._estimate_memory(),
                hit_rate=self._hit_rate,
                total_entries=total,
            )

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._store.items() if entry.expires_at <= now]
            for key in expired:
                del self._store[key]
        if expired:
            logger.debug("Sweep removed %d expired entries", len(expired))
        return len(expired)

    def start_sweeper(self) -> None:
        """Schedule the periodic expiry sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        logger.info("Cache sweeper started (interval=%ss)", self._sweep_interval_seconds)

    def destroy(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
            logger.info("Cache sweeper stopped")
        with self._lock:
            self._store.clear()

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            try:
                self.purge_expired()
            except Exception:  # pragma: no cover
                logger.exception("Cache sweep failed")

    def _lookup(self, key: str) -> Any:
        with self._lock:
            self._total_lookups += 1
            entry = self._store.get(key)
            if entry is None or entry.expires_at <= self._clock():
                if entry is not None:
                    del self._store[key]
                self._misses += 1
                self._update_hit_rate()
                return _MISSING

            entry.hit_count += 1
            self._hits += 1
            self._update_hit_rate()
            return entry.data

    def _evict_oldest(self) -> None:
        # Oldest by insertion time, ~10% of the store and never fewer than one.
        count = max(1, int(len(self._store) * _EVICT_FRACTION))
        victims = sorted(self._store.items(), key=lambda item: item[1].created_at)[:count]
        for key, _ in victims:
            del self._store[key]
        self._evictions += len(victims)
        logger.debug("Evicted %d entries at capacity %d", len(victims), self._max_entries)

    def _estimate_memory(self) -> int:
        total = 0
        for key, entry in self._store.items():
            total += len(key)
            try:
                total += len(json.dumps(entry.data, default=str))
            except (TypeError, ValueError):
                total += len(repr(entry.data))
        return total

    def _update_hit_rate(self) -> None:
        self._hit_rate = self._hits / self._total_lookups if self._total_lookups else 0.0

    def _reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._evictions = 0
        self._total_lookups = 0
        self._hit_rate = 0.0
