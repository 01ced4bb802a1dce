"""In-memory TTL cache used to avoid repeated upstream calls.

Process-local, best-effort memoization: no invalidation protocol, acceptable
staleness. Each handler owns one instance with its own TTL and sweep
threshold; there is no background timer, expired entries are swept inline on
the write that pushes the map past the threshold.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """Cached value with the time it was stored."""

    value: V
    stored_at: float


class TTLCache(Generic[V]):
    """Thread-safe TTL cache with threshold sweeps and optional LRU cap.

    An entry is a hit while ``now - stored_at < ttl_seconds``; at exactly
    ``stored_at + ttl_seconds`` it is a miss.

    Attributes:
        name: Label used in logs/stats.
        ttl_seconds: Time-to-live applied to all entries.
        sweep_threshold: Size above which a write sweeps expired entries.
        max_entries: Hard cap evicting least recently used entries (None = no cap).
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        sweep_threshold: int,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.time,
        name: str = "cache",
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if sweep_threshold < 1:
            raise ValueError("sweep_threshold must be >= 1")

        self.name = name
        self.ttl_seconds = ttl_seconds
        self.sweep_threshold = sweep_threshold
        self.max_entries = max_entries
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"TTLCache(name={self.name!r}, ttl_seconds={self.ttl_seconds}, "
            f"sweep_threshold={self.sweep_threshold}, size={len(self._store)})"
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _is_fresh(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.stored_at < self.ttl_seconds

    def get(self, key: str) -> V | None:
        """Return the cached value if present and fresh, else None."""

        with self._lock:
            entry = self._store.get(key)
            if entry is None or not self._is_fresh(entry, self._clock()):
                self._misses += 1
                logger.debug(
                    "cache.miss",
                    extra={"cache": self.name, "reason": "expired" if entry else "not_found"},
                )
                return None

            self._hits += 1
            self._store.move_to_end(key)
            logger.debug("cache.hit", extra={"cache": self.name})
            return entry.value

    def put(self, key: str, value: V) -> None:
        """Store a value stamped with the current time.

        Only call after a successful upstream call; failures are never cached.
        """

        with self._lock:
            self._store[key] = CacheEntry(value=value, stored_at=self._clock())
            self._store.move_to_end(key)

            if len(self._store) > self.sweep_threshold:
                self._sweep_locked()
            if self.max_entries is not None:
                while len(self._store) > self.max_entries:
                    self._store.popitem(last=False)
                    self._evictions += 1

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""

        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> int:
        now = self._clock()
        expired = [k for k, entry in self._store.items() if not self._is_fresh(entry, now)]
        for key in expired:
            del self._store[key]
        self._evictions += len(expired)
        if expired:
            logger.debug(
                "cache.sweep",
                extra={"cache": self.name, "removed": len(expired), "size": len(self._store)},
            )
        return len(expired)

    def clear(self) -> None:
        """Remove all cached entries and reset counters."""

        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int | float | str | None]:
        """Return lightweight cache metrics without exposing values."""

        with self._lock:
            return {
                "name": self.name,
                "ttl_seconds": self.ttl_seconds,
                "sweep_threshold": self.sweep_threshold,
                "max_entries": self.max_entries,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }
