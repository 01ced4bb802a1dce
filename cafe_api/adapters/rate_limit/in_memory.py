"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: every read-modify-write happens under one lock, and no method
  awaits while holding it, so concurrent coroutines cannot interleave inside
  a conditional increment.
"""

from __future__ import annotations

import threading

from cafe_api.adapters.rate_limit.base import AbstractCounterStore, CounterSnapshot


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store backed by a dict of immutable snapshots."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._counters: dict[str, CounterSnapshot] = {}

    async def get(self, key: str) -> CounterSnapshot | None:
        with self._lock:
            return self._counters.get(key)

    async def increment(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: float,
        now: float,
    ) -> CounterSnapshot | None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._lock:
            current = self._counters.get(key)
            if current is None or not current.is_active(now, window_seconds):
                updated = CounterSnapshot(count=1, window_start=now)
            elif current.count < limit:
                updated = CounterSnapshot(count=current.count + 1, window_start=current.window_start)
            else:
                return None
            self._counters[key] = updated
            return updated

    async def decrement(self, key: str) -> None:
        with self._lock:
            current = self._counters.get(key)
            if current is None:
                return
            self._counters[key] = CounterSnapshot(
                count=max(0, current.count - 1),
                window_start=current.window_start,
            )

    async def put(self, key: str, snapshot: CounterSnapshot, *, window_seconds: float) -> None:
        with self._lock:
            self._counters[key] = snapshot

    async def delete(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)
