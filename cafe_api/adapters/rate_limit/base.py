"""Rate-limit counter store interfaces.

The limiter depends on this abstraction (not the concrete implementation) so
the counter storage can be swapped (in-memory, Redis) with no API changes.

Counters are modelled as immutable snapshots; whether a window is still active
is a pure function of ``(now, window_start, window_seconds)``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


def is_window_active(now: float, window_start: float, window_seconds: float) -> bool:
    """Return True while ``now`` falls inside the window opened at ``window_start``."""
    return now - window_start < window_seconds


@dataclass(frozen=True)
class CounterSnapshot:
    """Count of requests seen in the window that opened at ``window_start``.

    Attributes:
        count: Requests counted in the window.
        window_start: UNIX epoch seconds of the first request in the window.
    """

    count: int
    window_start: float

    def is_active(self, now: float, window_seconds: float) -> bool:
        return is_window_active(now, self.window_start, window_seconds)

    def reset_at(self, window_seconds: float) -> float:
        return self.window_start + window_seconds


class AbstractCounterStore(ABC):
    """Interface for fixed-window counter storage.

    Implementations raise ``StorageAppError`` when the backend is unreachable.
    """

    @abstractmethod
    async def get(self, key: str) -> CounterSnapshot | None:
        """Return the stored snapshot for ``key`` (possibly expired), or None."""
        raise NotImplementedError

    @abstractmethod
    async def increment(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: float,
        now: float,
    ) -> CounterSnapshot | None:
        """Atomically count one request against ``key`` if capacity remains.

        A missing or expired counter is replaced by a fresh window starting at
        ``now`` with count 1. An active counter is incremented only while its
        count is below ``limit``.

        Returns:
            The new snapshot, or None when the counter was already at the limit.
        """
        raise NotImplementedError

    @abstractmethod
    async def decrement(self, key: str) -> None:
        """Undo one increment (used to roll back a half-applied pair)."""
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: str, snapshot: CounterSnapshot, *, window_seconds: float) -> None:
        """Overwrite the counter for ``key``."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        raise NotImplementedError
