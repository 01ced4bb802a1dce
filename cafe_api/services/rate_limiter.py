"""Dual-dimension search quota.

Each search is counted twice: once against the caller identity and once
against the raw network address (``ip-<address>``), even when the identity is
itself address-derived. A request is allowed only while *both* counters are
below the limit, so switching identities (signing out, header differences)
cannot reset the quota of a single client.

Failure policy: if the counter store is unreachable the limiter fails closed
and reports the request as blocked.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Literal

from cafe_api.adapters.rate_limit.base import AbstractCounterStore, CounterSnapshot
from cafe_api.core.errors import StorageAppError

logger = logging.getLogger(__name__)

BlockedBy = Literal["identity", "ip", "both", "error"]

# Reported as current_count when the store could not be consulted
FAIL_CLOSED_COUNT = 999


def address_key(address: str) -> str:
    return f"ip-{address}"


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a check-and-increment.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the binding window.
        reset_at: UNIX epoch seconds when the binding window ends.
        current_count: Count in the binding window after this call.
        limit: Configured maximum per window.
        window_seconds: Configured window length.
        blocked_by: Which dimension tripped (None when allowed).
    """

    allowed: bool
    remaining: int
    reset_at: float
    current_count: int
    limit: int
    window_seconds: float
    blocked_by: BlockedBy | None = None

    def retry_after_seconds(self, now: float) -> int:
        return max(0, math.ceil(self.reset_at - now))


class RateLimiter:
    """Fixed-window limiter over an injected counter store.

    Args:
        store: Counter storage backend.
        max_requests: Maximum requests per window per dimension.
        window_seconds: Window length; a window opens on the first request.
        clock: Time source returning UNIX seconds (injectable for tests).
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def _active_count(self, snapshot: CounterSnapshot | None, now: float) -> int:
        if snapshot is None or not snapshot.is_active(now, self.window_seconds):
            return 0
        return snapshot.count

    def _reset_at(self, snapshot: CounterSnapshot | None, now: float) -> float:
        if snapshot is None or not snapshot.is_active(now, self.window_seconds):
            return now + self.window_seconds
        return snapshot.reset_at(self.window_seconds)

    def _blocked(
        self,
        blocked_by: BlockedBy,
        snapshots: list[CounterSnapshot | None],
        now: float,
    ) -> RateLimitDecision:
        counts = [self._active_count(s, now) for s in snapshots]
        # The client can retry once every tripped counter has reset
        reset_at = max(self._reset_at(s, now) for s in snapshots)
        return RateLimitDecision(
            allowed=False,
            remaining=0,
            reset_at=reset_at,
            current_count=max(counts),
            limit=self.max_requests,
            window_seconds=self.window_seconds,
            blocked_by=blocked_by,
        )

    def fail_closed(self, now: float | None = None) -> RateLimitDecision:
        """Decision returned when the counter store cannot be consulted."""
        now = self._clock() if now is None else now
        return RateLimitDecision(
            allowed=False,
            remaining=0,
            reset_at=now + self.window_seconds,
            current_count=FAIL_CLOSED_COUNT,
            limit=self.max_requests,
            window_seconds=self.window_seconds,
            blocked_by="error",
        )

    async def check_and_increment(self, identity: str, address: str) -> RateLimitDecision:
        """Consult both counters and count this request if neither is exhausted.

        Args:
            identity: Resolved caller identity (``user:<sub>`` / ``ip:<hash>``).
            address: Raw client address.

        Returns:
            RateLimitDecision. Never raises for store failures (fails closed).
        """
        now = self._clock()
        try:
            return await self._check_and_increment(identity, address_key(address), now)
        except StorageAppError:
            logger.exception("rate_limit.fail_closed", extra={"identity": identity})
            return self.fail_closed(now)

    async def _rollback(self, key: str) -> None:
        try:
            await self.store.decrement(key)
        except StorageAppError as exc:
            logger.warning("rate_limit.rollback_failed", extra={"error_code": exc.code})

    async def _check_and_increment(
        self, identity_key: str, ip_key: str, now: float
    ) -> RateLimitDecision:
        identity_snapshot = await self.store.get(identity_key)
        ip_snapshot = await self.store.get(ip_key)

        identity_over = self._active_count(identity_snapshot, now) >= self.max_requests
        ip_over = self._active_count(ip_snapshot, now) >= self.max_requests
        if identity_over or ip_over:
            blocked_by: BlockedBy = "both" if identity_over and ip_over else (
                "identity" if identity_over else "ip"
            )
            return self._blocked(blocked_by, [identity_snapshot, ip_snapshot], now)

        # Conditional increments: a concurrent request may have taken the last slot
        new_identity = await self.store.increment(
            identity_key, limit=self.max_requests, window_seconds=self.window_seconds, now=now
        )
        if new_identity is None:
            return self._blocked("identity", [await self.store.get(identity_key)], now)

        try:
            new_ip = await self.store.increment(
                ip_key, limit=self.max_requests, window_seconds=self.window_seconds, now=now
            )
        except StorageAppError:
            await self._rollback(identity_key)
            raise
        if new_ip is None:
            await self.store.decrement(identity_key)
            return self._blocked("ip", [await self.store.get(ip_key)], now)

        binding = max((new_identity, new_ip), key=lambda s: s.count)
        return RateLimitDecision(
            allowed=True,
            remaining=max(0, self.max_requests - binding.count),
            reset_at=binding.reset_at(self.window_seconds),
            current_count=binding.count,
            limit=self.max_requests,
            window_seconds=self.window_seconds,
        )

    async def merge_counters(self, source_key: str, target_key: str) -> CounterSnapshot | None:
        """Fold ``source_key``'s active window into ``target_key``.

        Active counts are summed and the earliest active window start is kept,
        so moving between keys mid-window never lowers the consumed quota.

        Returns:
            The merged snapshot written to ``target_key`` (None if nothing to merge).
        """
        now = self._clock()
        source = await self.store.get(source_key)
        if source is None or not source.is_active(now, self.window_seconds):
            return None

        target = await self.store.get(target_key)
        if target is not None and target.is_active(now, self.window_seconds):
            merged = CounterSnapshot(
                count=source.count + target.count,
                window_start=min(source.window_start, target.window_start),
            )
        else:
            merged = source

        await self.store.put(target_key, merged, window_seconds=self.window_seconds)
        logger.info(
            "rate_limit.counters_merged",
            extra={"merged_count": merged.count},
        )
        return merged
