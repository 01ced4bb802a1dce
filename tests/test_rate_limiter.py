"""Unit tests for the dual-dimension rate limiter and its counter stores."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from cafe_api.adapters.rate_limit.base import CounterSnapshot, is_window_active
from cafe_api.adapters.rate_limit.in_memory import InMemoryCounterStore
from cafe_api.core.errors import StorageAppError
from cafe_api.services.rate_limiter import (
    FAIL_CLOSED_COUNT,
    RateLimiter,
    address_key,
)

NOW = 1_700_000_000.0
WINDOW = 3600


def test_window_active_boundary():
    assert is_window_active(NOW + WINDOW - 0.001, NOW, WINDOW) is True
    assert is_window_active(NOW + WINDOW, NOW, WINDOW) is False


class TestInMemoryCounterStore:
    @pytest.mark.asyncio
    async def test_increment_opens_window(self):
        store = InMemoryCounterStore()
        snapshot = await store.increment("k", limit=2, window_seconds=WINDOW, now=NOW)
        assert snapshot == CounterSnapshot(count=1, window_start=NOW)

    @pytest.mark.asyncio
    async def test_increment_refuses_at_limit(self):
        store = InMemoryCounterStore()
        await store.increment("k", limit=2, window_seconds=WINDOW, now=NOW)
        await store.increment("k", limit=2, window_seconds=WINDOW, now=NOW + 1)
        assert await store.increment("k", limit=2, window_seconds=WINDOW, now=NOW + 2) is None
        assert (await store.get("k")).count == 2

    @pytest.mark.asyncio
    async def test_expired_window_restarts(self):
        store = InMemoryCounterStore()
        await store.increment("k", limit=1, window_seconds=WINDOW, now=NOW)
        fresh = await store.increment("k", limit=1, window_seconds=WINDOW, now=NOW + WINDOW)
        assert fresh == CounterSnapshot(count=1, window_start=NOW + WINDOW)

    @pytest.mark.asyncio
    async def test_decrement_never_goes_negative(self):
        store = InMemoryCounterStore()
        await store.put("k", CounterSnapshot(count=0, window_start=NOW), window_seconds=WINDOW)
        await store.decrement("k")
        assert (await store.get("k")).count == 0

    @pytest.mark.asyncio
    async def test_invalid_arguments(self):
        store = InMemoryCounterStore()
        with pytest.raises(ValueError):
            await store.increment("", limit=1, window_seconds=WINDOW, now=NOW)
        with pytest.raises(ValueError):
            await store.increment("k", limit=0, window_seconds=WINDOW, now=NOW)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_requests": 0, "window_seconds": 60},
        {"max_requests": 1, "window_seconds": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RateLimiter(InMemoryCounterStore(), **kwargs)


class TestCheckAndIncrement:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, rate_limiter: RateLimiter):
        decisions = [
            await rate_limiter.check_and_increment("user:a", "203.0.113.7") for _ in range(3)
        ]
        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]
        assert decisions[-1].current_count == 3
        assert decisions[0].reset_at == NOW + WINDOW

    @pytest.mark.asyncio
    async def test_blocks_identity_when_exhausted(self, rate_limiter: RateLimiter):
        for i in range(3):
            await rate_limiter.check_and_increment("user:a", f"198.51.100.{i}")

        blocked = await rate_limiter.check_and_increment("user:a", "198.51.100.99")
        assert blocked.allowed is False
        assert blocked.blocked_by == "identity"
        assert blocked.remaining == 0

    @pytest.mark.asyncio
    async def test_identity_switch_does_not_reset_address_quota(self, rate_limiter: RateLimiter):
        for _ in range(3):
            await rate_limiter.check_and_increment("ip:hash", "203.0.113.7")

        after_login = await rate_limiter.check_and_increment("user:new", "203.0.113.7")
        assert after_login.allowed is False
        assert after_login.blocked_by == "ip"

    @pytest.mark.asyncio
    async def test_both_dimensions_exhausted(self, rate_limiter: RateLimiter):
        for _ in range(3):
            await rate_limiter.check_and_increment("user:a", "203.0.113.7")

        blocked = await rate_limiter.check_and_increment("user:a", "203.0.113.7")
        assert blocked.blocked_by == "both"

    @pytest.mark.asyncio
    async def test_window_expiry_restores_quota(self, rate_limiter: RateLimiter, epoch_clock: Mock):
        for _ in range(3):
            await rate_limiter.check_and_increment("user:a", "203.0.113.7")
        assert not (await rate_limiter.check_and_increment("user:a", "203.0.113.7")).allowed

        epoch_clock.return_value = NOW + WINDOW
        decision = await rate_limiter.check_and_increment("user:a", "203.0.113.7")
        assert decision.allowed
        assert decision.current_count == 1

    @pytest.mark.asyncio
    async def test_blocked_request_is_not_counted(
        self, rate_limiter: RateLimiter, counter_store: InMemoryCounterStore
    ):
        for _ in range(3):
            await rate_limiter.check_and_increment("user:a", "198.51.100.1")
        await rate_limiter.check_and_increment("user:a", "203.0.113.7")

        # Address counter untouched because the identity was already exhausted
        assert await counter_store.get(address_key("203.0.113.7")) is None

    @pytest.mark.asyncio
    async def test_concurrent_requests_never_exceed_limit(self, rate_limiter: RateLimiter):
        decisions = await asyncio.gather(
            *(rate_limiter.check_and_increment("user:a", "203.0.113.7") for _ in range(20))
        )
        assert sum(d.allowed for d in decisions) == 3

    @pytest.mark.asyncio
    async def test_address_race_rolls_back_identity(self, epoch_clock: Mock):
        store = InMemoryCounterStore()
        limiter = RateLimiter(store, max_requests=1, window_seconds=WINDOW, clock=epoch_clock)

        real_increment = store.increment

        async def racing_increment(key, **kwargs):
            if key == address_key("203.0.113.7"):
                # Another request took the last address slot after our read
                await real_increment(key, **kwargs)
            return await real_increment(key, **kwargs)

        store.increment = racing_increment  # type: ignore[method-assign]

        decision = await limiter.check_and_increment("user:a", "203.0.113.7")
        assert decision.allowed is False
        assert decision.blocked_by == "ip"
        assert (await store.get("user:a")).count == 0

    @pytest.mark.asyncio
    async def test_address_store_failure_rolls_back_identity(self, epoch_clock: Mock):
        store = InMemoryCounterStore()
        limiter = RateLimiter(store, max_requests=3, window_seconds=WINDOW, clock=epoch_clock)
        real_increment = store.increment

        async def failing_address_increment(key, **kwargs):
            if key == address_key("203.0.113.7"):
                raise StorageAppError(code="counter_store_unavailable", message="timeout")
            return await real_increment(key, **kwargs)

        store.increment = failing_address_increment  # type: ignore[method-assign]

        decision = await limiter.check_and_increment("user:a", "203.0.113.7")

        assert decision.blocked_by == "error"
        assert (await store.get("user:a")).count == 0

    @pytest.mark.asyncio
    async def test_failed_rollback_still_fails_closed(self, epoch_clock: Mock):
        store = InMemoryCounterStore()
        limiter = RateLimiter(store, max_requests=3, window_seconds=WINDOW, clock=epoch_clock)
        real_increment = store.increment
        outage = StorageAppError(code="counter_store_unavailable", message="down")

        async def failing_address_increment(key, **kwargs):
            if key == address_key("203.0.113.7"):
                raise outage
            return await real_increment(key, **kwargs)

        store.increment = failing_address_increment  # type: ignore[method-assign]
        store.decrement = AsyncMock(side_effect=outage)  # type: ignore[method-assign]

        decision = await limiter.check_and_increment("user:a", "203.0.113.7")

        assert decision.allowed is False
        assert decision.blocked_by == "error"
        store.decrement.assert_awaited_once_with("user:a")

    @pytest.mark.asyncio
    async def test_store_failure_fails_closed(self, epoch_clock: Mock):
        store = Mock(spec=InMemoryCounterStore)
        store.get = AsyncMock(
            side_effect=StorageAppError(code="counter_store_unavailable", message="down")
        )
        limiter = RateLimiter(store, max_requests=10, window_seconds=WINDOW, clock=epoch_clock)

        decision = await limiter.check_and_increment("user:a", "203.0.113.7")
        assert decision.allowed is False
        assert decision.blocked_by == "error"
        assert decision.current_count == FAIL_CLOSED_COUNT
        assert decision.reset_at == NOW + WINDOW
        assert decision.retry_after_seconds(NOW) == WINDOW


class TestMergeCounters:
    @pytest.mark.asyncio
    async def test_sums_active_counts_and_keeps_earliest_start(
        self, rate_limiter: RateLimiter, counter_store: InMemoryCounterStore
    ):
        await counter_store.put("ip-1.2.3.4", CounterSnapshot(2, NOW - 100), window_seconds=WINDOW)
        await counter_store.put("user:a", CounterSnapshot(1, NOW - 50), window_seconds=WINDOW)

        merged = await rate_limiter.merge_counters("ip-1.2.3.4", "user:a")
        assert merged == CounterSnapshot(count=3, window_start=NOW - 100)
        assert await counter_store.get("user:a") == merged

    @pytest.mark.asyncio
    async def test_replaces_expired_target(
        self, rate_limiter: RateLimiter, counter_store: InMemoryCounterStore
    ):
        await counter_store.put("ip-1.2.3.4", CounterSnapshot(2, NOW - 10), window_seconds=WINDOW)
        await counter_store.put("user:a", CounterSnapshot(3, NOW - 2 * WINDOW), window_seconds=WINDOW)

        merged = await rate_limiter.merge_counters("ip-1.2.3.4", "user:a")
        assert merged == CounterSnapshot(count=2, window_start=NOW - 10)

    @pytest.mark.asyncio
    async def test_nothing_to_merge(self, rate_limiter: RateLimiter):
        assert await rate_limiter.merge_counters("ip-unused", "user:a") is None
