"""Unit tests for the in-memory TTLCache."""

import threading

import pytest

from cafe_api.utils.ttl_cache import TTLCache


class FakeTime:
    """Deterministic clock used to test expiration logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def _cache(fake: FakeTime, **kwargs) -> TTLCache:
    kwargs.setdefault("ttl_seconds", 10)
    kwargs.setdefault("sweep_threshold", 100)
    return TTLCache(clock=fake.time, **kwargs)


def test_hit_and_miss_counters() -> None:
    cache = _cache(FakeTime())

    assert cache.get("missing") is None
    cache.put("k", "v")
    assert cache.get("k") == "v"

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["entries"] == 1


def test_entry_expires_exactly_at_ttl() -> None:
    fake = FakeTime()
    cache = _cache(fake)
    cache.put("k", "v")

    fake.advance(9.999)
    assert cache.get("k") == "v"

    fake.advance(0.001)
    assert cache.get("k") is None


def test_put_refreshes_timestamp() -> None:
    fake = FakeTime()
    cache = _cache(fake)
    cache.put("k", "old")
    fake.advance(8)
    cache.put("k", "new")
    fake.advance(8)

    assert cache.get("k") == "new"


def test_sweep_runs_only_above_threshold() -> None:
    fake = FakeTime()
    cache = _cache(fake, sweep_threshold=3)
    for key in ("a", "b", "c"):
        cache.put(key, key)

    fake.advance(11)
    cache.put("d", "d")  # size 4 > 3: expired a, b, c are swept

    assert len(cache) == 1
    assert cache.stats()["evictions"] == 3


def test_expired_entries_linger_below_threshold() -> None:
    fake = FakeTime()
    cache = _cache(fake, sweep_threshold=5)
    cache.put("a", 1)
    fake.advance(11)
    cache.put("b", 2)

    assert len(cache) == 2
    assert cache.get("a") is None
    assert cache.sweep() == 1
    assert len(cache) == 1


def test_max_entries_evicts_least_recently_used() -> None:
    cache = _cache(FakeTime(), max_entries=2)
    cache.put("a", 1)
    cache.put("b", 2)
    cache.get("a")
    cache.put("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_clear_resets_entries_and_counters() -> None:
    cache = _cache(FakeTime())
    cache.put("a", 1)
    cache.get("a")
    cache.clear()

    stats = cache.stats()
    assert stats["entries"] == 0
    assert stats["hits"] == 0


@pytest.mark.parametrize(
    "kwargs",
    [{"ttl_seconds": 0, "sweep_threshold": 1}, {"ttl_seconds": 1, "sweep_threshold": 0}],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        TTLCache(**kwargs)


def test_concurrent_puts_are_thread_safe() -> None:
    cache = TTLCache(ttl_seconds=60, sweep_threshold=10)

    def writer(offset: int) -> None:
        for i in range(200):
            cache.put(f"{offset}-{i}", i)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache) == 800
