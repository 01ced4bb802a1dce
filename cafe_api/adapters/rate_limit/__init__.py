"""Rate-limit counter stores.

The limiter starts with an in-memory store and can move to Redis (shared
across workers) by configuration, without changing the API layer.
"""

from cafe_api.adapters.rate_limit.base import (
    AbstractCounterStore,
    CounterSnapshot,
    is_window_active,
)
from cafe_api.adapters.rate_limit.in_memory import InMemoryCounterStore

__all__ = [
    "AbstractCounterStore",
    "CounterSnapshot",
    "InMemoryCounterStore",
    "is_window_active",
]
