"""Key-value persistence adapters for search state, interactions and markers."""

from cafe_api.adapters.storage.base import (
    MIGRATIONS_TABLE,
    PLACE_INTERACTIONS_TABLE,
    SEARCH_STATES_TABLE,
    AbstractKeyValueStore,
)
from cafe_api.adapters.storage.in_memory import InMemoryKeyValueStore

__all__ = [
    "AbstractKeyValueStore",
    "InMemoryKeyValueStore",
    "MIGRATIONS_TABLE",
    "PLACE_INTERACTIONS_TABLE",
    "SEARCH_STATES_TABLE",
]
