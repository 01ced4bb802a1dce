"""Key-value persistence interface.

Records live in named tables and are addressed by a ``(partition, sort)`` key
pair, e.g. ``(identity, search_id)``. Items are plain JSON-compatible dicts.
Implementations raise ``StorageAppError`` when the backend is unreachable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

Item = dict[str, Any]
Key = tuple[str, str]

SEARCH_STATES_TABLE = "search_states"
PLACE_INTERACTIONS_TABLE = "place_interactions"
MIGRATIONS_TABLE = "migrations"
USERS_TABLE = "users"
SAVED_PLACES_TABLE = "saved_places"


class AbstractKeyValueStore(ABC):
    """Interface for table/partition/sort-key item storage."""

    @abstractmethod
    async def get(self, table: str, key: Key) -> Item | None:
        """Return a copy of the item, or None."""
        raise NotImplementedError

    @abstractmethod
    async def put(self, table: str, key: Key, item: Item) -> None:
        """Create or replace the item."""
        raise NotImplementedError

    @abstractmethod
    async def put_if_absent(self, table: str, key: Key, item: Item) -> bool:
        """Create the item only if no item exists for ``key``.

        Returns:
            True if written, False if an item was already present.
        """
        raise NotImplementedError

    @abstractmethod
    async def update(self, table: str, key: Key, fields: Item) -> Item | None:
        """Shallow-merge ``fields`` into an existing item.

        Returns:
            The updated item, or None when no item exists for ``key``.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, table: str, key: Key) -> None:
        raise NotImplementedError

    @abstractmethod
    async def query(self, table: str, partition: str) -> list[Item]:
        """Return every item in ``partition`` ordered by sort key."""
        raise NotImplementedError
