"""In-memory key-value store (development and tests).

Items are deep-copied on the way in and out so callers never share mutable
state with the store.
"""

from __future__ import annotations

import copy
import threading
from collections import defaultdict

from cafe_api.adapters.storage.base import AbstractKeyValueStore, Item, Key


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """Dict-of-dicts store guarded by a lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: dict[str, dict[Key, Item]] = defaultdict(dict)

    async def get(self, table: str, key: Key) -> Item | None:
        with self._lock:
            item = self._tables[table].get(key)
            return copy.deepcopy(item) if item is not None else None

    async def put(self, table: str, key: Key, item: Item) -> None:
        with self._lock:
            self._tables[table][key] = copy.deepcopy(item)

    async def put_if_absent(self, table: str, key: Key, item: Item) -> bool:
        with self._lock:
            if key in self._tables[table]:
                return False
            self._tables[table][key] = copy.deepcopy(item)
            return True

    async def update(self, table: str, key: Key, fields: Item) -> Item | None:
        with self._lock:
            item = self._tables[table].get(key)
            if item is None:
                return None
            item.update(copy.deepcopy(fields))
            return copy.deepcopy(item)

    async def delete(self, table: str, key: Key) -> None:
        with self._lock:
            self._tables[table].pop(key, None)

    async def query(self, table: str, partition: str) -> list[Item]:
        with self._lock:
            rows = [
                (sort_key, item)
                for (part, sort_key), item in self._tables[table].items()
                if part == partition
            ]
            return [copy.deepcopy(item) for _, item in sorted(rows, key=lambda row: row[0])]
