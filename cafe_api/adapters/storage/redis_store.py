"""Redis-backed key-value store.

Layout:
- ``kv:item:<table>:<partition>:<sort>`` holds the JSON-encoded item
- ``kv:idx:<table>:<partition>`` is a sorted set (score 0) indexing the sort keys

Partial updates run as an optimistic WATCH/MULTI transaction so concurrent
updates to one item never lose fields.
"""

from __future__ import annotations

import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from cafe_api.adapters.storage.base import AbstractKeyValueStore, Item, Key
from cafe_api.core.errors import StorageAppError

logger = logging.getLogger(__name__)


class RedisKeyValueStore(AbstractKeyValueStore):
    """Key-value store on a Redis server (redis-py asyncio client)."""

    def __init__(self, client: redis.Redis, *, prefix: str = "kv") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(redis.from_url(url, decode_responses=True))

    def _item_key(self, table: str, key: Key) -> str:
        return f"{self._prefix}:item:{table}:{key[0]}:{key[1]}"

    def _index_key(self, table: str, partition: str) -> str:
        return f"{self._prefix}:idx:{table}:{partition}"

    def _storage_error(self, operation: str, table: str, exc: RedisError) -> StorageAppError:
        logger.error(
            "storage.unavailable",
            extra={"operation": operation, "table": table, "error_type": type(exc).__name__},
        )
        return StorageAppError(
            code="storage_unavailable",
            message=f"Storage {operation} on {table} failed: {exc}",
        )

    async def get(self, table: str, key: Key) -> Item | None:
        try:
            raw = await self._client.get(self._item_key(table, key))
        except RedisError as exc:
            raise self._storage_error("get", table, exc) from exc
        return json.loads(raw) if raw else None

    async def put(self, table: str, key: Key, item: Item) -> None:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.set(self._item_key(table, key), json.dumps(item))
                pipe.zadd(self._index_key(table, key[0]), {key[1]: 0})
                await pipe.execute()
        except RedisError as exc:
            raise self._storage_error("put", table, exc) from exc

    async def put_if_absent(self, table: str, key: Key, item: Item) -> bool:
        try:
            written = await self._client.set(self._item_key(table, key), json.dumps(item), nx=True)
            if written:
                await self._client.zadd(self._index_key(table, key[0]), {key[1]: 0})
        except RedisError as exc:
            raise self._storage_error("put_if_absent", table, exc) from exc
        return bool(written)

    async def update(self, table: str, key: Key, fields: Item) -> Item | None:
        item_key = self._item_key(table, key)

        async def _merge(pipe) -> Item | None:
            raw = await pipe.get(item_key)
            if raw is None:
                return None
            item = json.loads(raw)
            item.update(fields)
            pipe.multi()
            pipe.set(item_key, json.dumps(item))
            return item

        try:
            return await self._client.transaction(_merge, item_key, value_from_callable=True)
        except RedisError as exc:
            raise self._storage_error("update", table, exc) from exc

    async def delete(self, table: str, key: Key) -> None:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(self._item_key(table, key))
                pipe.zrem(self._index_key(table, key[0]), key[1])
                await pipe.execute()
        except RedisError as exc:
            raise self._storage_error("delete", table, exc) from exc

    async def query(self, table: str, partition: str) -> list[Item]:
        try:
            sort_keys = await self._client.zrange(self._index_key(table, partition), 0, -1)
            if not sort_keys:
                return []
            raws = await self._client.mget(
                [self._item_key(table, (partition, sort_key)) for sort_key in sort_keys]
            )
        except RedisError as exc:
            raise self._storage_error("query", table, exc) from exc
        return [json.loads(raw) for raw in raws if raw]
