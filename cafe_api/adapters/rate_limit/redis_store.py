"""Redis-backed fixed-window counter store.

Shared across workers. The conditional increment runs as a Lua script so that
read, window check and increment are one atomic step on the server. Each
counter is a hash ``{count, window_start}`` expiring with its window.
"""

from __future__ import annotations

import logging
import math

import redis.asyncio as redis
from redis.exceptions import RedisError

from cafe_api.adapters.rate_limit.base import AbstractCounterStore, CounterSnapshot
from cafe_api.core.errors import StorageAppError

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit:"

_INCREMENT_SCRIPT = """
local count = tonumber(redis.call('HGET', KEYS[1], 'count'))
local start = tonumber(redis.call('HGET', KEYS[1], 'window_start'))
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
if (not count) or (not start) or (now - start >= window) then
  redis.call('HSET', KEYS[1], 'count', 1, 'window_start', ARGV[3])
  redis.call('EXPIRE', KEYS[1], math.ceil(window))
  return {1, ARGV[3]}
end
if count >= limit then
  return false
end
count = redis.call('HINCRBY', KEYS[1], 'count', 1)
return {count, redis.call('HGET', KEYS[1], 'window_start')}
"""

_DECREMENT_SCRIPT = """
local count = tonumber(redis.call('HGET', KEYS[1], 'count'))
if count and count > 0 then
  redis.call('HINCRBY', KEYS[1], 'count', -1)
end
return 1
"""


class RedisCounterStore(AbstractCounterStore):
    """Counter store on a Redis server (redis-py asyncio client)."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._increment = client.register_script(_INCREMENT_SCRIPT)
        self._decrement = client.register_script(_DECREMENT_SCRIPT)

    @classmethod
    def from_url(cls, url: str) -> "RedisCounterStore":
        return cls(redis.from_url(url, decode_responses=True))

    @staticmethod
    def _key(key: str) -> str:
        return f"{KEY_PREFIX}{key}"

    def _storage_error(self, operation: str, exc: RedisError) -> StorageAppError:
        logger.error(
            "rate_limit.store_unavailable",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        return StorageAppError(
            code="counter_store_unavailable",
            message=f"Counter store {operation} failed: {exc}",
        )

    async def get(self, key: str) -> CounterSnapshot | None:
        try:
            data = await self._client.hgetall(self._key(key))
        except RedisError as exc:
            raise self._storage_error("get", exc) from exc
        if not data or "count" not in data or "window_start" not in data:
            return None
        return CounterSnapshot(count=int(data["count"]), window_start=float(data["window_start"]))

    async def increment(
        self,
        key: str,
        *,
        limit: int,
        window_seconds: float,
        now: float,
    ) -> CounterSnapshot | None:
        try:
            result = await self._increment(
                keys=[self._key(key)],
                args=[limit, window_seconds, repr(now)],
            )
        except RedisError as exc:
            raise self._storage_error("increment", exc) from exc
        if not result:
            return None
        count, window_start = result
        return CounterSnapshot(count=int(count), window_start=float(window_start))

    async def decrement(self, key: str) -> None:
        try:
            await self._decrement(keys=[self._key(key)], args=[])
        except RedisError as exc:
            raise self._storage_error("decrement", exc) from exc

    async def put(self, key: str, snapshot: CounterSnapshot, *, window_seconds: float) -> None:
        redis_key = self._key(key)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(
                    redis_key,
                    mapping={"count": snapshot.count, "window_start": repr(snapshot.window_start)},
                )
                pipe.expireat(redis_key, math.ceil(snapshot.reset_at(window_seconds)))
                await pipe.execute()
        except RedisError as exc:
            raise self._storage_error("put", exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except RedisError as exc:
            raise self._storage_error("delete", exc) from exc
