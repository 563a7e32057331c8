"""Redis-backed KeyValueStore."""

from __future__ import annotations

import redis.asyncio as redis
from redis.exceptions import RedisError

from repowatch.stores.base import StoreError

# KEYS[1] = lock key, ARGV[1] = expected token
_COMPARE_AND_DELETE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisStore:
    """KeyValueStore over ``redis.asyncio``.

    Lists are pushed on the left and popped on the right, which makes
    them FIFO queues.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._compare_and_delete = client.register_script(_COMPARE_AND_DELETE)

    @classmethod
    def from_url(cls, url: str) -> RedisStore:
        return cls(redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise StoreError(f"GET {key} failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl)
        except RedisError as exc:
            raise StoreError(f"SET {key} failed: {exc}") from exc

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        try:
            result = await self._client.set(key, value, nx=True, ex=ttl)
        except RedisError as exc:
            raise StoreError(f"SET NX {key} failed: {exc}") from exc
        return bool(result)

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            raise StoreError(f"DEL {key} failed: {exc}") from exc

    async def delete_if_equals(self, key: str, value: str) -> bool:
        try:
            deleted = await self._compare_and_delete(keys=[key], args=[value])
        except RedisError as exc:
            raise StoreError(f"compare-and-delete {key} failed: {exc}") from exc
        return bool(deleted)

    async def exists(self, key: str) -> bool:
        try:
            return await self._client.exists(key) == 1
        except RedisError as exc:
            raise StoreError(f"EXISTS {key} failed: {exc}") from exc

    async def push(self, key: str, value: str) -> None:
        try:
            await self._client.lpush(key, value)
        except RedisError as exc:
            raise StoreError(f"LPUSH {key} failed: {exc}") from exc

    async def pop(self, key: str) -> str | None:
        try:
            return await self._client.rpop(key)
        except RedisError as exc:
            raise StoreError(f"RPOP {key} failed: {exc}") from exc

    async def length(self, key: str) -> int:
        try:
            return await self._client.llen(key)
        except RedisError as exc:
            raise StoreError(f"LLEN {key} failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()
