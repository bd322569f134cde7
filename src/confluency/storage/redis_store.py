"""Redis-backed key-value store.

Keys are namespaced with a prefix so ``clear`` only removes this client's
keys, never the rest of the database.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from confluency.core.exceptions import StorageError
from confluency.ports.storage import KeyValueStore

logger = logging.getLogger(__name__)


class RedisKeyValueStore(KeyValueStore):
    """Key-value store on top of ``redis.asyncio``."""

    def __init__(
        self,
        redis_url: str | None = None,
        key_prefix: str = "confluency:kv:",
        client: "redis.Redis | None" = None,
    ) -> None:
        if client is None and not redis_url:
            msg = "redis_url or client is required"
            raise ValueError(msg)
        self._client = client or redis.from_url(redis_url, decode_responses=True)
        self.key_prefix = key_prefix
        logger.info("Redis key-value store enabled (prefix=%s)", key_prefix)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(self._key(key))
        except RedisError as e:
            msg = f"Redis get failed: {e}"
            raise StorageError(msg, key=key) from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client.set(self._key(key), value)
        except RedisError as e:
            msg = f"Redis set failed: {e}"
            raise StorageError(msg, key=key) from e

    async def remove(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except RedisError as e:
            msg = f"Redis delete failed: {e}"
            raise StorageError(msg, key=key) from e

    async def multi_get(self, keys: list[str]) -> dict[str, str | None]:
        if not keys:
            return {}
        try:
            values = await self._client.mget([self._key(k) for k in keys])
        except RedisError as e:
            msg = f"Redis mget failed: {e}"
            raise StorageError(msg) from e
        return dict(zip(keys, values, strict=True))

    async def multi_set(self, items: dict[str, str]) -> None:
        if not items:
            return
        try:
            await self._client.mset({self._key(k): v for k, v in items.items()})
        except RedisError as e:
            msg = f"Redis mset failed: {e}"
            raise StorageError(msg) from e

    async def clear(self) -> None:
        try:
            keys = [key async for key in self._client.scan_iter(match=f"{self.key_prefix}*")]
            if keys:
                await self._client.delete(*keys)
        except RedisError as e:
            msg = f"Redis clear failed: {e}"
            raise StorageError(msg) from e

    async def close(self) -> None:
        await self._client.aclose()
