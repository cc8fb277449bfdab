# clypse/storage/redis_store.py
# Redis-backed store shared by every API process and the worker

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from clypse.middleware.error_handler import StorageError
from clypse.utils.logger import log_exception


class RedisStore:
    def __init__(self, url: str, namespace: str = "clypse", client: Optional[Any] = None):
        self.url = url
        self.namespace = namespace
        # Connection pool is created lazily on first use
        self._client = client

    def _client_or_connect(self) -> Any:
        if self._client is None:
            self._client = aioredis.from_url(self.url, decode_responses=True)
        return self._client

    def _full_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> str | None:
        try:
            return await self._client_or_connect().get(self._full_key(key))
        except RedisError as e:
            log_exception(e, "RedisStore.get", key=key)
            raise StorageError("Redis read failed") from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client_or_connect().set(self._full_key(key), value)
        except RedisError as e:
            log_exception(e, "RedisStore.set", key=key)
            raise StorageError("Redis write failed") from e

    async def remove(self, key: str) -> None:
        try:
            await self._client_or_connect().delete(self._full_key(key))
        except RedisError as e:
            log_exception(e, "RedisStore.remove", key=key)
            raise StorageError("Redis delete failed") from e

    async def list_by_prefix(self, prefix: str) -> list[str]:
        """Scan-based listing; keys come back without the namespace."""
        client = self._client_or_connect()
        pattern = f"{self._full_key(prefix)}*"
        strip = len(self.namespace) + 1
        keys: set[str] = set()
        cursor = 0
        try:
            while True:
                cursor, batch = await client.scan(cursor=cursor, match=pattern, count=500)
                keys.update(k[strip:] for k in batch)
                if cursor == 0:
                    break
        except RedisError as e:
            log_exception(e, "RedisStore.list_by_prefix", prefix=prefix)
            raise StorageError("Redis scan failed") from e
        return sorted(keys)

    async def ping(self) -> bool:
        try:
            return bool(await self._client_or_connect().ping())
        except RedisError:
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
