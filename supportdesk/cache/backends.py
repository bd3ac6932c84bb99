"""Cache storage backends.

Both backends store strings with a TTL and raise ``CacheUnavailable`` for
any storage failure; ``AuthorityCache`` decides what to do about it.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Protocol

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from supportdesk.exceptions import CacheUnavailable

if TYPE_CHECKING:
    from supportdesk.config.settings import Settings

logger = structlog.get_logger(__name__)


class CacheBackend(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, *keys: str) -> None: ...

    async def incr(self, key: str, ttl_seconds: int) -> int:
        """Atomically increment a counter and (re)set its TTL."""
        ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class InMemoryCacheBackend:
    """Process-local TTL store for dev/testing without Redis.

    Expired entries are lazily cleaned on ``set``; ``get`` never extends a TTL.
    """

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float]] = {}  # key -> (value, expires_at)

    async def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.time() >= expires_at:
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._cleanup()
        self._store[key] = (value, time.time() + ttl_seconds)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._store.pop(key, None)

    async def incr(self, key: str, ttl_seconds: int) -> int:
        current = await self.get(key)
        value = int(current) + 1 if current is not None else 1
        self._store[key] = (str(value), time.time() + ttl_seconds)
        return value

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._store.clear()

    def _cleanup(self) -> None:
        """Remove expired entries."""
        now = time.time()
        expired = [k for k, (_, exp) in self._store.items() if now >= exp]
        for k in expired:
            del self._store[k]


class RedisCacheBackend:
    """Redis-backed cache using ``redis.asyncio``."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisCacheBackend:
        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.setex(key, ttl_seconds, value)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self._client.delete(*keys)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

    async def incr(self, key: str, ttl_seconds: int) -> int:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, ttl_seconds)
                value, _ = await pipe.execute()
            return int(value)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as e:
            raise CacheUnavailable(str(e)) from e

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("redis_connection_closed")


def create_cache_backend(settings: Settings) -> CacheBackend:
    """Pick Redis when configured, otherwise the in-process store."""
    if settings.redis_url:
        logger.info("cache_backend_selected", backend="redis")
        return RedisCacheBackend.from_url(settings.redis_url)
    logger.info("cache_backend_selected", backend="memory")
    return InMemoryCacheBackend()
