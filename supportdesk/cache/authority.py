"""Best-effort read-through cache for authorization-adjacent lookups.

Values are JSON-encoded. Every backend failure is logged and absorbed: a
failed read is a miss, a failed write or delete is skipped. Staleness is
bounded by the TTL because reads never extend it.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import structlog

from supportdesk.cache.backends import CacheBackend
from supportdesk.exceptions import CacheUnavailable

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class _Miss:
    def __repr__(self) -> str:
        return "MISS"


MISS: Any = _Miss()

# Epoch counters outlive any entry written under them.
_MIN_EPOCH_TTL_SECONDS = 86400


class AuthorityCache:
    def __init__(
        self, backend: CacheBackend, *, ttl_seconds: int = 300, versioned: bool = False
    ) -> None:
        self._backend = backend
        self.ttl_seconds = ttl_seconds
        self.versioned = versioned

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    async def get(self, key: str) -> Any:
        """Return the cached value, or ``MISS``. A cached ``None`` is a hit."""
        if not key:
            return MISS
        try:
            raw = await self._backend.get(key)
        except CacheUnavailable as e:
            logger.warning("cache_backend_error", op="get", key=key, error=str(e))
            return MISS
        if raw is None:
            return MISS
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("cache_value_corrupt", key=key)
            return MISS

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        if not key:
            return
        try:
            await self._backend.set(key, json.dumps(value), ttl or self.ttl_seconds)
        except CacheUnavailable as e:
            logger.warning("cache_backend_error", op="set", key=key, error=str(e))

    async def invalidate(self, keys: Iterable[str]) -> None:
        keys = [k for k in keys if k]
        if not keys:
            return
        try:
            await self._backend.delete(*keys)
        except CacheUnavailable as e:
            # Entries left behind still expire with the TTL
            logger.warning("cache_backend_error", op="delete", keys=len(keys), error=str(e))
            return
        logger.debug("cache_invalidated", keys=keys)

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        """Read-through: return the cached value or load, store and return it."""
        cached = await self.get(key)
        if cached is not MISS:
            return cached
        value = await loader()
        await self.set(key, value)
        return value

    async def scoped_key(self, base: str, *scopes: str) -> str:
        """Return ``base`` suffixed with the current epoch of each scope.

        Without versioning this is ``base`` unchanged. Returns an empty key,
        which bypasses the cache, when an epoch cannot be read.
        """
        if not self.versioned:
            return base
        parts = [base]
        for scope in scopes:
            try:
                raw = await self._backend.get(_epoch_key(scope))
            except CacheUnavailable as e:
                logger.warning("cache_backend_error", op="epoch_get", scope=scope, error=str(e))
                return ""
            parts.append(f"v{raw or 0}")
        return ":".join(parts)

    async def bump_epoch(self, scope: str) -> None:
        """Move every versioned key under ``scope`` to a fresh namespace."""
        if not self.versioned:
            return
        try:
            epoch = await self._backend.incr(
                _epoch_key(scope), max(self.ttl_seconds, _MIN_EPOCH_TTL_SECONDS)
            )
        except CacheUnavailable as e:
            logger.warning("cache_backend_error", op="epoch_bump", scope=scope, error=str(e))
            return
        logger.debug("cache_epoch_bumped", scope=scope, epoch=epoch)


def _epoch_key(scope: str) -> str:
    return f"cache_epoch:{scope}"
