"""Unit tests for supportdesk/cache (backends, keys and AuthorityCache)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from factories import Clock
from redis.exceptions import ConnectionError as RedisConnectionError

from supportdesk.cache import keys
from supportdesk.cache.authority import MISS, AuthorityCache
from supportdesk.cache.backends import (
    InMemoryCacheBackend,
    RedisCacheBackend,
    create_cache_backend,
)
from supportdesk.config.settings import Settings
from supportdesk.exceptions import CacheUnavailable

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _broken_redis() -> RedisCacheBackend:
    client = AsyncMock()
    error = RedisConnectionError("connection refused")
    client.get.side_effect = error
    client.setex.side_effect = error
    client.delete.side_effect = error
    client.ping.side_effect = error
    return RedisCacheBackend(client)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestInMemoryCacheBackend:
    async def test_set_and_get(self, clock: Clock) -> None:
        backend = InMemoryCacheBackend()
        await backend.set("k", "v", 300)
        assert await backend.get("k") == "v"

    async def test_expires_after_ttl(self, clock: Clock) -> None:
        backend = InMemoryCacheBackend()
        await backend.set("k", "v", 300)
        clock.advance(299)
        assert await backend.get("k") == "v"
        clock.advance(1)
        assert await backend.get("k") is None

    async def test_read_does_not_extend_ttl(self, clock: Clock) -> None:
        backend = InMemoryCacheBackend()
        await backend.set("k", "v", 300)
        for _ in range(5):
            clock.advance(50)
            assert await backend.get("k") == "v"
        clock.advance(51)
        assert await backend.get("k") is None

    async def test_delete(self, clock: Clock) -> None:
        backend = InMemoryCacheBackend()
        await backend.set("a", "1", 300)
        await backend.set("b", "2", 300)
        await backend.delete("a", "missing")
        assert await backend.get("a") is None
        assert await backend.get("b") == "2"

    async def test_incr(self, clock: Clock) -> None:
        backend = InMemoryCacheBackend()
        assert await backend.incr("n", 60) == 1
        assert await backend.incr("n", 60) == 2
        clock.advance(61)
        assert await backend.incr("n", 60) == 1

    async def test_set_cleans_expired_entries(self, clock: Clock) -> None:
        backend = InMemoryCacheBackend()
        await backend.set("old", "v", 10)
        clock.advance(11)
        await backend.set("new", "v", 10)
        assert "old" not in backend._store


@pytest.mark.unit
class TestRedisCacheBackend:
    async def test_get_and_set(self) -> None:
        client = AsyncMock()
        client.get.return_value = "cached"
        backend = RedisCacheBackend(client)

        assert await backend.get("k") == "cached"
        await backend.set("k", "v", 300)

        client.setex.assert_awaited_once_with("k", 300, "v")

    async def test_delete_without_keys_is_noop(self) -> None:
        client = AsyncMock()
        await RedisCacheBackend(client).delete()
        client.delete.assert_not_awaited()

    async def test_errors_become_cache_unavailable(self) -> None:
        backend = _broken_redis()
        with pytest.raises(CacheUnavailable):
            await backend.get("k")
        with pytest.raises(CacheUnavailable):
            await backend.set("k", "v", 1)
        with pytest.raises(CacheUnavailable):
            await backend.ping()

    def test_factory_picks_backend(self) -> None:
        assert isinstance(create_cache_backend(Settings(redis_url=None)), InMemoryCacheBackend)
        assert isinstance(
            create_cache_backend(Settings(redis_url="redis://localhost:6379/0")),
            RedisCacheBackend,
        )


@pytest.mark.unit
class TestAuthorityCache:
    async def test_miss_then_hit(self, clock: Clock) -> None:
        cache = AuthorityCache(InMemoryCacheBackend())
        assert await cache.get("k") is MISS
        await cache.set("k", {"a": 1})
        assert await cache.get("k") == {"a": 1}

    async def test_cached_none_is_a_hit(self, clock: Clock) -> None:
        cache = AuthorityCache(InMemoryCacheBackend())
        await cache.set("k", None)
        assert await cache.get("k") is None

    async def test_default_ttl_applies(self, clock: Clock) -> None:
        cache = AuthorityCache(InMemoryCacheBackend(), ttl_seconds=300)
        await cache.set("k", True)
        clock.advance(300)
        assert await cache.get("k") is MISS

    async def test_explicit_ttl(self, clock: Clock) -> None:
        cache = AuthorityCache(InMemoryCacheBackend(), ttl_seconds=300)
        await cache.set("k", True, ttl=10)
        clock.advance(11)
        assert await cache.get("k") is MISS

    async def test_corrupt_value_is_a_miss(self, clock: Clock) -> None:
        backend = InMemoryCacheBackend()
        await backend.set("k", "{not json", 300)
        assert await AuthorityCache(backend).get("k") is MISS

    async def test_invalidate(self, clock: Clock) -> None:
        cache = AuthorityCache(InMemoryCacheBackend())
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.invalidate(["a", ""])
        assert await cache.get("a") is MISS
        assert await cache.get("b") == 2

    async def test_get_or_load_loads_once(self, clock: Clock) -> None:
        cache = AuthorityCache(InMemoryCacheBackend())
        loader = AsyncMock(return_value=["x"])
        assert await cache.get_or_load("k", loader) == ["x"]
        assert await cache.get_or_load("k", loader) == ["x"]
        loader.assert_awaited_once()

    async def test_empty_key_bypasses(self, clock: Clock) -> None:
        cache = AuthorityCache(InMemoryCacheBackend())
        loader = AsyncMock(return_value=1)
        await cache.get_or_load("", loader)
        await cache.get_or_load("", loader)
        assert loader.await_count == 2


@pytest.mark.unit
class TestAuthorityCacheWithBrokenBackend:
    async def test_get_is_a_miss(self) -> None:
        assert await AuthorityCache(_broken_redis()).get("k") is MISS

    async def test_set_and_invalidate_are_skipped(self) -> None:
        cache = AuthorityCache(_broken_redis())
        await cache.set("k", 1)
        await cache.invalidate(["k"])

    async def test_get_or_load_falls_through_to_loader(self) -> None:
        cache = AuthorityCache(_broken_redis())
        loader = AsyncMock(return_value=True)
        assert await cache.get_or_load("k", loader) is True
        assert await cache.get_or_load("k", loader) is True
        assert loader.await_count == 2

    async def test_scoped_key_bypasses_when_epoch_unreadable(self) -> None:
        cache = AuthorityCache(_broken_redis(), versioned=True)
        assert await cache.scoped_key("is_dept_member:u:d", "department:d") == ""

    async def test_bump_epoch_failure_is_absorbed(self) -> None:
        backend = _broken_redis()
        backend._client.pipeline = MagicMock(side_effect=RedisConnectionError("down"))
        await AuthorityCache(backend, versioned=True).bump_epoch("department:d")


@pytest.mark.unit
class TestVersionedKeys:
    async def test_unversioned_key_unchanged(self, clock: Clock) -> None:
        cache = AuthorityCache(InMemoryCacheBackend())
        assert await cache.scoped_key("base", "department:d") == "base"
        await cache.bump_epoch("department:d")
        assert await cache.scoped_key("base", "department:d") == "base"

    async def test_bump_moves_key(self, clock: Clock) -> None:
        cache = AuthorityCache(InMemoryCacheBackend(), versioned=True)
        before = await cache.scoped_key("base", "department:d", "conversation:c")
        assert before == "base:v0:v0"
        await cache.bump_epoch("conversation:c")
        after = await cache.scoped_key("base", "department:d", "conversation:c")
        assert after == "base:v0:v1"

    async def test_epoch_outlives_entries(self, clock: Clock) -> None:
        cache = AuthorityCache(InMemoryCacheBackend(), ttl_seconds=300, versioned=True)
        await cache.bump_epoch("department:d")
        clock.advance(3600)
        assert await cache.scoped_key("base", "department:d") == "base:v1"


@pytest.mark.unit
class TestKeys:
    def test_status_change_keys(self) -> None:
        result = keys.status_change_keys("c1", "ws1")
        assert "conversation_state:c1" in result
        assert "conversation:c1" in result
        assert "conversations:workspace:ws1" in result
        for status in ("TODO", "ASSIGNED", "ESCALATED", "CLOSED"):
            assert f"conversations:workspace:ws1:status:{status}" in result
        assert len(result) == 7

    def test_department_keys_exclude_per_subject(self) -> None:
        result = keys.department_keys("d1")
        assert result == [
            "department:d1",
            "department_users:department:d1",
            "department_managers:d1",
            "department_human_support:d1",
        ]

    def test_per_subject_keys(self) -> None:
        assert keys.is_dept_manager("u", "d") == "is_dept_manager:u:d"
        assert keys.conversation_access("u", "c") == "conversation_access:u:c"
