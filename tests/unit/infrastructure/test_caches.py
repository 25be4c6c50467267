"""Unit tests for the cache adapters."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from gatekeeper.application.ports.cache_port import CacheWrite
from gatekeeper.core.exceptions import CacheUnavailableError
from gatekeeper.infrastructure.cache import MemoryCache, RedisCache, RetryingCache


class TestMemoryCache:
    async def test_set_and_get(self, clock):
        cache = MemoryCache(monotonic=clock.monotonic)

        await cache.set("key", "value")

        assert await cache.get("key") == "value"

    async def test_ttl_expiry(self, clock):
        cache = MemoryCache(monotonic=clock.monotonic)
        await cache.set("key", "value", ttl_seconds=10)

        clock.advance(seconds=9)
        assert await cache.get("key") == "value"
        clock.advance(seconds=1)
        assert await cache.get("key") is None

    async def test_non_positive_ttl_removes(self, clock):
        cache = MemoryCache(monotonic=clock.monotonic)
        await cache.set("key", "value")

        await cache.set("key", "other", ttl_seconds=0)

        assert await cache.get("key") is None

    async def test_remove_by_prefix(self, clock):
        cache = MemoryCache(monotonic=clock.monotonic)
        await cache.set("rbac:user:1:authorization", "a")
        await cache.set("rbac:user:2:authorization", "b")
        await cache.set("rate_limit:ip:1", "c")

        removed = await cache.remove_by_prefix("rbac:")

        assert removed == 2
        assert await cache.get("rate_limit:ip:1") == "c"

    async def test_add_only_when_absent(self, clock):
        cache = MemoryCache(monotonic=clock.monotonic)

        assert await cache.add("key", "first", ttl_seconds=10) is True
        assert await cache.add("key", "second", ttl_seconds=10) is False
        assert await cache.get("key") == "first"

        clock.advance(seconds=10)
        assert await cache.add("key", "third") is True

    async def test_update_transforms_current_value(self, clock):
        cache = MemoryCache(monotonic=clock.monotonic)
        await cache.set("counter", "1")

        result = await cache.update("counter", lambda raw: CacheWrite(str(int(raw) + 1), 30))

        assert result == "2"
        assert await cache.get("counter") == "2"

    async def test_update_can_leave_value_untouched(self, clock):
        cache = MemoryCache(monotonic=clock.monotonic)

        assert await cache.update("absent", lambda raw: None) is None
        assert len(cache) == 0

    async def test_purge_expired(self, clock):
        cache = MemoryCache(monotonic=clock.monotonic)
        await cache.set("short", "1", ttl_seconds=1)
        await cache.set("long", "2", ttl_seconds=100)

        clock.advance(seconds=2)

        assert cache.purge_expired() == 1
        assert len(cache) == 1


class TestRetryingCache:
    async def test_reads_are_retried(self):
        inner = MagicMock()
        inner.get = AsyncMock(side_effect=[CacheUnavailableError(), "value"])
        cache = RetryingCache(inner, attempts=3, backoff_ms=0)

        assert await cache.get("key") == "value"
        assert inner.get.await_count == 2

    async def test_reads_fail_after_attempts(self):
        inner = MagicMock()
        inner.get = AsyncMock(side_effect=CacheUnavailableError())
        cache = RetryingCache(inner, attempts=2, backoff_ms=0)

        with pytest.raises(CacheUnavailableError):
            await cache.get("key")
        assert inner.get.await_count == 2

    async def test_writes_are_not_retried(self):
        inner = MagicMock()
        inner.remove = AsyncMock(side_effect=CacheUnavailableError())
        cache = RetryingCache(inner, attempts=3, backoff_ms=0)

        with pytest.raises(CacheUnavailableError):
            await cache.remove("key")
        assert inner.remove.await_count == 1

    async def test_updates_are_not_retried(self):
        inner = MagicMock()
        inner.update = AsyncMock(side_effect=CacheUnavailableError())
        cache = RetryingCache(inner, attempts=3, backoff_ms=0)

        with pytest.raises(CacheUnavailableError):
            await cache.update("key", lambda raw: None)
        assert inner.update.await_count == 1


class TestRedisCache:
    @pytest.fixture
    def client(self):
        return AsyncMock()

    async def test_keys_are_prefixed(self, client):
        client.get.return_value = "value"
        cache = RedisCache(client=client)

        assert await cache.get("key") == "value"
        client.get.assert_awaited_once_with("gatekeeper:key")

    async def test_ttl_is_sent_in_milliseconds(self, client):
        cache = RedisCache(client=client)

        await cache.set("key", "value", ttl_seconds=1.5)

        client.set.assert_awaited_once_with("gatekeeper:key", "value", px=1500)

    async def test_set_without_ttl(self, client):
        cache = RedisCache(client=client)

        await cache.set("key", "value")

        client.set.assert_awaited_once_with("gatekeeper:key", "value")

    async def test_redis_errors_become_cache_unavailable(self, client):
        client.get.side_effect = RedisConnectionError("down")
        cache = RedisCache(client=client)

        with pytest.raises(CacheUnavailableError):
            await cache.get("key")

    async def test_ping_failure_returns_false(self, client):
        client.ping.side_effect = RedisConnectionError("down")

        assert await RedisCache(client=client).ping() is False

    def test_url_or_client_required(self):
        with pytest.raises(ValueError):
            RedisCache()
