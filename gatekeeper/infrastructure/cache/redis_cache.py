"""Redis-backed cache shared across workers."""

import logging
import math
from collections.abc import Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from gatekeeper.application.ports.cache_port import CachePort, CacheWrite
from gatekeeper.core.exceptions import CacheUnavailableError

logger = logging.getLogger(__name__)


def _ttl_ms(ttl_seconds: float | None) -> int | None:
    """Millisecond precision, clamped to at least 1ms."""
    if ttl_seconds is None:
        return None
    return max(1, math.ceil(ttl_seconds * 1000))


class RedisCache(CachePort):
    """
    Thin Redis wrapper implementing CachePort.

    Keys are namespaced with ``key_prefix`` so several deployments can share
    one Redis database. Any ``RedisError`` is re-raised as
    ``CacheUnavailableError``; retries are the caller's decision.
    """

    DEFAULT_OPERATION_TIMEOUT = 5.0

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        key_prefix: str = "gatekeeper:",
        socket_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        client: aioredis.Redis | None = None,
    ):
        if client is None and redis_url is None:
            raise ValueError("redis_url or client is required")
        self.key_prefix = key_prefix
        self.client = client or aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> str | None:
        try:
            return await self.client.get(self._key(key))
        except RedisError as e:
            logger.warning(f"Redis GET failed: {e}")
            raise CacheUnavailableError() from e

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        try:
            if ttl_seconds is None:
                await self.client.set(self._key(key), value)
            elif ttl_seconds <= 0:
                await self.client.delete(self._key(key))
            else:
                await self.client.set(self._key(key), value, px=_ttl_ms(ttl_seconds))
        except RedisError as e:
            logger.warning(f"Redis SET failed: {e}")
            raise CacheUnavailableError() from e

    async def add(self, key: str, value: str, ttl_seconds: float | None = None) -> bool:
        try:
            # SET NX: only the first writer wins
            stored = await self.client.set(self._key(key), value, px=_ttl_ms(ttl_seconds), nx=True)
        except RedisError as e:
            logger.warning(f"Redis SET NX failed: {e}")
            raise CacheUnavailableError() from e
        return bool(stored)

    async def update(
        self,
        key: str,
        transform: Callable[[str | None], CacheWrite | None],
    ) -> str | None:
        """
        Read-modify-write under WATCH/MULTI.

        If another client writes the key between the read and EXEC, the
        transaction is discarded and ``transform`` runs again on the new value.
        """
        name = self._key(key)

        async def apply(pipe) -> str | None:
            current = await pipe.get(name)
            write = transform(current)
            if write is None:
                return current
            pipe.multi()
            if write.ttl_seconds is not None and write.ttl_seconds <= 0:
                pipe.delete(name)
                return None
            pipe.set(name, write.value, px=_ttl_ms(write.ttl_seconds))
            return write.value

        try:
            return await self.client.transaction(apply, name, value_from_callable=True)
        except RedisError as e:
            logger.warning(f"Redis transactional update failed: {e}")
            raise CacheUnavailableError() from e

    async def remove(self, key: str) -> None:
        try:
            await self.client.delete(self._key(key))
        except RedisError as e:
            logger.warning(f"Redis DEL failed: {e}")
            raise CacheUnavailableError() from e

    async def remove_by_prefix(self, prefix: str) -> int:
        removed = 0
        try:
            batch: list[str] = []
            async for key in self.client.scan_iter(match=f"{self._key(prefix)}*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += await self.client.delete(*batch)
                    batch = []
            if batch:
                removed += await self.client.delete(*batch)
        except RedisError as e:
            logger.warning(f"Redis prefix delete failed: {e}")
            raise CacheUnavailableError() from e
        return removed

    async def ping(self) -> bool:
        """Check the connection."""
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
