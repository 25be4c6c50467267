"""Cache decorator adding bounded retries to reads."""

from collections.abc import Callable

from gatekeeper.application.ports.cache_port import CachePort, CacheWrite
from gatekeeper.core.exceptions import CacheUnavailableError
from gatekeeper.core.retry import retry_async


class RetryingCache(CachePort):
    """
    Wraps a CachePort and retries ``get`` with exponential backoff.

    Every write, including ``add`` and ``update``, passes straight through: a failed write must
    surface to the mutating call rather than be retried behind its back.
    """

    def __init__(self, inner: CachePort, attempts: int = 3, backoff_ms: int = 50):
        self.inner = inner
        self.attempts = attempts
        self.backoff_ms = backoff_ms

    async def get(self, key: str) -> str | None:
        return await retry_async(
            lambda: self.inner.get(key),
            attempts=self.attempts,
            backoff_ms=self.backoff_ms,
            retry_on=(CacheUnavailableError,),
            operation_name="cache read",
        )

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        await self.inner.set(key, value, ttl_seconds)

    async def add(self, key: str, value: str, ttl_seconds: float | None = None) -> bool:
        return await self.inner.add(key, value, ttl_seconds)

    async def update(
        self,
        key: str,
        transform: Callable[[str | None], CacheWrite | None],
    ) -> str | None:
        return await self.inner.update(key, transform)

    async def remove(self, key: str) -> None:
        await self.inner.remove(key)

    async def remove_by_prefix(self, prefix: str) -> int:
        return await self.inner.remove_by_prefix(prefix)

    async def close(self) -> None:
        await self.inner.close()
