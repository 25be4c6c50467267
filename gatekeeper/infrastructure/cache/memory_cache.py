"""In-process cache used when no Redis URL is configured."""

import time
from collections.abc import Callable

from gatekeeper.application.ports.cache_port import CachePort, CacheWrite


class MemoryCache(CachePort):
    """
    Dictionary-backed cache with per-entry TTL.

    Every operation completes without yielding to the event loop, so a
    ``remove`` is visible to all tasks as soon as it returns. Expired entries
    are dropped lazily on access and by ``purge_expired``.

    Only suitable for a single process; multi-worker deployments use
    ``RedisCache``.
    """

    def __init__(self, monotonic: Callable[[], float] = time.monotonic):
        self._entries: dict[str, tuple[str, float | None]] = {}
        self._monotonic = monotonic

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            self._entries.pop(key, None)
            return
        expires_at = self._monotonic() + ttl_seconds if ttl_seconds is not None else None
        self._entries[key] = (value, expires_at)

    async def add(self, key: str, value: str, ttl_seconds: float | None = None) -> bool:
        if await self.get(key) is not None:
            return False
        await self.set(key, value, ttl_seconds)
        return True

    async def update(
        self,
        key: str,
        transform: Callable[[str | None], CacheWrite | None],
    ) -> str | None:
        current = await self.get(key)
        write = transform(current)
        if write is None:
            return current
        await self.set(key, write.value, write.ttl_seconds)
        return write.value if write.ttl_seconds is None or write.ttl_seconds > 0 else None

    async def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    async def remove_by_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def close(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._monotonic()
        expired = [
            key
            for key, (_, expires_at) in self._entries.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
