"""Cache port interface."""

from collections.abc import Callable
from typing import NamedTuple, Protocol


class CacheWrite(NamedTuple):
    """Value and lifetime produced by an ``update`` transform."""

    value: str
    ttl_seconds: float | None = None


class CachePort(Protocol):
    """
    Key-value cache with per-entry TTL.

    Backs permission resolution, rate-limit counters, login challenges and
    the access-token revocation set. Implementations must give read-your-
    writes consistency: a ``remove`` is visible to the next ``get`` from any
    task before ``remove`` returns.

    Values are strings; callers serialize structured data as JSON.
    """

    async def get(self, key: str) -> str | None:
        """
        Read a value.

        Returns:
            Stored value, or None if absent or expired

        Raises:
            CacheUnavailableError: If the backend cannot be reached
        """
        ...

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        """
        Write a value.

        Args:
            key: Cache key
            value: String value
            ttl_seconds: Lifetime; None keeps the value until removed
        """
        ...

    async def add(self, key: str, value: str, ttl_seconds: float | None = None) -> bool:
        """
        Write a value only if the key is absent, atomically.

        Returns:
            True if this call stored the value, False if the key already existed
        """
        ...

    async def update(
        self,
        key: str,
        transform: Callable[[str | None], CacheWrite | None],
    ) -> str | None:
        """
        Atomically replace a value computed from the current one.

        ``transform`` receives the current value (None if absent) and returns
        the write to apply, or None to leave the key unchanged. No other
        writer can change the key between the read and the write, in this
        process or any other sharing the backend. ``transform`` may run more
        than once when writers contend, so it must not have side effects
        beyond its return value.

        Returns:
            The value stored once the update completes

        Raises:
            CacheUnavailableError: If the backend cannot be reached
        """
        ...

    async def remove(self, key: str) -> None:
        """Delete a key. Removing an absent key is a no-op."""
        ...

    async def remove_by_prefix(self, prefix: str) -> int:
        """
        Delete every key starting with ``prefix``.

        Returns:
            Number of keys removed
        """
        ...

    async def close(self) -> None:
        """Release backend connections."""
        ...
