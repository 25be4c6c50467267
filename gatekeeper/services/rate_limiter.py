"""
Per-key attempt limiter with temporary blacklisting.

Each key (``ip:<address>`` or ``user:<name>``) moves through
``Clean -> Tracking(count) -> Blacklisted(until)``. State lives in the cache
as a small JSON document, changed only through the cache's atomic
``update``; a per-key lock additionally keeps the tasks of one process from
contending for the same key.
"""

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from gatekeeper.application.ports.cache_port import CachePort, CacheWrite
from gatekeeper.core.clock import Clock, utc_now
from gatekeeper.core.config import Settings
from gatekeeper.core.locks import KeyedLock
from gatekeeper.services import cache_keys

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    count: int
    window_start: datetime
    blacklisted_until: datetime | None = None

    def dumps(self) -> str:
        return json.dumps(
            {
                "count": self.count,
                "window_start": self.window_start.timestamp(),
                "blacklisted_until": (
                    self.blacklisted_until.timestamp() if self.blacklisted_until else None
                ),
            }
        )

    @classmethod
    def loads(cls, raw: str) -> "_Entry":
        data = json.loads(raw)
        blacklisted_until = data.get("blacklisted_until")
        return cls(
            count=int(data["count"]),
            window_start=datetime.fromtimestamp(data["window_start"], UTC),
            blacklisted_until=(
                datetime.fromtimestamp(blacklisted_until, UTC)
                if blacklisted_until is not None
                else None
            ),
        )


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of checking every key of one request."""

    allowed: bool
    retry_after_seconds: int | None = None
    remaining_attempts: int | None = None


class RateLimiter:
    """
    Sliding-window attempt counter per key.

    With ``max_attempts=5`` the first five calls in a window are allowed;
    the sixth blacklists the key and is refused, as is every call until
    the blacklist expires. ``reset`` returns a key to Clean at once.

    Args:
        cache: Counter store
        settings: Application settings (limits and key policy)
        clock: Time source
    """

    def __init__(self, cache: CachePort, settings: Settings, clock: Clock = utc_now):
        self.cache = cache
        self.settings = settings
        self._clock = clock
        self._locks = KeyedLock()
        self._known_keys: set[str] = set()

    @property
    def max_attempts(self) -> int:
        return self.settings.rate_limit_max_attempts

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.settings.rate_limit_window_minutes)

    @property
    def blacklist_duration(self) -> timedelta:
        return timedelta(minutes=self.settings.rate_limit_blacklist_minutes)

    def keys_for(self, ip_address: str | None, username: str | None) -> list[str]:
        """
        Build the limiter keys for a request according to the key policy.

        Example:
            >>> limiter.keys_for("10.0.0.1", "Alice")
            ['ip:10.0.0.1', 'user:alice']
        """
        policy = self.settings.rate_limit_key_policy
        keys = []
        if policy in ("ip", "both") and ip_address:
            keys.append(f"ip:{ip_address}")
        if policy in ("username", "both") and username:
            keys.append(f"user:{username.strip().lower()}")
        return keys

    async def _load(self, key: str) -> _Entry | None:
        raw = await self.cache.get(cache_keys.rate_limit(key))
        return _Entry.loads(raw) if raw is not None else None

    def _ttl(self, entry: _Entry, now: datetime) -> float:
        ends = [entry.window_start + self.window]
        if entry.blacklisted_until is not None:
            ends.append(entry.blacklisted_until)
        return max((max(ends) - now).total_seconds(), 1.0)

    def _is_stale(self, entry: _Entry, now: datetime, window: timedelta) -> bool:
        if entry.blacklisted_until is not None:
            return now >= entry.blacklisted_until
        return now >= entry.window_start + window

    async def check_and_increment(
        self,
        key: str,
        max_attempts: int | None = None,
        window: timedelta | None = None,
    ) -> bool:
        """
        Count one attempt for ``key``.

        The blacklist check, window reset, increment and blacklist write are
        one atomic cache update, so workers sharing a Redis cache cannot
        interleave them.

        Args:
            key: Limiter key
            max_attempts: Allowed attempts per window; defaults to settings
            window: Window length; defaults to settings

        Returns:
            True if the attempt is allowed, False if the key is (now) blacklisted
        """
        max_attempts = max_attempts or self.max_attempts
        window = window or self.window
        now = self._clock()
        just_blacklisted = False

        def advance(raw: str | None) -> CacheWrite | None:
            nonlocal just_blacklisted
            just_blacklisted = False
            entry = _Entry.loads(raw) if raw is not None else None
            if entry is not None and entry.blacklisted_until is not None and now < entry.blacklisted_until:
                return None
            if entry is None or self._is_stale(entry, now, window):
                entry = _Entry(count=0, window_start=now)

            entry.count += 1
            if entry.count > max_attempts:
                entry.blacklisted_until = now + self.blacklist_duration
                just_blacklisted = True
            return CacheWrite(entry.dumps(), self._ttl(entry, now))

        async with self._locks.acquire(key):
            stored = await self.cache.update(cache_keys.rate_limit(key), advance)
        self._known_keys.add(key)

        entry = _Entry.loads(stored)
        if just_blacklisted:
            logger.warning(
                f"Rate limit exceeded for {key}; blacklisted until "
                f"{entry.blacklisted_until.isoformat()}"
            )
        return entry.blacklisted_until is None

    async def check_keys(self, keys: list[str]) -> RateLimitDecision:
        """
        Count one attempt against every key of a request.

        The request is refused if any key refuses it. Every key is still
        counted so IP and username limits advance together.
        """
        allowed = True
        for key in keys:
            allowed = await self.check_and_increment(key) and allowed
        if allowed:
            remaining = [await self.remaining_attempts(key) for key in keys]
            return RateLimitDecision(allowed=True, remaining_attempts=min(remaining, default=None))

        retry = [await self.retry_after(key) for key in keys]
        return RateLimitDecision(
            allowed=False,
            retry_after_seconds=max((r for r in retry if r is not None), default=None),
            remaining_attempts=0,
        )

    async def reset(self, key: str) -> None:
        """Return a key to Clean, e.g. after a successful login."""
        async with self._locks.acquire(key):
            await self.cache.remove(cache_keys.rate_limit(key))
        self._known_keys.discard(key)

    async def reset_keys(self, keys: list[str]) -> None:
        for key in keys:
            await self.reset(key)

    async def remaining_attempts(self, key: str) -> int:
        """Attempts left in the current window; 0 while blacklisted."""
        now = self._clock()
        entry = await self._load(key)
        if entry is None or self._is_stale(entry, now, self.window):
            return self.max_attempts
        if entry.blacklisted_until is not None:
            return 0
        return max(self.max_attempts - entry.count, 0)

    async def is_blacklisted(self, key: str) -> bool:
        return await self.retry_after(key) is not None

    async def retry_after(self, key: str) -> int | None:
        """Seconds until the blacklist on ``key`` expires, or None if not blacklisted."""
        now = self._clock()
        entry = await self._load(key)
        if entry is None or entry.blacklisted_until is None or now >= entry.blacklisted_until:
            return None
        return max(int((entry.blacklisted_until - now).total_seconds()), 1)

    async def cleanup(self) -> int:
        """
        Remove stale entries this process has written.

        Entries also carry a cache TTL; this pass only frees them earlier.

        Returns:
            Number of entries removed
        """
        removed = 0
        now = self._clock()
        for key in list(self._known_keys):
            async with self._locks.acquire(key):
                entry = await self._load(key)
                if entry is not None and not self._is_stale(entry, now, self.window):
                    continue
                await self.cache.remove(cache_keys.rate_limit(key))
            self._known_keys.discard(key)
            if entry is not None:
                removed += 1
        return removed
