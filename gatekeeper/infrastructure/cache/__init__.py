"""Cache adapters."""

from gatekeeper.infrastructure.cache.memory_cache import MemoryCache
from gatekeeper.infrastructure.cache.redis_cache import RedisCache
from gatekeeper.infrastructure.cache.retrying_cache import RetryingCache

__all__ = ["MemoryCache", "RedisCache", "RetryingCache"]
