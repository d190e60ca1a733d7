"""
Cache Services

Two-tier cache (Redis plus in-process fallback), the structured key scheme
and invalidation helpers.
"""

from .cache_manager import CacheManager, CounterSnapshot
from .keys import CacheInvalidator, CacheKeys, build_cache_key
from .local_store import CacheEntry, LocalCacheStore

__all__ = [
    "CacheManager",
    "CounterSnapshot",
    "CacheInvalidator",
    "CacheKeys",
    "build_cache_key",
    "CacheEntry",
    "LocalCacheStore",
]
