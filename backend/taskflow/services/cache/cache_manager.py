"""
Cache Manager Service

Two-tier key/value cache: Redis as the shared tier, an in-process map as
the fallback tier. A backend outage degrades every operation to the local
tier; no cache call ever raises because Redis is down.
"""

import asyncio
import inspect
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar, Union

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ...constants import CACHE_KEY_PREFIX, DEFAULT_CACHE_TTL_SECONDS, now_ms
from ...infrastructure.redis.circuit_breaker import BackendCircuitBreaker
from ...infrastructure.redis.exceptions import (
    CacheBackendException,
    CacheBackendUnavailableException,
    CacheCircuitOpenException,
)
from .local_store import LocalCacheStore

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

# Atomic increment-with-TTL-if-absent: a fresh counter gets the window as
# its expiry, later increments keep the original expiry.
INCREMENT_WINDOW_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""

BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)
GLOB_CHARACTERS = ("*", "?", "[")


@dataclass(frozen=True)
class CounterSnapshot:
    """State of a windowed counter right after an increment."""

    count: int
    reset_at_ms: int


class CacheManager:
    """
    Two-tier cache with silent fallback.

    Reads and writes go to Redis when it is configured and reachable. On any
    backend error, or while the circuit breaker is open, the same operation
    is served by the local tier and a warning is logged.
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        key_prefix: str = CACHE_KEY_PREFIX,
        default_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
        circuit_breaker: Optional[BackendCircuitBreaker] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._redis = redis_client
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl
        self.circuit_breaker = circuit_breaker or BackendCircuitBreaker()
        self.clock = clock
        self._local = LocalCacheStore(clock=clock)
        self._increment_script = (
            redis_client.register_script(INCREMENT_WINDOW_SCRIPT)
            if redis_client is not None
            else None
        )

    @property
    def has_backend(self) -> bool:
        return self._redis is not None

    @property
    def local(self) -> LocalCacheStore:
        return self._local

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def _call_backend(
        self, operation: str, func: Callable[[], Awaitable[T]]
    ) -> T:
        """
        Run one backend command under the circuit breaker.

        Raises:
            CacheCircuitOpenException: If the circuit is open
            CacheBackendUnavailableException: If the command failed
        """
        self.circuit_breaker.before_call()

        with tracer.start_as_current_span(f"cache.backend.{operation}") as span:
            span.set_attribute("cache.operation", operation)
            try:
                result = await func()
            except BACKEND_ERRORS as e:
                self.circuit_breaker.record_failure(type(e).__name__)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise CacheBackendUnavailableException(operation, original_error=e)

            self.circuit_breaker.record_success()
            span.set_status(Status(StatusCode.OK))
            return result

    def _log_fallback(self, operation: str, key: str, error: CacheBackendException):
        if isinstance(error, CacheCircuitOpenException):
            logger.debug(
                "Cache backend circuit open, using local tier",
                operation=operation,
                key=key,
            )
        else:
            logger.warning(
                "Cache backend error, falling back to local tier",
                operation=operation,
                key=key,
                error=error.message,
                details=error.details,
            )

    def _decode(self, key: str, raw: Optional[str]) -> Any:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable cache entry", key=key)
            return None

    def _ttl_ms(self, ttl_seconds: Optional[Union[int, float]]) -> int:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        return max(1, int(ttl * 1000))

    async def get(self, key: str) -> Any:
        """
        Get a cached value.

        Args:
            key: Cache key without namespace prefix

        Returns:
            The cached value, or None when missing or expired
        """
        full_key = self._full_key(key)

        if self._redis is not None:
            try:
                raw = await self._call_backend("get", lambda: self._redis.get(full_key))
                return self._decode(full_key, raw)
            except CacheBackendException as e:
                self._log_fallback("get", full_key, e)

        return self._decode(full_key, self._local.get(full_key))

    async def set(
        self, key: str, value: Any, ttl_seconds: Optional[Union[int, float]] = None
    ) -> None:
        """
        Store a JSON-serializable value with a time-to-live.

        Args:
            key: Cache key without namespace prefix
            value: Value to store
            ttl_seconds: Time to live (defaults to the configured default TTL)
        """
        full_key = self._full_key(key)
        payload = json.dumps(value, default=str)
        ttl_ms = self._ttl_ms(ttl_seconds)

        if self._redis is not None:
            try:
                await self._call_backend(
                    "set", lambda: self._redis.set(full_key, payload, px=ttl_ms)
                )
                # A stale local copy must not resurface during a later outage
                self._local.delete(full_key)
                return
            except CacheBackendException as e:
                self._log_fallback("set", full_key, e)

        self._local.set(full_key, payload, ttl_ms)

    async def delete(self, key: str) -> None:
        """Remove a key from both tiers (best effort)."""
        full_key = self._full_key(key)

        if self._redis is not None:
            try:
                await self._call_backend("delete", lambda: self._redis.delete(full_key))
            except CacheBackendException as e:
                self._log_fallback("delete", full_key, e)

        self._local.delete(full_key)

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Remove every key matching a prefix or glob pattern from both tiers.

        A pattern without glob characters is treated as a prefix, so
        ``workspace:42:`` and ``workspace:42:*`` are equivalent.

        Returns:
            Number of keys removed across both tiers
        """
        if not any(char in pattern for char in GLOB_CHARACTERS):
            pattern = f"{pattern}*"
        full_pattern = self._full_key(pattern)
        removed = 0

        if self._redis is not None:

            async def scan_and_delete() -> int:
                keys = [
                    key
                    async for key in self._redis.scan_iter(
                        match=full_pattern, count=500
                    )
                ]
                if not keys:
                    return 0
                return await self._redis.delete(*keys)

            try:
                removed += await self._call_backend("invalidate", scan_and_delete)
            except CacheBackendException as e:
                self._log_fallback("invalidate", full_pattern, e)

        removed += self._local.delete_matching(full_pattern)

        logger.debug("Cache pattern invalidated", pattern=full_pattern, removed=removed)
        return removed

    async def increment(self, key: str, window_ms: int) -> CounterSnapshot:
        """
        Atomically increment a windowed counter.

        The first increment creates the counter with ``window_ms`` as its
        lifetime; later increments within the window keep that expiry.

        Args:
            key: Counter key without namespace prefix
            window_ms: Window length in milliseconds

        Returns:
            Count after the increment and the window's reset time
        """
        full_key = self._full_key(key)

        if self._increment_script is not None:
            try:
                count, ttl_ms = await self._call_backend(
                    "increment",
                    lambda: self._increment_script(keys=[full_key], args=[window_ms]),
                )
                return CounterSnapshot(
                    count=int(count), reset_at_ms=self.clock() + int(ttl_ms)
                )
            except CacheBackendException as e:
                self._log_fallback("increment", full_key, e)

        count, expires_at_ms = self._local.increment(full_key, window_ms)
        return CounterSnapshot(count=count, reset_at_ms=expires_at_ms)

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Union[T, Awaitable[T]]],
        ttl_seconds: Optional[Union[int, float]] = None,
    ) -> T:
        """
        Return the cached value for ``key``, computing and storing it on miss.

        Args:
            key: Cache key without namespace prefix
            fetcher: Sync or async callable producing the value
            ttl_seconds: Time to live for a freshly computed value
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        data = fetcher()
        if inspect.isawaitable(data):
            data = await data

        await self.set(key, data, ttl_seconds)
        return data

    def cleanup(self) -> int:
        """Evict expired entries from the local tier."""
        removed = self._local.cleanup()
        if removed:
            logger.debug("Local cache cleanup", removed=removed)
        return removed

    def backend_status(self) -> Dict[str, Any]:
        """Describe which tier is serving and the circuit breaker state."""
        return {
            "backend": "redis" if self._redis is not None else "memory",
            "circuit": self.circuit_breaker.get_status(),
            "local_entries": len(self._local),
        }

    async def close(self) -> None:
        """Close the Redis client, if any."""
        if self._redis is not None:
            await self._redis.aclose()
            logger.info("Cache backend connection closed")
