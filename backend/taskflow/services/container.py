"""
Service Container

Explicitly constructed infrastructure services, created once at process
start and handed to the app, the middleware pipeline and route
dependencies.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from redis.asyncio import Redis

from ..constants import now_ms
from ..core.config import Settings
from ..infrastructure.redis.circuit_breaker import (
    BackendCircuitBreaker,
    CircuitBreakerConfig,
)
from ..infrastructure.redis.connection_factory import create_redis_client
from ..monitoring.performance_monitor import PerformanceMonitor
from .cache.cache_manager import CacheManager
from .rate_limiting.rate_limiter import (
    RateLimiter,
    build_rate_limiters,
    policies_from_settings,
)


@dataclass
class InfrastructureServices:
    """The shared services every request may touch."""

    settings: Settings
    cache: CacheManager
    performance_monitor: PerformanceMonitor
    rate_limiters: Dict[str, RateLimiter]

    def rate_limiter(self, policy: str) -> RateLimiter:
        """
        Look up a limiter by policy name.

        Raises:
            KeyError: If no policy with that name is configured
        """
        try:
            return self.rate_limiters[policy]
        except KeyError:
            raise KeyError(f"Unknown rate limit policy: {policy}") from None

    async def close(self) -> None:
        await self.cache.close()


def build_services(
    settings: Settings,
    redis_client: Optional[Redis] = None,
    clock: Callable[[], int] = now_ms,
) -> InfrastructureServices:
    """
    Construct the service container.

    Args:
        settings: Application settings
        redis_client: Pre-built client; when omitted one is created from
            REDIS_URL (or none at all if it is unset)
        clock: Epoch-millisecond clock shared by the cache and the monitor
    """
    client = redis_client if redis_client is not None else create_redis_client(settings)

    cache = CacheManager(
        redis_client=client,
        key_prefix=settings.CACHE_KEY_PREFIX,
        default_ttl=settings.CACHE_DEFAULT_TTL,
        circuit_breaker=BackendCircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                recovery_timeout=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            )
        ),
        clock=clock,
    )

    performance_monitor = PerformanceMonitor(
        max_metrics=settings.PERFORMANCE_MAX_METRICS,
        slow_operation_threshold_ms=settings.SLOW_OPERATION_THRESHOLD_MS,
        slow_query_threshold_ms=settings.SLOW_QUERY_THRESHOLD_MS,
        slow_query_retention=settings.SLOW_QUERY_RETENTION,
        clock=clock,
    )

    return InfrastructureServices(
        settings=settings,
        cache=cache,
        performance_monitor=performance_monitor,
        rate_limiters=build_rate_limiters(cache, policies_from_settings(settings)),
    )
