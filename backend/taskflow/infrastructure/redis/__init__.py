"""
Redis Infrastructure Module

Shared cache backend plumbing:
- create_redis_client: asyncio client with short connect/operation timeouts
- BackendCircuitBreaker: skips a failing backend until it recovers
- Backend exceptions recovered by the cache layer
"""

from .connection_factory import create_redis_client
from .circuit_breaker import (
    BackendCircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    CircuitBreakerMetrics,
)
from .exceptions import (
    CacheBackendException,
    CacheBackendUnavailableException,
    CacheCircuitOpenException,
)

__all__ = [
    "create_redis_client",
    # Circuit breaker
    "BackendCircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "CircuitBreakerMetrics",
    # Exceptions
    "CacheBackendException",
    "CacheBackendUnavailableException",
    "CacheCircuitOpenException",
]
