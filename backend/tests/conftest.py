"""
Main pytest configuration for backend tests.

Fixtures for settings, a controllable clock, service containers with and
without a (failing) Redis backend.
"""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

# Set test environment variables before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ.pop("REDIS_URL", None)

from taskflow.core.config import Settings
from taskflow.monitoring.performance_monitor import PerformanceMonitor
from taskflow.services.cache.cache_manager import CacheManager
from taskflow.services.container import build_services

START_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-millisecond clock advanced by hand."""

    def __init__(self, start_ms: int = START_MS):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    """Test settings with no shared cache backend."""
    return Settings(ENVIRONMENT="test", REDIS_URL=None, LOG_LEVEL="DEBUG")


@pytest.fixture
def services(settings, clock):
    return build_services(settings, clock=clock)


@pytest.fixture
def cache(clock):
    """Cache manager running on the local tier only."""
    return CacheManager(clock=clock)


@pytest.fixture
def performance_monitor(clock):
    return PerformanceMonitor(clock=clock)


@pytest.fixture
def failing_redis():
    """A Redis client whose every command fails with a connection error."""
    error = RedisConnectionError("Connection refused")

    redis = MagicMock()
    redis.get = AsyncMock(side_effect=error)
    redis.set = AsyncMock(side_effect=error)
    redis.delete = AsyncMock(side_effect=error)
    redis.scan_iter = MagicMock(side_effect=error)
    redis.aclose = AsyncMock()
    redis.register_script = MagicMock(return_value=AsyncMock(side_effect=error))
    return redis


@pytest.fixture
def healthy_redis():
    """A Redis client mock that answers every command successfully."""
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.aclose = AsyncMock()
    redis.register_script = MagicMock(return_value=AsyncMock(return_value=[1, 60000]))
    return redis


# Test markers and configuration
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "redis: marks tests as Redis-related")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "security: marks tests as security tests")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file location."""
    for item in items:
        if "redis" in item.nodeid:
            item.add_marker(pytest.mark.redis)
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        if "security" in item.nodeid:
            item.add_marker(pytest.mark.security)
