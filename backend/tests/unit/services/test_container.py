"""Tests for service construction and background maintenance."""

import asyncio

import pytest

from taskflow.core.config import Settings
from taskflow.services.container import build_services
from taskflow.services.maintenance import BackgroundMaintenance, log_performance_summary


class TestBuildServices:
    def test_without_redis_url_uses_local_tier(self, services):
        assert services.cache.has_backend is False
        assert services.cache.backend_status()["backend"] == "memory"

    def test_policies_come_from_settings(self, clock):
        settings = Settings(ENVIRONMENT="test", RATE_LIMIT_SEARCH_MAX_REQUESTS=7)

        services = build_services(settings, clock=clock)

        assert services.rate_limiter("search").policy.max_requests == 7
        assert set(services.rate_limiters) == {
            "api",
            "auth",
            "upload",
            "search",
            "password_reset",
        }

    def test_slow_query_retention_comes_from_settings(self, clock):
        settings = Settings(ENVIRONMENT="test", SLOW_QUERY_RETENTION=5)

        services = build_services(settings, clock=clock)

        assert services.performance_monitor.slow_query_retention == 5

    def test_unknown_policy(self, services):
        with pytest.raises(KeyError):
            services.rate_limiter("missing")

    def test_injected_redis_client_is_used(self, settings, healthy_redis):
        services = build_services(settings, redis_client=healthy_redis)

        assert services.cache.has_backend is True

    def test_shared_clock(self, services, clock):
        assert services.cache.clock is clock
        assert services.performance_monitor.add_metric("op", 1.0).timestamp_ms == clock.now

    @pytest.mark.asyncio
    async def test_close_closes_cache_client(self, settings, healthy_redis):
        services = build_services(settings, redis_client=healthy_redis)

        await services.close()

        healthy_redis.aclose.assert_awaited_once()


class TestSettings:
    def test_empty_redis_url_is_unset(self):
        assert Settings(REDIS_URL="").REDIS_URL is None

    def test_invalid_redis_url_rejected(self):
        with pytest.raises(ValueError):
            Settings(REDIS_URL="http://cache:6379")

    def test_invalid_environment_rejected(self):
        with pytest.raises(ValueError):
            Settings(ENVIRONMENT="qa")

    def test_log_level_normalized(self):
        assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"


class TestBackgroundMaintenance:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, services):
        maintenance = BackgroundMaintenance(services)

        await maintenance.start()
        assert maintenance.running is True

        await maintenance.stop()
        assert maintenance.running is False

    @pytest.mark.asyncio
    async def test_cleanup_loop_evicts_expired_entries(self, clock):
        settings = Settings(ENVIRONMENT="test", CACHE_CLEANUP_INTERVAL_SECONDS=1)
        services = build_services(settings, clock=clock)
        await services.cache.set("k", "v", ttl_seconds=1)
        clock.advance(2_000)

        maintenance = BackgroundMaintenance(services)
        await maintenance.start()
        await asyncio.sleep(1.2)
        await maintenance.stop()

        assert len(services.cache.local) == 0

    @pytest.mark.asyncio
    async def test_production_skips_summary_loop(self, clock):
        settings = Settings(ENVIRONMENT="production")
        maintenance = BackgroundMaintenance(build_services(settings, clock=clock))

        await maintenance.start()
        try:
            assert len(maintenance._tasks) == 1
        finally:
            await maintenance.stop()

    def test_log_performance_summary_with_metrics(self, services):
        services.performance_monitor.add_metric("op", 3.0)

        log_performance_summary(services)
