"""
Background Maintenance

Periodic housekeeping owned by the application lifespan: local cache
cleanup and, outside production, a performance summary log line. Nothing
here starts on import.
"""

import asyncio
from typing import List, Optional

import structlog

from .container import InfrastructureServices

logger = structlog.get_logger(__name__)


class BackgroundMaintenance:
    """Starts and stops the periodic maintenance tasks."""

    def __init__(self, services: InfrastructureServices):
        self.services = services
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """Start background loops."""
        if self._tasks:
            return

        settings = self.services.settings
        self._tasks.append(
            asyncio.create_task(
                self._cache_cleanup_loop(settings.CACHE_CLEANUP_INTERVAL_SECONDS)
            )
        )
        if not settings.is_production:
            self._tasks.append(
                asyncio.create_task(
                    self._summary_log_loop(
                        settings.PERFORMANCE_SUMMARY_INTERVAL_SECONDS
                    )
                )
            )
        logger.info("Background maintenance started", tasks=len(self._tasks))

    async def stop(self) -> None:
        """Cancel background loops and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Background maintenance stopped")

    async def _cache_cleanup_loop(self, interval: float) -> None:
        """Background local cache cleanup loop."""
        while True:
            try:
                await asyncio.sleep(interval)
                self.services.cache.cleanup()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Cache cleanup loop error", error=str(e))

    async def _summary_log_loop(self, interval: float) -> None:
        """Background performance summary logging loop."""
        while True:
            try:
                await asyncio.sleep(interval)
                log_performance_summary(self.services)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Performance summary loop error", error=str(e))


def log_performance_summary(
    services: InfrastructureServices, window_ms: Optional[int] = None
) -> None:
    """Log a one-line digest of the recent performance summary."""
    summary = services.performance_monitor.get_performance_summary(window_ms)
    if summary.total_metrics == 0:
        return

    database = summary.database_metrics
    logger.info(
        "Performance summary",
        window_ms=summary.window_ms,
        operations=summary.total_metrics,
        avg_duration_ms=round(summary.avg_duration_ms, 2),
        slow_operations=len(summary.slow_operations),
        db_queries=database["query_count"],
        db_avg_duration_ms=database["avg_duration_ms"],
    )
