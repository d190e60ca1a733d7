"""
Request Performance Monitor

In-memory, bounded log of operation durations plus a running aggregate of
persistence-layer calls. Writes are O(1) appends to a ring buffer; the
time window is applied only when a summary is read.
"""

import functools
import inspect
import os
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, TypeVar, Union

import psutil
import structlog

from ..constants import (
    DEFAULT_SUMMARY_WINDOW_MS,
    MAX_METRICS,
    MAX_SLOW_OPERATIONS,
    MAX_SLOW_QUERIES,
    REALTIME_OPERATIONS,
    SLOW_OPERATION_THRESHOLD_MS,
    SLOW_QUERY_TEXT_LIMIT,
    SLOW_QUERY_THRESHOLD_MS,
    now_ms,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")
StopTiming = Callable[..., float]


@dataclass(frozen=True)
class Metric:
    """A single timed operation."""

    name: str
    duration_ms: float
    timestamp_ms: int
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "duration_ms": round(self.duration_ms, 3),
            "timestamp_ms": self.timestamp_ms,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class SlowQueryRecord:
    """A persistence-layer call that crossed the slow-query threshold."""

    query: str
    duration_ms: float
    timestamp_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "duration_ms": round(self.duration_ms, 3),
            "timestamp_ms": self.timestamp_ms,
        }


@dataclass
class DatabaseMetrics:
    """Process-lifetime aggregate of reported persistence-layer calls."""

    query_count: int = 0
    total_duration_ms: float = 0.0
    slow_queries: Deque[SlowQueryRecord] = field(
        default_factory=lambda: deque(maxlen=MAX_SLOW_QUERIES)
    )

    @property
    def avg_duration_ms(self) -> float:
        if self.query_count == 0:
            return 0.0
        return self.total_duration_ms / self.query_count

    def snapshot(self) -> Dict[str, Any]:
        return {
            "query_count": self.query_count,
            "total_duration_ms": round(self.total_duration_ms, 3),
            "avg_duration_ms": round(self.avg_duration_ms, 3),
            "slow_queries": [record.to_dict() for record in self.slow_queries],
        }


@dataclass
class PerformanceSummary:
    """Windowed view of recorded metrics."""

    window_ms: int
    total_metrics: int
    avg_duration_ms: float
    slow_operations: List[Metric]
    operations_by_type: Dict[str, Dict[str, float]]
    database_metrics: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_ms": self.window_ms,
            "total_metrics": self.total_metrics,
            "avg_duration_ms": round(self.avg_duration_ms, 3),
            "slow_operations": [metric.to_dict() for metric in self.slow_operations],
            "operations_by_type": self.operations_by_type,
            "database_metrics": self.database_metrics,
        }


class PerformanceMonitor:
    """
    Collects operation timings and persistence-layer query statistics.

    Features:
    - Scoped and deferred timing via ``start_timing``
    - Wrapping a unit of work with ``time_function`` or ``timed``
    - Bounded FIFO ring buffer of metrics
    - Slow-operation and slow-query diagnostics
    - Windowed summaries computed at read time

    Reporting may happen from worker threads (sync endpoints, database
    drivers), so all shared state is guarded by a lock.
    """

    def __init__(
        self,
        max_metrics: int = MAX_METRICS,
        slow_operation_threshold_ms: float = SLOW_OPERATION_THRESHOLD_MS,
        slow_query_threshold_ms: float = SLOW_QUERY_THRESHOLD_MS,
        slow_query_retention: int = MAX_SLOW_QUERIES,
        clock: Callable[[], int] = now_ms,
    ):
        self.max_metrics = max_metrics
        self.slow_operation_threshold_ms = slow_operation_threshold_ms
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self.slow_query_retention = slow_query_retention
        self._clock = clock
        self._lock = threading.Lock()
        self._metrics: Deque[Metric] = deque(maxlen=max_metrics)
        self._db_metrics = self._new_database_metrics()
        self._started_at = time.monotonic()

    def start_timing(
        self, name: str, metadata: Optional[Dict[str, Any]] = None
    ) -> StopTiming:
        """
        Start timing an operation.

        Args:
            name: Metric name
            metadata: Optional tags recorded with the metric

        Returns:
            A stop function. Calling it records the metric and returns the
            elapsed milliseconds; keyword arguments passed to it are merged
            into the metadata.
        """
        start = time.perf_counter()

        def stop(**extra_metadata: Any) -> float:
            duration_ms = (time.perf_counter() - start) * 1000
            merged = dict(metadata or {})
            merged.update(extra_metadata)
            self.add_metric(name, duration_ms, merged or None)
            return duration_ms

        return stop

    async def time_function(
        self,
        name: str,
        fn: Callable[[], Union[T, Awaitable[T]]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> T:
        """
        Time a unit of work, sync or async.

        The timer is stopped even when ``fn`` raises; the original
        exception propagates unchanged.
        """
        stop = self.start_timing(name, metadata)
        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            stop()

    def timed(self, name: Optional[str] = None):
        """Decorator recording each call of an async function as a metric."""

        def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
            metric_name = name or func.__qualname__

            @functools.wraps(func)
            async def wrapper(*args, **kwargs) -> T:
                return await self.time_function(
                    metric_name, lambda: func(*args, **kwargs)
                )

            return wrapper

        return decorator

    def add_metric(
        self,
        name: str,
        duration_ms: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Metric:
        """Append a metric, evicting the oldest once the buffer is full."""
        metric = Metric(
            name=name,
            duration_ms=duration_ms,
            timestamp_ms=self._clock(),
            metadata=metadata,
        )

        with self._lock:
            self._metrics.append(metric)

        if duration_ms > self.slow_operation_threshold_ms:
            logger.warning(
                "Slow operation detected",
                operation=name,
                duration_ms=round(duration_ms, 2),
                metadata=metadata,
            )

        return metric

    def track_database_query(self, query: str, duration_ms: float) -> None:
        """Record one persistence-layer call in the running aggregate."""
        slow = duration_ms > self.slow_query_threshold_ms

        with self._lock:
            self._db_metrics.query_count += 1
            self._db_metrics.total_duration_ms += duration_ms

            if slow:
                self._db_metrics.slow_queries.append(
                    SlowQueryRecord(
                        query=query[:SLOW_QUERY_TEXT_LIMIT],
                        duration_ms=duration_ms,
                        timestamp_ms=self._clock(),
                    )
                )

        if slow:
            logger.warning(
                "Slow database query",
                duration_ms=round(duration_ms, 2),
                query=query[:SLOW_QUERY_TEXT_LIMIT],
            )

    def get_performance_summary(
        self, time_window_ms: Optional[int] = None
    ) -> PerformanceSummary:
        """
        Summarize metrics recorded within the trailing window.

        Args:
            time_window_ms: Window length (defaults to 5 minutes)

        Returns:
            Count, mean duration, the 10 slowest operations over the slow
            threshold, per-name aggregates and a snapshot of the cumulative
            database aggregate
        """
        window_ms = time_window_ms or DEFAULT_SUMMARY_WINDOW_MS
        current = self._clock()

        with self._lock:
            recent = [
                metric
                for metric in self._metrics
                if current - metric.timestamp_ms <= window_ms
            ]
            database_metrics = self._db_metrics.snapshot()

        grouped: Dict[str, Dict[str, float]] = {}
        for metric in recent:
            bucket = grouped.setdefault(metric.name, {"count": 0, "total": 0.0})
            bucket["count"] += 1
            bucket["total"] += metric.duration_ms

        operations_by_type = {
            name: {
                "count": int(data["count"]),
                "avg_duration_ms": data["total"] / data["count"],
            }
            for name, data in grouped.items()
        }

        total_duration = sum(metric.duration_ms for metric in recent)
        slowest = sorted(
            (
                metric
                for metric in recent
                if metric.duration_ms > self.slow_operation_threshold_ms
            ),
            key=lambda metric: metric.duration_ms,
            reverse=True,
        )

        return PerformanceSummary(
            window_ms=window_ms,
            total_metrics=len(recent),
            avg_duration_ms=total_duration / len(recent) if recent else 0.0,
            slow_operations=slowest[:MAX_SLOW_OPERATIONS],
            operations_by_type=operations_by_type,
            database_metrics=database_metrics,
        )

    def get_realtime_metrics(self) -> Dict[str, Any]:
        """Latest operations plus process memory and uptime."""
        with self._lock:
            latest = list(self._metrics)[-REALTIME_OPERATIONS:]

        latest.sort(key=lambda metric: metric.timestamp_ms, reverse=True)

        return {
            "recent_operations": [metric.to_dict() for metric in latest],
            "memory_usage_mb": get_memory_usage(),
            "process_uptime_seconds": round(time.monotonic() - self._started_at, 3),
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)

    @property
    def metrics(self) -> List[Metric]:
        """Copy of the ring buffer, oldest first."""
        with self._lock:
            return list(self._metrics)

    def reset(self) -> None:
        """Clear the ring buffer and the database aggregate."""
        with self._lock:
            self._metrics.clear()
            self._db_metrics = self._new_database_metrics()

    def _new_database_metrics(self) -> DatabaseMetrics:
        return DatabaseMetrics(slow_queries=deque(maxlen=self.slow_query_retention))


def get_memory_usage() -> Dict[str, float]:
    """Resident and virtual memory of this process in MB."""
    memory_info = psutil.Process(os.getpid()).memory_info()
    return {
        "rss": round(memory_info.rss / 1024 / 1024, 2),
        "vms": round(memory_info.vms / 1024 / 1024, 2),
    }
