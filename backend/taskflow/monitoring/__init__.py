"""
Monitoring

Request and persistence-layer performance tracking.
"""

from .performance_monitor import (
    DatabaseMetrics,
    Metric,
    PerformanceMonitor,
    PerformanceSummary,
    SlowQueryRecord,
    get_memory_usage,
)

__all__ = [
    "DatabaseMetrics",
    "Metric",
    "PerformanceMonitor",
    "PerformanceSummary",
    "SlowQueryRecord",
    "get_memory_usage",
]
