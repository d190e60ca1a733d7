"""
Unit tests for the request performance monitor.

Uses an injected clock so window arithmetic is deterministic.
"""

import asyncio
import threading

import pytest

from taskflow.monitoring.performance_monitor import PerformanceMonitor, get_memory_usage


class TestRecording:
    def test_add_metric_records_timestamp(self, performance_monitor, clock):
        metric = performance_monitor.add_metric("db.load", 12.5, {"table": "tasks"})

        assert metric.timestamp_ms == clock.now
        assert metric.metadata == {"table": "tasks"}
        assert len(performance_monitor) == 1

    def test_ring_buffer_evicts_oldest(self, clock):
        monitor = PerformanceMonitor(max_metrics=3, clock=clock)

        for i in range(5):
            monitor.add_metric(f"op{i}", float(i))

        assert [metric.name for metric in monitor.metrics] == ["op2", "op3", "op4"]

    def test_start_timing_merges_stop_metadata(self, performance_monitor):
        stop = performance_monitor.start_timing("GET /tasks", {"method": "GET"})

        duration = stop(status=200)

        metric = performance_monitor.metrics[-1]
        assert duration >= 0
        assert metric.name == "GET /tasks"
        assert metric.metadata == {"method": "GET", "status": 200}

    @pytest.mark.asyncio
    async def test_time_function_records_async_result(self, performance_monitor):
        async def work():
            await asyncio.sleep(0)
            return 7

        assert await performance_monitor.time_function("work", work) == 7
        assert performance_monitor.metrics[-1].name == "work"

    @pytest.mark.asyncio
    async def test_time_function_records_sync_result(self, performance_monitor):
        assert await performance_monitor.time_function("sync", lambda: "ok") == "ok"
        assert len(performance_monitor) == 1

    @pytest.mark.asyncio
    async def test_time_function_records_and_reraises_on_failure(self, performance_monitor):
        async def fail():
            raise LookupError("missing")

        with pytest.raises(LookupError, match="missing"):
            await performance_monitor.time_function("fail", fail)

        assert performance_monitor.metrics[-1].name == "fail"

    @pytest.mark.asyncio
    async def test_timed_decorator(self, performance_monitor):
        @performance_monitor.timed("tasks.list")
        async def list_tasks(workspace_id):
            return [workspace_id]

        assert await list_tasks("w1") == ["w1"]
        assert performance_monitor.metrics[-1].name == "tasks.list"

    def test_concurrent_writers(self, clock):
        monitor = PerformanceMonitor(max_metrics=10_000, clock=clock)

        def write():
            for _ in range(500):
                monitor.add_metric("op", 1.0)

        threads = [threading.Thread(target=write) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(monitor) == 2000


class TestSummary:
    def test_empty_summary(self, performance_monitor):
        summary = performance_monitor.get_performance_summary()

        assert summary.total_metrics == 0
        assert summary.avg_duration_ms == 0.0
        assert summary.slow_operations == []
        assert summary.operations_by_type == {}

    def test_window_excludes_old_metrics(self, performance_monitor, clock):
        performance_monitor.add_metric("old", 100.0)
        clock.advance(10_000)
        performance_monitor.add_metric("new", 50.0)

        summary = performance_monitor.get_performance_summary(time_window_ms=5_000)

        assert summary.total_metrics == 1
        assert summary.avg_duration_ms == 50.0
        assert list(summary.operations_by_type) == ["new"]

    def test_default_window_is_five_minutes(self, performance_monitor, clock):
        performance_monitor.add_metric("op", 1.0)
        clock.advance(5 * 60 * 1000)
        assert performance_monitor.get_performance_summary().total_metrics == 1

        clock.advance(1)
        assert performance_monitor.get_performance_summary().total_metrics == 0

    def test_operations_grouped_by_name(self, performance_monitor):
        performance_monitor.add_metric("a", 10.0)
        performance_monitor.add_metric("a", 30.0)
        performance_monitor.add_metric("b", 5.0)

        summary = performance_monitor.get_performance_summary()

        assert summary.operations_by_type == {
            "a": {"count": 2, "avg_duration_ms": 20.0},
            "b": {"count": 1, "avg_duration_ms": 5.0},
        }
        assert summary.avg_duration_ms == 15.0

    def test_slow_operations_are_ten_slowest_descending(self, performance_monitor):
        for i in range(15):
            performance_monitor.add_metric(f"op{i}", 201.0 + i)

        slow = performance_monitor.get_performance_summary().slow_operations

        assert len(slow) == 10
        assert [metric.duration_ms for metric in slow] == [
            201.0 + i for i in range(14, 4, -1)
        ]

    def test_fast_operations_are_not_slow(self, performance_monitor):
        performance_monitor.add_metric("fast", 1.0)
        performance_monitor.add_metric("at_threshold", 200.0)
        performance_monitor.add_metric("slow", 450.0)

        summary = performance_monitor.get_performance_summary()

        assert [metric.name for metric in summary.slow_operations] == ["slow"]
        assert summary.total_metrics == 3

    def test_summary_to_dict(self, performance_monitor):
        performance_monitor.add_metric("op", 250.0)

        data = performance_monitor.get_performance_summary().to_dict()

        assert data["total_metrics"] == 1
        assert data["slow_operations"][0]["name"] == "op"
        assert data["database_metrics"]["query_count"] == 0


class TestDatabaseMetrics:
    def test_track_queries(self, performance_monitor):
        performance_monitor.track_database_query("SELECT 1", 10.0)
        performance_monitor.track_database_query("SELECT * FROM tasks", 150.0)

        database = performance_monitor.get_performance_summary().database_metrics

        assert database["query_count"] == 2
        assert database["total_duration_ms"] == 160.0
        assert database["avg_duration_ms"] == 80.0
        assert [record["query"] for record in database["slow_queries"]] == [
            "SELECT * FROM tasks"
        ]

    def test_slow_query_text_is_truncated(self, performance_monitor):
        performance_monitor.track_database_query("x" * 500, 500.0)

        record = performance_monitor.get_performance_summary().database_metrics[
            "slow_queries"
        ][0]
        assert len(record["query"]) == 200

    def test_slow_query_log_is_bounded(self, performance_monitor):
        for i in range(60):
            performance_monitor.track_database_query(f"q{i}", 500.0)

        slow = performance_monitor.get_performance_summary().database_metrics[
            "slow_queries"
        ]
        assert len(slow) == 50
        assert slow[0]["query"] == "q10"

    def test_slow_query_retention_is_configurable(self, clock):
        monitor = PerformanceMonitor(slow_query_retention=3, clock=clock)
        for i in range(5):
            monitor.track_database_query(f"q{i}", 500.0)
        monitor.reset()
        for i in range(5):
            monitor.track_database_query(f"r{i}", 500.0)

        slow = monitor.get_performance_summary().database_metrics["slow_queries"]
        assert [record["query"] for record in slow] == ["r2", "r3", "r4"]

    def test_reset_clears_everything(self, performance_monitor):
        performance_monitor.add_metric("op", 1.0)
        performance_monitor.track_database_query("q", 1.0)

        performance_monitor.reset()

        summary = performance_monitor.get_performance_summary()
        assert summary.total_metrics == 0
        assert summary.database_metrics["query_count"] == 0


class TestRealtime:
    def test_latest_operations_newest_first(self, performance_monitor, clock):
        for i in range(25):
            performance_monitor.add_metric(f"op{i}", 1.0)
            clock.advance(1)

        realtime = performance_monitor.get_realtime_metrics()

        names = [metric["name"] for metric in realtime["recent_operations"]]
        assert len(names) == 20
        assert names[0] == "op24"
        assert names[-1] == "op5"
        assert realtime["process_uptime_seconds"] >= 0

    def test_memory_usage(self):
        usage = get_memory_usage()

        assert usage["rss"] > 0
        assert "vms" in usage
