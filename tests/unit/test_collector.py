"""Unit tests for the snapshot collector and its source pipeline."""

import asyncio
import threading
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from structlog.testing import capture_logs

from src.hostwatch.monitoring.collector import (
    STATS_REFRESH_INTERVAL,
    SnapshotCollector,
    Source,
    SourcePipeline,
    default_sources,
    snapshot_refresh_loop,
)
from src.hostwatch.monitoring.deadline import Deadline
from src.hostwatch.monitoring.errors import (
    JoinedMetricError,
    MetricError,
    MetricErrorKind,
    is_timeout,
    sensor_error,
    system_error,
)
from src.hostwatch.monitoring.models import DiskInfo, HostInfo, MemoryInfo


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingSource:
    """Source function that records how often it ran."""

    def __init__(self, value, error=None, delay: float = 0.0):
        self.value = value
        self.error = error
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, deadline):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return self.value, self.error


def _sources(**overrides):
    host = overrides.get("host", CountingSource(HostInfo(hostname="box", os="linux")))
    memory = overrides.get("memory", CountingSource(MemoryInfo(total=8, used=4, free=4, used_percent=50.0)))
    disk = overrides.get("disk", CountingSource(DiskInfo(total=100, used=40, free=60, usage_percent=40.0)))
    return host, memory, disk, [Source("host", host), Source("memory", memory), Source("disk", disk)]


# ---------------------------------------------------------------------------
# Cache behaviour
# ---------------------------------------------------------------------------


class TestSnapshotCache:
    """TTL cache semantics."""

    def test_default_refresh_interval(self):
        assert STATS_REFRESH_INTERVAL == 2.0
        assert SnapshotCollector(sources=[]).refresh_interval == 2.0

    def test_builds_snapshot_from_source_values(self):
        _, _, _, sources = _sources()
        collector = SnapshotCollector(sources=sources)

        snapshot, err = collector.collect(Deadline.after(5))

        assert err is None
        assert snapshot.hostname == "box"
        assert snapshot.memory_info.used_percent == 50.0
        assert snapshot.disk_total == 100
        assert snapshot.disk_free == 60
        assert snapshot.cpu_info == ()
        assert collector.collection_count == 1

    def test_cache_hit_runs_no_sources(self):
        clock = FakeClock()
        host, memory, disk, sources = _sources()
        collector = SnapshotCollector(sources=sources, clock=clock)

        first, _ = collector.collect(Deadline.after(5))
        clock.now += 1.9
        second, _ = collector.collect(Deadline.after(5))

        assert second is first
        assert host.calls == memory.calls == disk.calls == 1
        assert collector.collection_count == 1

    def test_stale_entry_is_refreshed(self):
        clock = FakeClock()
        host, _, _, sources = _sources()
        collector = SnapshotCollector(sources=sources, clock=clock)

        first, _ = collector.collect(Deadline.after(5))
        clock.now += STATS_REFRESH_INTERVAL
        second, _ = collector.collect(Deadline.after(5))

        assert second is not first
        assert host.calls == 2

    def test_refresh_interval_is_injectable(self):
        clock = FakeClock()
        host, _, _, sources = _sources()
        collector = SnapshotCollector(refresh_interval=10.0, sources=sources, clock=clock)

        collector.collect(Deadline.after(5))
        clock.now += 9.0
        collector.collect(Deadline.after(5))
        assert host.calls == 1

    def test_invalidate_forces_new_sweep(self):
        host, _, _, sources = _sources()
        collector = SnapshotCollector(sources=sources)

        collector.collect(Deadline.after(5))
        collector.invalidate()
        assert collector.cached() is None
        collector.collect(Deadline.after(5))
        assert host.calls == 2

    def test_cached_does_not_collect(self):
        host, _, _, sources = _sources()
        collector = SnapshotCollector(sources=sources)
        assert collector.cached() is None
        assert host.calls == 0

        snapshot, _ = collector.collect(Deadline.after(5))
        assert collector.cached() is snapshot

    def test_negative_refresh_interval_rejected(self):
        with pytest.raises(ValueError):
            SnapshotCollector(refresh_interval=-1, sources=[])


# ---------------------------------------------------------------------------
# Deadlines
# ---------------------------------------------------------------------------


class TestDeadlines:
    """Expired deadlines fail fast and never populate the cache."""

    def test_expired_deadline_raises_timeout_without_work(self):
        host, _, _, sources = _sources()
        collector = SnapshotCollector(sources=sources)

        start = time.perf_counter()
        with pytest.raises(MetricError) as exc_info:
            collector.collect(Deadline.after(0))
        elapsed = time.perf_counter() - start

        assert exc_info.value.kind == MetricErrorKind.TIMEOUT
        assert host.calls == 0
        assert elapsed < 0.5
        assert collector.cached() is None

    def test_cancelled_deadline_raises_timeout(self):
        _, _, _, sources = _sources()
        collector = SnapshotCollector(sources=sources)
        deadline = Deadline.never()
        deadline.cancel()

        with pytest.raises(MetricError) as exc_info:
            collector.collect(deadline)
        assert "operation was canceled" in str(exc_info.value)

    def test_expiry_mid_pipeline_stops_and_leaves_cache_untouched(self):
        def _cancel_deadline(deadline):
            deadline.cancel()
            return HostInfo(hostname="box"), None

        later = CountingSource(MemoryInfo(total=1))
        collector = SnapshotCollector(sources=[Source("host", _cancel_deadline), Source("memory", later)])

        with pytest.raises(MetricError) as exc_info:
            collector.collect(Deadline.never())

        assert is_timeout(exc_info.value)
        assert "before memory" in str(exc_info.value)
        assert later.calls == 0
        assert collector.cached() is None
        assert collector.collection_count == 0

    def test_expiry_during_last_source_keeps_completed_sweep(self):
        first = CountingSource(MemoryInfo(total=1))

        def _cancel_deadline(deadline):
            deadline.cancel()
            return HostInfo(hostname="box"), None

        collector = SnapshotCollector(sources=[Source("memory", first), Source("host", _cancel_deadline)])

        snapshot, err = collector.collect(Deadline.never())

        assert err is None
        assert snapshot.hostname == "box"
        assert snapshot.memory_info.total == 1
        assert collector.collection_count == 1
        assert collector.cached() is snapshot

    def test_pipeline_returns_values_when_last_source_exhausts_deadline(self):
        def _cancel_deadline(deadline):
            deadline.cancel()
            return HostInfo(hostname="box"), None

        result = SourcePipeline([Source("host", _cancel_deadline)]).run(Deadline.never())

        assert result.values["host"].hostname == "box"
        assert result.errors == []


# ---------------------------------------------------------------------------
# Partial failure
# ---------------------------------------------------------------------------


class TestPartialFailure:
    """Errors from several sources are joined; values are still used."""

    def test_errors_joined_and_partial_values_kept(self):
        host_err = system_error("collect_host_info", "no boot time")
        disk_err = sensor_error("collect_disk_info", "no sensor")
        _, _, _, sources = _sources(
            host=CountingSource(HostInfo(hostname="partial"), host_err),
            disk=CountingSource(DiskInfo(total=10), disk_err),
        )
        collector = SnapshotCollector(sources=sources)

        snapshot, err = collector.collect(Deadline.after(5))

        assert isinstance(err, JoinedMetricError)
        assert err.errors == (host_err, disk_err)
        assert snapshot.hostname == "partial"
        assert snapshot.disk_total == 10

    def test_cache_hit_returns_error_of_cached_sweep(self):
        host_err = system_error("collect_host_info", "failed")
        _, _, _, sources = _sources(host=CountingSource(HostInfo(), host_err))
        collector = SnapshotCollector(sources=sources)

        _, first_err = collector.collect(Deadline.after(5))
        _, second_err = collector.collect(Deadline.after(5))
        assert first_err is host_err
        assert second_err is host_err

    def test_raising_source_is_wrapped(self):
        def _boom(deadline):
            raise RuntimeError("unexpected")

        collector = SnapshotCollector(sources=[Source("broken", _boom)])
        _, err = collector.collect(Deadline.after(5))

        assert isinstance(err, MetricError)
        assert err.kind == MetricErrorKind.SYSTEM
        assert err.operation == "broken"
        assert isinstance(err.cause, RuntimeError)

    def test_partial_collection_is_logged(self):
        _, _, _, sources = _sources(host=CountingSource(HostInfo(), system_error("op", "failed")))
        collector = SnapshotCollector(sources=sources)

        with capture_logs() as logs:
            collector.collect(Deadline.after(5))

        events = [entry for entry in logs if entry["event"] == "snapshot_collection_partial"]
        assert len(events) == 1
        assert events[0]["log_level"] == "warning"
        assert events[0]["failed_sources"] == 1


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


def test_concurrent_misses_converge_on_one_sweep():
    host, memory, disk, _ = _sources()
    slow_host = CountingSource(HostInfo(hostname="box"), delay=0.05)
    collector = SnapshotCollector(
        sources=[Source("host", slow_host), Source("memory", memory), Source("disk", disk)]
    )
    barrier = threading.Barrier(8)
    results = []
    results_lock = threading.Lock()

    def _worker() -> None:
        barrier.wait()
        snapshot, _ = collector.collect(Deadline.after(5))
        with results_lock:
            results.append(snapshot)

    threads = [threading.Thread(target=_worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(results) == 8
    assert slow_host.calls == 1
    assert collector.collection_count == 1
    assert all(snapshot is results[0] for snapshot in results)


async def test_collect_async_runs_in_worker_thread():
    _, _, _, sources = _sources()
    collector = SnapshotCollector(sources=sources)

    snapshot, err = await collector.collect_async(Deadline.after(5))
    assert err is None
    assert snapshot.hostname == "box"


def test_default_source_order():
    names = [source.name for source in default_sources()]
    assert names == ["host", "cpu", "memory", "disk", "temperature", "process", "runtime", "network"]


# ---------------------------------------------------------------------------
# Refresh loop
# ---------------------------------------------------------------------------


class TestSnapshotRefreshLoop:
    """Background refresh keeps running through failures."""

    async def test_loop_survives_collection_failure(self):
        collector = MagicMock()
        collector.collect_async = AsyncMock(side_effect=RuntimeError("boom"))
        sleep = AsyncMock(side_effect=[None, asyncio.CancelledError()])

        with patch("src.hostwatch.monitoring.collector.asyncio.sleep", sleep), capture_logs() as logs:
            with pytest.raises(asyncio.CancelledError):
                await snapshot_refresh_loop(collector, interval_seconds=0.01, timeout_seconds=1.0)

        assert collector.collect_async.await_count == 2
        failures = [entry for entry in logs if entry["event"] == "snapshot_refresh_failed"]
        assert len(failures) == 2
        assert failures[0]["error"] == "boom"

    async def test_loop_refreshes_real_collector(self):
        _, _, _, sources = _sources()
        collector = SnapshotCollector(refresh_interval=0, sources=sources)
        sleep = AsyncMock(side_effect=[None, None, asyncio.CancelledError()])

        with patch("src.hostwatch.monitoring.collector.asyncio.sleep", sleep):
            with pytest.raises(asyncio.CancelledError):
                await snapshot_refresh_loop(collector, interval_seconds=0.01)

        assert collector.collection_count == 3
        sleep.assert_awaited_with(0.01)
