"""Snapshot collector with a time-to-live cache.

SnapshotCollector runs every metric source in a fixed order under one
caller-supplied Deadline, merges whatever each source returned into a
SystemSnapshot and memoizes it for ``refresh_interval`` seconds.

Concurrency:
- Cache hits only take the read side of a ReadWriteLock.
- A miss takes the write side and re-checks freshness before collecting
  (double-checked locking). Callers that queued up behind a refresh find
  the fresh entry on re-check, so concurrent misses converge on a single
  sweep. This re-check is the de-duplication mechanism; there is no
  separate single-flight primitive.
- Partial failure is the normal case: the snapshot is returned together
  with the joined error of every source that failed.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Optional, Sequence

import structlog

from .deadline import Deadline
from .errors import join_errors, timeout_error, wrap_exception
from .locks import ReadWriteLock
from .models import (
    DiskInfo,
    HostInfo,
    MemoryInfo,
    NetworkStats,
    ProcessInfo,
    RuntimeStats,
    SystemSnapshot,
    TemperatureInfo,
)
from .runtime import collect_runtime_stats, install_gc_timer
from .sources import (
    collect_cpu_info,
    collect_disk_info,
    collect_host_info,
    collect_memory_info,
    collect_network_info,
    collect_process_info,
    collect_temperature_info,
)

logger = structlog.get_logger(__name__)

# Minimum time between two full source sweeps
STATS_REFRESH_INTERVAL = 2.0

COLLECT_OPERATION = "collect_system_stats"

SourceFn = Callable[[Deadline], tuple[Any, Optional[Exception]]]


@dataclass(frozen=True)
class Source:
    """One named step of the collection pipeline."""

    name: str
    collect: SourceFn


@dataclass
class PipelineResult:
    values: dict[str, Any] = field(default_factory=dict)
    errors: list[BaseException] = field(default_factory=list)


class SourcePipeline:
    """Runs sources sequentially, checking the deadline before each one.

    The deadline discipline lives here rather than in the collector: if the
    deadline has expired before a step, the whole run fails with a timeout
    error instead of returning a half-filled result. A run whose last step
    has finished is complete and is returned even if the deadline lapsed
    while that step ran.
    """

    def __init__(self, sources: Sequence[Source]):
        self.sources = list(sources)

    @property
    def names(self) -> list[str]:
        return [source.name for source in self.sources]

    def run(self, deadline: Deadline) -> PipelineResult:
        result = PipelineResult()
        for source in self.sources:
            if deadline.expired():
                raise timeout_error(COLLECT_OPERATION, f"{deadline.reason()} before {source.name}")
            try:
                value, err = source.collect(deadline)
            except Exception as exc:  # noqa: BLE001
                value, err = None, wrap_exception(source.name, exc, "source raised unexpectedly")
            if value is not None:
                result.values[source.name] = value
            if err is not None:
                result.errors.append(err)
        return result


def default_sources(disk_path: str = "/") -> list[Source]:
    """The standard source order; partial-failure reports depend on it."""
    return [
        Source("host", collect_host_info),
        Source("cpu", collect_cpu_info),
        Source("memory", collect_memory_info),
        Source("disk", partial(collect_disk_info, path=disk_path)),
        Source("temperature", collect_temperature_info),
        Source("process", collect_process_info),
        Source("runtime", collect_runtime_stats),
        Source("network", collect_network_info),
    ]


@dataclass(frozen=True)
class CacheEntry:
    snapshot: SystemSnapshot
    error: Optional[BaseException]
    collected_at: float  # Collector clock (monotonic) at the end of the sweep


class SnapshotCollector:
    """Collects and caches SystemSnapshots.

    Attributes:
        refresh_interval: Seconds a collected snapshot stays fresh
        start_time: Application start, used for uptime
        collection_count: Number of full source sweeps performed
    """

    def __init__(
        self,
        refresh_interval: float = STATS_REFRESH_INTERVAL,
        start_time: Optional[datetime] = None,
        sources: Optional[Sequence[Source]] = None,
        disk_path: str = "/",
        clock: Callable[[], float] = time.monotonic,
    ):
        if refresh_interval < 0:
            raise ValueError("refresh_interval must be >= 0")
        self.refresh_interval = refresh_interval
        self.start_time = start_time or datetime.now(timezone.utc)
        self.collection_count = 0
        self._pipeline = SourcePipeline(sources if sources is not None else default_sources(disk_path))
        self._clock = clock
        self._lock = ReadWriteLock()
        self._entry: Optional[CacheEntry] = None
        install_gc_timer()

    @property
    def source_names(self) -> list[str]:
        return self._pipeline.names

    def _fresh_entry(self) -> Optional[CacheEntry]:
        entry = self._entry
        if entry is not None and self._clock() - entry.collected_at < self.refresh_interval:
            return entry
        return None

    def collect(self, deadline: Deadline) -> tuple[SystemSnapshot, Optional[BaseException]]:
        """Return a fresh snapshot and the joined error of the sweep that built it.

        Raises:
            MetricError: timeout kind, when the deadline is already expired on
                entry or expires before one of the sources runs. Nothing is cached
                then. A sweep that reached its last source is cached.
        """
        if deadline.expired():
            raise timeout_error(COLLECT_OPERATION, deadline.reason())

        with self._lock.read_locked():
            entry = self._fresh_entry()
            if entry is not None:
                return entry.snapshot, entry.error

        with self._lock.write_locked():
            # Another caller may have refreshed while we waited for the lock
            entry = self._fresh_entry()
            if entry is not None:
                return entry.snapshot, entry.error

            start_ns = time.perf_counter_ns()
            result = self._pipeline.run(deadline)
            snapshot = self._build_snapshot(result.values)
            error = join_errors(*result.errors)
            self._entry = CacheEntry(snapshot=snapshot, error=error, collected_at=self._clock())
            self.collection_count += 1

        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        if error is not None:
            logger.warning(
                "snapshot_collection_partial",
                duration_ms=round(duration_ms, 1),
                failed_sources=len(result.errors),
                error=str(error),
            )
        else:
            logger.debug("snapshot_collected", duration_ms=round(duration_ms, 1))
        return snapshot, error

    async def collect_async(self, deadline: Deadline) -> tuple[SystemSnapshot, Optional[BaseException]]:
        """collect() on a worker thread so the event loop keeps running."""
        return await asyncio.to_thread(self.collect, deadline)

    def cached(self) -> Optional[SystemSnapshot]:
        """Last collected snapshot, fresh or not, without collecting."""
        with self._lock.read_locked():
            return self._entry.snapshot if self._entry is not None else None

    def invalidate(self) -> None:
        with self._lock.write_locked():
            self._entry = None

    def _build_snapshot(self, values: dict[str, Any]) -> SystemSnapshot:
        now = datetime.now(timezone.utc)
        host: HostInfo = values.get("host", HostInfo())
        network: NetworkStats = values.get("network", NetworkStats())
        return SystemSnapshot(
            collected_at=now,
            start_time=self.start_time,
            uptime_seconds=max(0, int((now - self.start_time).total_seconds())),
            hostname=host.hostname,
            platform=host.platform,
            os=host.os,
            kernel_version=host.kernel_version,
            cpu_info=tuple(values.get("cpu", ())),
            memory_info=values.get("memory", MemoryInfo()),
            disk_info=values.get("disk", DiskInfo()),
            runtime_stats=values.get("runtime", RuntimeStats()),
            process_stats=values.get("process", ProcessInfo()),
            temperature=values.get("temperature", TemperatureInfo()),
            network_interfaces=network.interfaces,
            network_connections=network.connection_count,
            network_bytes_sent=network.total_bytes_sent,
            network_bytes_recv=network.total_bytes_recv,
        )


async def snapshot_refresh_loop(
    collector: SnapshotCollector,
    interval_seconds: float = 30,
    timeout_seconds: float = 5.0,
) -> None:
    """Background task: keep the collector's cache warm.

    Independent failure domain: errors are logged and the loop always
    continues. Cancel the task to stop it.
    """
    logger.info(
        "snapshot_refresh_started",
        interval_seconds=interval_seconds,
        timeout_seconds=timeout_seconds,
    )

    while True:
        try:
            start_ns = time.perf_counter_ns()
            await collector.collect_async(Deadline.after(timeout_seconds))
            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            if duration_ms > timeout_seconds * 1000 / 2:
                logger.warning(
                    "snapshot_collection_slow",
                    duration_ms=round(duration_ms, 1),
                    timeout_seconds=timeout_seconds,
                )
        except Exception as exc:  # noqa: BLE001
            logger.error("snapshot_refresh_failed", error=str(exc), exc_info=True)

        await asyncio.sleep(interval_seconds)
