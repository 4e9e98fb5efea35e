"""Python runtime and garbage collector statistics.

The interpreter does not record GC pause times on its own, so GCTimer hooks
gc.callbacks and measures every collection. It is process-wide by nature;
install_gc_timer() is idempotent and the collector calls it on construction.
"""

import gc
import os
import platform
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from .deadline import Deadline
from .errors import MetricErrorKind, timeout_error, wrap_exception
from .models import GCGenerationStats, RuntimeStats

logger = structlog.get_logger(__name__)


class GCTimer:
    """Measures garbage collection pauses through gc.callbacks."""

    def __init__(self) -> None:
        self.num_gc = 0
        self.pause_total_ns = 0
        self.last_gc_time: Optional[datetime] = None
        self.last_gc_duration_ns = 0
        self._started_ns: Optional[int] = None
        self._installed = False

    # No locking here: the callback runs inside whatever thread triggered the
    # collection, possibly while that thread holds an unrelated lock.
    def _callback(self, phase: str, info: dict) -> None:
        if phase == "start":
            self._started_ns = time.perf_counter_ns()
            return
        if phase == "stop" and self._started_ns is not None:
            elapsed = time.perf_counter_ns() - self._started_ns
            self._started_ns = None
            self.num_gc += 1
            self.pause_total_ns += elapsed
            self.last_gc_duration_ns = elapsed
            self.last_gc_time = datetime.now(timezone.utc)

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        if not self._installed:
            gc.callbacks.append(self._callback)
            self._installed = True

    def uninstall(self) -> None:
        if self._installed:
            gc.callbacks.remove(self._callback)
            self._installed = False


_gc_timer = GCTimer()
_install_lock = threading.Lock()


def get_gc_timer() -> GCTimer:
    return _gc_timer


def install_gc_timer() -> GCTimer:
    with _install_lock:
        if not _gc_timer.installed:
            _gc_timer.install()
            logger.debug("gc_timer_installed")
    return _gc_timer


def _generation_stats() -> tuple[GCGenerationStats, ...]:
    counts = gc.get_count()
    thresholds = gc.get_threshold()
    generations = []
    for index, stats in enumerate(gc.get_stats()):
        generations.append(
            GCGenerationStats(
                generation=index,
                collections=int(stats.get("collections", 0)),
                collected=int(stats.get("collected", 0)),
                uncollectable=int(stats.get("uncollectable", 0)),
                threshold=int(thresholds[index]) if index < len(thresholds) else 0,
                pending=int(counts[index]) if index < len(counts) else 0,
            )
        )
    return tuple(generations)


def collect_runtime_stats(deadline: Deadline) -> tuple[RuntimeStats, Optional[Exception]]:
    """Collect interpreter statistics. Never blocks on I/O."""
    op = "collect_runtime_stats"
    if deadline.expired():
        return RuntimeStats(), timeout_error(op, deadline.reason())

    timer = get_gc_timer()
    try:
        generations = _generation_stats()
    except Exception as exc:  # noqa: BLE001
        return RuntimeStats(), wrap_exception(op, exc, "failed to read gc statistics", MetricErrorKind.SYSTEM)

    return RuntimeStats(
        implementation=platform.python_implementation(),
        python_version=platform.python_version(),
        num_threads=threading.active_count(),
        num_cpu=os.cpu_count() or 0,
        gc_enabled=gc.isenabled(),
        gc_generations=generations,
        num_gc=timer.num_gc,
        gc_pause_total=timedelta(microseconds=timer.pause_total_ns / 1000),
        last_gc_time=timer.last_gc_time,
        last_gc_duration=timedelta(microseconds=timer.last_gc_duration_ns / 1000),
    ), None
