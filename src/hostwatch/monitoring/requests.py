"""Per-endpoint HTTP request telemetry.

RequestStats folds every completed request into streaming per-path
statistics and keeps the most recent requests in a RingBuffer. Memory use
is fixed except for the per-path map, which grows with the number of
distinct METHOD:PATH keys and is never pruned.

Request rate: a fixed-window counter. Pushes are counted until
``rate_window`` seconds (default 5) have passed since the window opened;
the rate then becomes count / elapsed and a new window opens. Because a
window can only close on a push, request_rate() reports 0.0 once no push
has been seen for two windows.

The published rate always describes the previous closed window, so it
trails live traffic by up to one window. It reads 0.0 until the first
window closes, even under load.
"""

import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .ring_buffer import RingBuffer

# EMA smoothing factor for average latency
LATENCY_ALPHA = 0.1
DEFAULT_RECENT_CAPACITY = 100
DEFAULT_RATE_WINDOW = 5.0


@dataclass(frozen=True)
class RequestMetrics:
    """One completed request."""

    path: str
    method: str
    status_code: int
    duration: timedelta
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    user_agent: str = ""
    content_length: int = 0
    remote_addr: str = ""


@dataclass
class PathStats:
    """Streaming statistics for one METHOD:PATH key."""

    total_requests: int = 0
    total_errors: int = 0  # status >= 400
    average_latency: timedelta = timedelta(0)
    last_access_time: Optional[datetime] = None
    status_code_count: dict[int, int] = field(default_factory=dict)

    def copy(self) -> "PathStats":
        return replace(self, status_code_count=dict(self.status_code_count))

    @property
    def error_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_errors / self.total_requests


def path_key(method: str, path: str) -> str:
    return f"{method.upper()}:{path}"


class RequestStats:
    """Aggregates request telemetry; safe to call from many threads."""

    def __init__(
        self,
        capacity: int = DEFAULT_RECENT_CAPACITY,
        rate_window: float = DEFAULT_RATE_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ):
        if rate_window <= 0:
            raise ValueError("rate_window must be > 0")
        self.rate_window = rate_window
        self._clock = clock
        self._lock = threading.Lock()
        self._path_stats: dict[str, PathStats] = {}
        self._recent: RingBuffer[RequestMetrics] = RingBuffer(capacity)
        self._request_rate = 0.0
        self._window_started = clock()
        self._window_count = 0
        self._last_push: Optional[float] = None

    def track_request(self, metrics: RequestMetrics) -> None:
        with self._lock:
            self._recent.add(metrics)

            key = path_key(metrics.method, metrics.path)
            stats = self._path_stats.get(key)
            if stats is None:
                stats = PathStats()
                self._path_stats[key] = stats

            stats.total_requests += 1
            if metrics.status_code >= 400:
                stats.total_errors += 1
            stats.status_code_count[metrics.status_code] = stats.status_code_count.get(metrics.status_code, 0) + 1
            stats.last_access_time = metrics.timestamp

            if stats.total_requests == 1:
                stats.average_latency = metrics.duration
            else:
                stats.average_latency = stats.average_latency * (1 - LATENCY_ALPHA) + metrics.duration * LATENCY_ALPHA

            now = self._clock()
            self._last_push = now
            self._window_count += 1
            elapsed = now - self._window_started
            if elapsed >= self.rate_window:
                self._request_rate = self._window_count / elapsed
                self._window_count = 0
                self._window_started = now

    def request_rate(self) -> float:
        """Requests per second over the last closed window.

        0.0 until the first window closes; pushes into the open window do
        not show up until it closes.
        """
        with self._lock:
            if self._last_push is None:
                return 0.0
            if self._clock() - self._last_push > 2 * self.rate_window:
                return 0.0
            return self._request_rate

    def recent_requests(self) -> list[RequestMetrics]:
        """Most recent requests, oldest first."""
        return self._recent.get_all()

    def path_stats(self, method: str, path: str) -> Optional[PathStats]:
        with self._lock:
            stats = self._path_stats.get(path_key(method, path))
            return stats.copy() if stats is not None else None

    def all_path_stats(self) -> dict[str, PathStats]:
        with self._lock:
            return {key: stats.copy() for key, stats in self._path_stats.items()}

    def totals(self) -> tuple[int, int]:
        """(total requests, total errors) across every path."""
        with self._lock:
            requests = sum(stats.total_requests for stats in self._path_stats.values())
            errors = sum(stats.total_errors for stats in self._path_stats.values())
            return requests, errors


def status_string(status_code: int) -> str:
    if 200 <= status_code <= 299:
        return "SUCCESS"
    if 300 <= status_code <= 399:
        return "REDIRECT"
    if 400 <= status_code <= 499:
        return "WARN"
    if 500 <= status_code <= 599:
        return "ERROR"
    return "UNKNOWN"


def format_duration(duration: timedelta) -> str:
    """Render as whole milliseconds below one second ("500.00ms"), else seconds ("1.50s")."""
    if duration >= timedelta(seconds=1):
        return f"{duration.total_seconds():.2f}s"
    return f"{float(duration // timedelta(milliseconds=1)):.2f}ms"
