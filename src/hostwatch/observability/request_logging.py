"""Request logging on top of RequestStats.

RequestTracker is what HTTP middleware talks to: it turns one completed
request into a RequestMetrics, feeds it to RequestStats and emits a single
structlog event with the status class, the formatted duration and the
current request rate. Static noise (favicon, service worker, manifest) is
neither tracked nor logged.
"""

import time
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from structlog.contextvars import bound_contextvars

from ..monitoring.requests import RequestMetrics, RequestStats, format_duration, status_string

logger = structlog.get_logger(__name__)

DEFAULT_EXCLUDED_PATHS = ("/favicon.ico", "/service-worker.js", "/manifest.json")


def request_log_fields(
    metrics: RequestMetrics,
    request_rate: float,
    trace_id: Optional[str] = None,
) -> dict[str, Any]:
    """Key/value context for one request log event."""
    return {
        "trace_id": trace_id,
        "method": metrics.method,
        "path": metrics.path,
        "status": f"{metrics.status_code} [{status_string(metrics.status_code)}]",
        "duration": format_duration(metrics.duration),
        "ip": metrics.remote_addr,
        "user_agent": metrics.user_agent,
        "content_length": metrics.content_length,
        "request_rate": round(request_rate, 3),
    }


@dataclass
class RequestScope:
    """Mutable handle yielded by RequestTracker.track()."""

    method: str
    path: str
    trace_id: str
    status_code: int = 200
    user_agent: str = ""
    content_length: int = 0
    remote_addr: str = ""
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RequestTracker:
    """Feeds completed requests into RequestStats and logs them."""

    def __init__(self, stats: RequestStats, excluded_paths: Iterable[str] = DEFAULT_EXCLUDED_PATHS):
        self.stats = stats
        self.excluded_paths = frozenset(excluded_paths)

    def set_excluded_paths(self, paths: Iterable[str]) -> None:
        self.excluded_paths = frozenset(paths)

    def should_track(self, path: str) -> bool:
        return path not in self.excluded_paths

    def record(
        self,
        method: str,
        path: str,
        status_code: int,
        duration: timedelta,
        *,
        timestamp: Optional[datetime] = None,
        user_agent: str = "",
        content_length: int = 0,
        remote_addr: str = "",
        trace_id: Optional[str] = None,
    ) -> Optional[RequestMetrics]:
        """Track and log one completed request.

        Returns:
            The tracked RequestMetrics, or None if the path is excluded.
        """
        if not self.should_track(path):
            return None

        metrics = RequestMetrics(
            path=path,
            method=method.upper(),
            status_code=status_code,
            duration=duration,
            timestamp=timestamp or datetime.now(timezone.utc),
            user_agent=user_agent,
            content_length=content_length,
            remote_addr=remote_addr,
        )
        self.stats.track_request(metrics)

        fields = request_log_fields(metrics, self.stats.request_rate(), trace_id)
        if status_code >= 500:
            logger.error("http_request", **fields)
        elif status_code >= 400:
            logger.warning("http_request", **fields)
        else:
            logger.debug("http_request", **fields)
        return metrics

    @contextmanager
    def track(
        self,
        method: str,
        path: str,
        *,
        trace_id: Optional[str] = None,
        user_agent: str = "",
        content_length: int = 0,
        remote_addr: str = "",
    ) -> Iterator[RequestScope]:
        """Time a request handler and record it on exit.

        The handler sets ``scope.status_code``. An exception escaping the
        block is recorded as a 500 and re-raised. The trace id is bound to
        structlog's context for the duration of the block.
        """
        scope = RequestScope(
            method=method,
            path=path,
            trace_id=trace_id or str(uuid.uuid4()),
            user_agent=user_agent,
            content_length=content_length,
            remote_addr=remote_addr,
        )
        start = time.perf_counter()
        with bound_contextvars(trace_id=scope.trace_id):
            try:
                yield scope
            except Exception:
                scope.status_code = 500
                raise
            finally:
                self.record(
                    scope.method,
                    scope.path,
                    scope.status_code,
                    timedelta(seconds=time.perf_counter() - start),
                    timestamp=scope.started_at,
                    user_agent=scope.user_agent,
                    content_length=scope.content_length,
                    remote_addr=scope.remote_addr,
                    trace_id=scope.trace_id,
                )
