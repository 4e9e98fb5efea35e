"""Health checks over a collected snapshot and request telemetry.

Each check is isolated: a failure inside one check becomes a "fail"
result instead of taking the whole report down. Collection errors are
reported as "warn", never "fail"; a partially collected snapshot is still
a usable one.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from ..config.manager import get_config_manager
from ..monitoring.errors import MetricError, iter_errors, is_timeout
from ..monitoring.models import SystemSnapshot
from ..monitoring.requests import RequestStats


@dataclass
class HealthCheckResult:
    """Result of a single health check."""

    name: str  # e.g. "memory_usage", "collection_errors"
    status: str  # "pass" | "fail" | "warn"
    message: str
    timestamp: int  # Unix epoch
    details: Optional[dict]  # Additional diagnostic context


def _now() -> int:
    return int(time.time())


def _cfg_float(key: str, default: float) -> float:
    try:
        return float(get_config_manager().get(key))
    except Exception:
        return default


def _failed_result(name: str, message: str, exc: Exception) -> HealthCheckResult:
    return HealthCheckResult(
        name=name,
        status="fail",
        message=f"{message}: {exc}",
        timestamp=_now(),
        details={"error": str(exc)},
    )


def check_memory_usage(snapshot: SystemSnapshot) -> HealthCheckResult:
    """Warn when system memory usage crosses the configured threshold."""
    now = _now()
    memory = snapshot.memory_info
    if memory.total == 0:
        return HealthCheckResult(
            name="memory_usage",
            status="warn",
            message="Memory statistics unavailable",
            timestamp=now,
            details=None,
        )

    threshold = _cfg_float("observability.memory_warn_percent", 90.0)
    if memory.used_percent >= threshold:
        return HealthCheckResult(
            name="memory_usage",
            status="warn",
            message=f"Memory usage {memory.used_percent:.1f}% exceeds {threshold:.0f}%",
            timestamp=now,
            details={"used_percent": memory.used_percent, "threshold": threshold},
        )
    return HealthCheckResult(
        name="memory_usage",
        status="pass",
        message=f"Memory usage {memory.used_percent:.1f}%",
        timestamp=now,
        details=None,
    )


def check_disk_usage(snapshot: SystemSnapshot) -> HealthCheckResult:
    """Warn when the monitored filesystem is nearly full."""
    now = _now()
    disk = snapshot.disk_info
    if disk.total == 0:
        return HealthCheckResult(
            name="disk_usage",
            status="warn",
            message=f"Disk statistics unavailable for {disk.path}",
            timestamp=now,
            details=None,
        )

    threshold = _cfg_float("observability.disk_warn_percent", 90.0)
    used_gb = disk.used / (1024**3)
    total_gb = disk.total / (1024**3)
    if disk.usage_percent >= threshold:
        return HealthCheckResult(
            name="disk_usage",
            status="warn",
            message=f"Disk {disk.path} at {disk.usage_percent:.1f}% ({used_gb:.2f}/{total_gb:.2f} GB)",
            timestamp=now,
            details={"usage_percent": disk.usage_percent, "threshold": threshold, "path": disk.path},
        )
    return HealthCheckResult(
        name="disk_usage",
        status="pass",
        message=f"Disk {disk.path} {used_gb:.2f}/{total_gb:.2f} GB",
        timestamp=now,
        details=None,
    )


def check_temperature(snapshot: SystemSnapshot) -> HealthCheckResult:
    """Warn on a hot CPU; pass when no sensor data exists."""
    now = _now()
    temps = snapshot.temperature
    if not temps.has_temp_data or temps.cpu_temp == 0.0:
        return HealthCheckResult(
            name="temperature",
            status="pass",
            message="No CPU temperature sensor data",
            timestamp=now,
            details=None,
        )

    threshold = _cfg_float("observability.cpu_temp_warn_celsius", 85.0)
    if temps.cpu_temp >= threshold:
        return HealthCheckResult(
            name="temperature",
            status="warn",
            message=f"CPU temperature {temps.cpu_temp:.1f}°C exceeds {threshold:.0f}°C",
            timestamp=now,
            details={"cpu_temp": temps.cpu_temp, "threshold": threshold},
        )
    return HealthCheckResult(
        name="temperature",
        status="pass",
        message=f"CPU temperature {temps.cpu_temp:.1f}°C",
        timestamp=now,
        details=None,
    )


def check_collection_errors(error: Optional[BaseException]) -> HealthCheckResult:
    """Report which sources failed during the last collection cycle."""
    now = _now()
    if error is None:
        return HealthCheckResult(
            name="collection_errors",
            status="pass",
            message="All metric sources collected",
            timestamp=now,
            details=None,
        )

    failures = [err for err in iter_errors(error) if isinstance(err, MetricError)]
    return HealthCheckResult(
        name="collection_errors",
        status="warn",
        message=f"{len(failures) or 1} metric source error(s) during collection",
        timestamp=now,
        details={
            "errors": [str(err) for err in failures] or [str(error)],
            "kinds": sorted({err.kind.value for err in failures}),
            "timeout": is_timeout(error),
        },
    )


def check_request_errors(stats: RequestStats) -> HealthCheckResult:
    """Warn when the share of 4xx/5xx responses is above the threshold."""
    now = _now()
    total, errors = stats.totals()
    if total == 0:
        return HealthCheckResult(
            name="request_errors",
            status="pass",
            message="No requests tracked yet",
            timestamp=now,
            details=None,
        )

    threshold = _cfg_float("observability.error_rate_warn_percent", 25.0)
    error_percent = errors / total * 100
    details = {
        "total_requests": total,
        "total_errors": errors,
        "error_percent": round(error_percent, 2),
        "request_rate": round(stats.request_rate(), 3),
    }
    if error_percent > threshold:
        return HealthCheckResult(
            name="request_errors",
            status="warn",
            message=f"Error rate {error_percent:.1f}% exceeds {threshold:.0f}%",
            timestamp=now,
            details=details,
        )
    return HealthCheckResult(
        name="request_errors",
        status="pass",
        message=f"Error rate {error_percent:.1f}% over {total} requests",
        timestamp=now,
        details=details,
    )


def run_all_health_checks(
    snapshot: SystemSnapshot,
    error: Optional[BaseException],
    request_stats: Optional[RequestStats] = None,
) -> list[HealthCheckResult]:
    """Run all health checks and return results in stable order."""
    results: list[HealthCheckResult] = []
    try:
        results.append(check_collection_errors(error))
    except Exception as exc:
        results.append(_failed_result("collection_errors", "Collection error check failed", exc))

    try:
        results.append(check_memory_usage(snapshot))
    except Exception as exc:
        results.append(_failed_result("memory_usage", "Memory check failed", exc))

    try:
        results.append(check_disk_usage(snapshot))
    except Exception as exc:
        results.append(_failed_result("disk_usage", "Disk usage check failed", exc))

    try:
        results.append(check_temperature(snapshot))
    except Exception as exc:
        results.append(_failed_result("temperature", "Temperature check failed", exc))

    if request_stats is not None:
        try:
            results.append(check_request_errors(request_stats))
        except Exception as exc:
            results.append(_failed_result("request_errors", "Request error check failed", exc))

    return results


def overall_status(results: list[HealthCheckResult]) -> str:
    """Collapse results into "unhealthy", "degraded" or "healthy"."""
    statuses = {result.status for result in results}
    if "fail" in statuses:
        return "unhealthy"
    if "warn" in statuses:
        return "degraded"
    return "healthy"
