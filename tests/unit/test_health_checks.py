"""Unit tests for health checks."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from src.hostwatch.config import manager as manager_module
from src.hostwatch.monitoring.errors import join_errors, sensor_error, timeout_error
from src.hostwatch.monitoring.models import DiskInfo, MemoryInfo, SystemSnapshot, TemperatureInfo
from src.hostwatch.monitoring.requests import RequestMetrics, RequestStats
from src.hostwatch.observability.health_checks import (
    HealthCheckResult,
    check_collection_errors,
    check_disk_usage,
    check_memory_usage,
    check_request_errors,
    check_temperature,
    overall_status,
    run_all_health_checks,
)


@pytest.fixture(autouse=True)
def no_global_config():
    """Checks fall back to built-in thresholds without a config manager."""
    previous = manager_module._config_manager
    manager_module._config_manager = None
    yield
    manager_module._config_manager = previous


def _snapshot(mem_percent=40.0, disk_percent=50.0, cpu_temp=0.0, memory_total=1000, disk_total=1000):
    now = datetime.now(timezone.utc)
    return SystemSnapshot(
        collected_at=now,
        start_time=now,
        uptime_seconds=0,
        memory_info=MemoryInfo(total=memory_total, used_percent=mem_percent),
        disk_info=DiskInfo(total=disk_total, used=disk_total // 2, usage_percent=disk_percent, path="/"),
        temperature=TemperatureInfo(cpu_temp=cpu_temp, has_temp_data=cpu_temp > 0),
    )


def _stats(*statuses: int) -> RequestStats:
    stats = RequestStats()
    for status in statuses:
        stats.track_request(
            RequestMetrics(path="/api", method="GET", status_code=status, duration=timedelta(milliseconds=5))
        )
    return stats


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def test_memory_pass_and_warn():
    assert check_memory_usage(_snapshot(mem_percent=40.0)).status == "pass"
    result = check_memory_usage(_snapshot(mem_percent=95.0))
    assert result.status == "warn"
    assert result.details["threshold"] == 90.0


def test_memory_unavailable_warns():
    assert check_memory_usage(_snapshot(memory_total=0)).status == "warn"


def test_disk_pass_and_warn():
    assert check_disk_usage(_snapshot(disk_percent=50.0)).status == "pass"
    result = check_disk_usage(_snapshot(disk_percent=92.0))
    assert result.status == "warn"
    assert result.details["path"] == "/"


def test_disk_unavailable_warns():
    result = check_disk_usage(_snapshot(disk_total=0))
    assert result.status == "warn"
    assert "unavailable" in result.message


def test_temperature_without_sensors_passes():
    assert check_temperature(_snapshot(cpu_temp=0.0)).status == "pass"


def test_hot_cpu_warns():
    assert check_temperature(_snapshot(cpu_temp=60.0)).status == "pass"
    assert check_temperature(_snapshot(cpu_temp=91.0)).status == "warn"


def test_collection_errors():
    assert check_collection_errors(None).status == "pass"

    err = join_errors(sensor_error("collect_temperature_info", "hwmon"), timeout_error("collect_network_info"))
    result = check_collection_errors(err)
    assert result.status == "warn"
    assert result.details["kinds"] == ["sensor_error", "timeout_error"]
    assert result.details["timeout"] is True
    assert len(result.details["errors"]) == 2


def test_request_errors():
    assert check_request_errors(_stats()).status == "pass"
    assert check_request_errors(_stats(200, 200, 200, 404)).status == "pass"

    result = check_request_errors(_stats(200, 500, 503))
    assert result.status == "warn"
    assert result.details["total_errors"] == 2


def test_threshold_read_from_config(tmp_path):
    manager = manager_module.initialize_config(tmp_path / "missing.toml", tmp_path / "absent.env")
    manager.update_dynamic_config("observability.memory_warn_percent", 30.0)
    assert check_memory_usage(_snapshot(mem_percent=40.0)).status == "warn"


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def test_run_all_in_stable_order():
    results = run_all_health_checks(_snapshot(), None, _stats(200))
    assert [r.name for r in results] == [
        "collection_errors",
        "memory_usage",
        "disk_usage",
        "temperature",
        "request_errors",
    ]
    assert overall_status(results) == "healthy"


def test_request_check_skipped_without_stats():
    results = run_all_health_checks(_snapshot(), None)
    assert "request_errors" not in [r.name for r in results]


def test_failing_check_is_isolated():
    with patch(
        "src.hostwatch.observability.health_checks.check_disk_usage",
        side_effect=RuntimeError("broken check"),
    ):
        results = run_all_health_checks(_snapshot(), None)

    disk = next(r for r in results if r.name == "disk_usage")
    assert disk.status == "fail"
    assert "broken check" in disk.message
    assert overall_status(results) == "unhealthy"


def test_overall_status_degraded_on_warning():
    results = run_all_health_checks(_snapshot(mem_percent=99.0), None)
    assert overall_status(results) == "degraded"


def test_overall_status_empty():
    assert overall_status([]) == "healthy"
    assert overall_status([HealthCheckResult("x", "warn", "m", 0, None)]) == "degraded"
