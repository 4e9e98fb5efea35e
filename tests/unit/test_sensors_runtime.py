"""Unit tests for sensor classification and runtime statistics."""

import gc
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from src.hostwatch.monitoring.deadline import Deadline
from src.hostwatch.monitoring.runtime import GCTimer, collect_runtime_stats, install_gc_timer
from src.hostwatch.monitoring.sensors import (
    is_cpu_temp,
    is_disk_temp,
    is_system_temp,
    read_sensor_readings,
)


# ---------------------------------------------------------------------------
# Sensors
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "sensor, cpu, system, disk",
    [
        ("acpi_coretemp", True, False, False),
        ("k10temp_Tctl", True, False, False),
        ("CPU Temperature", True, False, False),
        ("Motherboard_system", False, True, False),
        ("acpitz_ambient", False, True, False),
        ("nvme_Composite", False, False, True),
        ("SSD_temp", False, False, True),
        ("iwlwifi_1", False, False, False),
    ],
)
def test_sensor_predicates_are_case_insensitive_substring_matches(sensor, cpu, system, disk):
    assert is_cpu_temp(sensor) is cpu
    assert is_system_temp(sensor) is system
    assert is_disk_temp(sensor) is disk


def test_read_sensor_readings_builds_keys():
    temps = {
        "coretemp": [
            SimpleNamespace(label="Package id 0", current=58.0),
            SimpleNamespace(label="", current=55.0),
        ],
        "nvme": [SimpleNamespace(label="Composite", current=None)],
    }
    with patch("src.hostwatch.monitoring.sensors.psutil.sensors_temperatures", return_value=temps, create=True):
        readings = read_sensor_readings()

    assert [(r.sensor_key, r.temperature) for r in readings] == [
        ("coretemp_Package id 0", 58.0),
        ("coretemp_1", 55.0),
    ]


# ---------------------------------------------------------------------------
# Runtime / GC
# ---------------------------------------------------------------------------


def test_gc_timer_counts_collections():
    timer = GCTimer()
    timer.install()
    try:
        gc.collect()
        gc.collect()
    finally:
        timer.uninstall()

    assert timer.num_gc >= 2
    assert timer.pause_total_ns > 0
    assert timer.last_gc_time is not None
    assert not timer.installed


def test_install_gc_timer_is_idempotent():
    first = install_gc_timer()
    second = install_gc_timer()
    assert first is second
    assert gc.callbacks.count(first._callback) == 1


def test_collect_runtime_stats():
    install_gc_timer()
    gc.collect()
    stats, err = collect_runtime_stats(Deadline.after(5))

    assert err is None
    assert stats.python_version
    assert stats.num_threads >= 1
    assert stats.num_cpu >= 1
    assert stats.num_gc >= 1
    assert len(stats.gc_generations) >= 1
    assert stats.gc_generations[0].generation == 0
