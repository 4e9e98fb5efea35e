"""Metric source adapters.

One function per resource domain. Each takes the cycle's Deadline and
returns ``(value, error)``: the value holds everything that could be read
(zero values elsewhere), the error is None, a MetricError, or a joined
error. Adapters never raise for OS failures and check the deadline again
before every further blocking psutil call.
"""

import os
import platform
import socket
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import psutil
import structlog

from .deadline import Deadline
from .errors import (
    MetricErrorKind,
    join_errors,
    timeout_error,
    unsupported_error,
    wrap_exception,
)
from .models import (
    CPUInfo,
    DiskInfo,
    HostInfo,
    MemoryInfo,
    NetworkInterface,
    NetworkStats,
    ProcessInfo,
    TemperatureInfo,
)
from .sensors import is_cpu_temp, is_disk_temp, is_system_temp, read_sensor_readings

logger = structlog.get_logger(__name__)

# Process handle cached at module level so cpu_percent() measures the delta
# between consecutive collections instead of returning 0.0 every time.
_process: Optional[psutil.Process] = None


def _get_process() -> psutil.Process:
    """Return a cached psutil.Process handle for this process."""
    global _process
    if _process is None or _process.pid != os.getpid():
        _process = psutil.Process(os.getpid())
    return _process


def _has_sensor_support() -> bool:
    return hasattr(psutil, "sensors_temperatures")


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------


def _platform_name() -> str:
    system = platform.system().lower()
    if system == "linux":
        try:
            return platform.freedesktop_os_release().get("ID", system)
        except OSError:
            return system
    if system == "darwin":
        return "darwin"
    return system


def collect_host_info(deadline: Deadline) -> tuple[HostInfo, Optional[Exception]]:
    op = "collect_host_info"
    if deadline.expired():
        return HostInfo(), timeout_error(op, deadline.reason())

    try:
        info = HostInfo(
            hostname=socket.gethostname(),
            platform=_platform_name(),
            os=platform.system().lower(),
            kernel_version=platform.release(),
        )
    except Exception as exc:  # noqa: BLE001
        return HostInfo(), wrap_exception(op, exc, "failed to read host identity")

    if deadline.expired():
        return info, timeout_error(op, deadline.reason())

    try:
        boot = datetime.fromtimestamp(psutil.boot_time(), tz=timezone.utc)
    except Exception as exc:  # noqa: BLE001
        return info, wrap_exception(op, exc, "failed to read boot time")
    return replace(info, boot_time=boot), None


# ---------------------------------------------------------------------------
# CPU
# ---------------------------------------------------------------------------


def _cpu_model_name() -> str:
    system = platform.system()
    if system == "Linux":
        try:
            with open("/proc/cpuinfo", encoding="utf-8") as f:
                for line in f:
                    if line.lower().startswith("model name"):
                        return line.split(":", 1)[1].strip()
        except OSError:
            pass
    return platform.processor() or platform.machine()


def collect_cpu_info(deadline: Deadline) -> tuple[list[CPUInfo], Optional[Exception]]:
    """Per-logical-CPU model, frequency, usage and temperature."""
    op = "collect_cpu_info"
    if deadline.expired():
        return [], timeout_error(op, deadline.reason())

    try:
        logical = psutil.cpu_count(logical=True) or 1
        physical = psutil.cpu_count(logical=False) or logical
        model = _cpu_model_name()
    except Exception as exc:  # noqa: BLE001
        return [], wrap_exception(op, exc, "failed to get CPU info")

    result = [CPUInfo(model_name=model, cores=physical) for _ in range(logical)]

    if deadline.expired():
        return result, timeout_error(op, "deadline exceeded before CPU frequency collection")

    freq_error: Optional[Exception] = None
    if hasattr(psutil, "cpu_freq"):
        try:
            freqs = psutil.cpu_freq(percpu=True) or []
        except Exception as exc:  # noqa: BLE001
            freq_error = wrap_exception(op, exc, "failed to get CPU frequency")
            freqs = []
        for i in range(len(result)):
            freq = freqs[i] if i < len(freqs) else (freqs[0] if freqs else None)
            if freq is not None:
                result[i] = replace(result[i], frequency_mhz=float(freq.current))

    if deadline.expired():
        return result, join_errors(freq_error, timeout_error(op, "deadline exceeded during CPU usage collection"))

    try:
        percents = psutil.cpu_percent(interval=None, percpu=True)
    except Exception as exc:  # noqa: BLE001
        return result, join_errors(freq_error, wrap_exception(op, exc, "failed to get CPU usage percentages"))
    for i in range(min(len(result), len(percents))):
        result[i] = replace(result[i], usage=float(percents[i]))

    if deadline.expired():
        return result, join_errors(freq_error, timeout_error(op, "deadline exceeded during temperature collection"))

    if not _has_sensor_support():
        return result, freq_error

    try:
        readings = read_sensor_readings()
    except Exception as exc:  # noqa: BLE001
        return result, join_errors(
            freq_error, wrap_exception(op, exc, "failed to get temperature data", MetricErrorKind.SENSOR)
        )

    for reading in readings:
        if is_cpu_temp(reading.sensor_key):
            # One package sensor applies to every core
            result = [replace(cpu, temperature=reading.temperature) for cpu in result]
            break

    return result, freq_error


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------


def collect_memory_info(deadline: Deadline) -> tuple[MemoryInfo, Optional[Exception]]:
    op = "collect_memory_info"
    if deadline.expired():
        return MemoryInfo(), timeout_error(op, deadline.reason())

    try:
        vm = psutil.virtual_memory()
    except Exception as exc:  # noqa: BLE001
        return MemoryInfo(), wrap_exception(op, exc, "failed to get virtual memory")

    result = MemoryInfo(
        total=int(vm.total),
        used=int(vm.used),
        free=int(vm.free),
        used_percent=float(vm.percent),
    )

    if deadline.expired():
        return result, timeout_error(op, "deadline exceeded before swap collection")

    # Swap is optional: containers and some VMs do not expose it
    try:
        swap = psutil.swap_memory()
    except Exception as exc:  # noqa: BLE001
        logger.debug("swap_memory_unavailable", error=str(exc))
        return result, None

    return replace(
        result,
        swap_total=int(swap.total),
        swap_used=int(swap.used),
        swap_percent=float(swap.percent),
    ), None


# ---------------------------------------------------------------------------
# Disk
# ---------------------------------------------------------------------------


def collect_disk_info(deadline: Deadline, path: str = "/") -> tuple[DiskInfo, Optional[Exception]]:
    op = "collect_disk_info"
    if deadline.expired():
        return DiskInfo(path=path), timeout_error(op, deadline.reason())

    try:
        usage = psutil.disk_usage(path)
    except Exception as exc:  # noqa: BLE001
        return DiskInfo(path=path), wrap_exception(
            op, exc, f"failed to get disk usage for {path}", MetricErrorKind.IO
        )

    return DiskInfo(
        total=int(usage.total),
        used=int(usage.used),
        free=int(usage.free),
        usage_percent=float(usage.percent),
        path=path,
    ), None


def get_disk_temperature(deadline: Deadline) -> Optional[float]:
    """First disk sensor reading, or None if there is none or it is unreadable."""
    if deadline.expired() or not _has_sensor_support():
        return None
    try:
        readings = read_sensor_readings()
    except Exception:  # noqa: BLE001
        return None
    for reading in readings:
        if is_disk_temp(reading.sensor_key):
            return reading.temperature
    return None


# ---------------------------------------------------------------------------
# Temperature
# ---------------------------------------------------------------------------


def collect_temperature_info(deadline: Deadline) -> tuple[TemperatureInfo, Optional[Exception]]:
    """Classify every sensor into CPU, ambient, system or disk temperature.

    The first reading of each class wins.
    """
    op = "collect_temperature_info"
    if deadline.expired():
        return TemperatureInfo(), timeout_error(op, deadline.reason())

    if not _has_sensor_support():
        return TemperatureInfo(), unsupported_error(op, "temperature sensors not supported on this platform")

    try:
        readings = read_sensor_readings()
    except Exception as exc:  # noqa: BLE001
        return TemperatureInfo(), wrap_exception(
            op, exc, "failed to get sensors temperatures", MetricErrorKind.SENSOR
        )

    if not readings:
        return TemperatureInfo(), None

    found: dict[str, float] = {}
    for reading in readings:
        key = reading.sensor_key.lower()
        if is_cpu_temp(key):
            found.setdefault("cpu_temp", reading.temperature)
        elif "ambient" in key:
            found.setdefault("ambient_temp", reading.temperature)
        elif is_system_temp(key):
            found.setdefault("system_temp", reading.temperature)
        elif is_disk_temp(key):
            found.setdefault("disk_temp", reading.temperature)

    return TemperatureInfo(has_temp_data=True, **found), None


# ---------------------------------------------------------------------------
# Process
# ---------------------------------------------------------------------------


def _open_file_count(proc: psutil.Process) -> int:
    if hasattr(proc, "num_fds"):
        return proc.num_fds()
    return proc.num_handles()


def collect_process_info(deadline: Deadline) -> tuple[ProcessInfo, Optional[Exception]]:
    """Current-process usage; every sub-metric is read independently."""
    op = "collect_process_info"
    if deadline.expired():
        return ProcessInfo(), timeout_error(op, deadline.reason())

    try:
        proc = _get_process()
    except Exception as exc:  # noqa: BLE001
        return ProcessInfo(), wrap_exception(op, exc, "failed to open current process", MetricErrorKind.PROCESS_STATS)

    fields: dict[str, Any] = {"pid": proc.pid}
    errors: list[Exception] = []

    def _read(name: str, reader: Callable[[], Any]) -> None:
        try:
            fields.update(reader())
        except Exception as exc:  # noqa: BLE001
            errors.append(wrap_exception(op, exc, f"failed to read {name}", MetricErrorKind.PROCESS_STATS))

    if deadline.expired():
        return ProcessInfo(**fields), timeout_error(op, deadline.reason())

    _read("cpu percent", lambda: {"cpu_percent": float(proc.cpu_percent(interval=None))})
    _read("memory percent", lambda: {"memory_percent": float(proc.memory_percent())})

    if deadline.expired():
        errors.append(timeout_error(op, deadline.reason()))
        return ProcessInfo(**fields), join_errors(*errors)

    def _memory() -> dict[str, int]:
        mem = proc.memory_info()
        return {"rss": int(mem.rss), "vms": int(mem.vms)}

    _read("memory info", _memory)
    _read("thread count", lambda: {"num_threads": int(proc.num_threads())})
    _read("open files", lambda: {"open_files": int(_open_file_count(proc))})

    return ProcessInfo(**fields), join_errors(*errors)


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


def _is_loopback(name: str, addrs: list) -> bool:
    if name.lower().startswith("lo"):
        return True
    ips = [addr.address for addr in addrs if addr.family in (socket.AF_INET, socket.AF_INET6)]
    return bool(ips) and all(ip.startswith("127.") or ip == "::1" for ip in ips)


def _first_ipv4(addrs: list) -> str:
    for addr in addrs:
        if addr.family == socket.AF_INET and not addr.address.startswith("127."):
            return addr.address
    return ""


def collect_network_info(deadline: Deadline) -> tuple[NetworkStats, Optional[Exception]]:
    """Interfaces with addresses and IO counters, plus the connection count."""
    op = "collect_network_info"
    if deadline.expired():
        return NetworkStats(), timeout_error(op, deadline.reason())

    try:
        if_addrs = psutil.net_if_addrs()
    except Exception as exc:  # noqa: BLE001
        return NetworkStats(), wrap_exception(op, exc, "failed to list interfaces", MetricErrorKind.NETWORK_STATS)

    if deadline.expired():
        return NetworkStats(), timeout_error(op, deadline.reason())

    try:
        io_stats = psutil.net_io_counters(pernic=True) or {}
    except Exception as exc:  # noqa: BLE001
        return NetworkStats(), wrap_exception(op, exc, "failed to read IO counters", MetricErrorKind.NETWORK_STATS)

    if deadline.expired():
        return NetworkStats(), timeout_error(op, deadline.reason())

    # Listing sockets needs elevated rights on macOS; keep 0 when denied
    connection_count = 0
    try:
        connection_count = len(psutil.net_connections(kind="all"))
    except Exception as exc:  # noqa: BLE001
        logger.debug("net_connections_unavailable", error=str(exc))

    interfaces: list[NetworkInterface] = []
    total_sent = 0
    total_recv = 0
    for name, addrs in if_addrs.items():
        if not addrs or _is_loopback(name, addrs):
            continue
        counters = io_stats.get(name)
        if counters is None:
            continue
        interfaces.append(
            NetworkInterface(
                name=name,
                ip_address=_first_ipv4(addrs),
                bytes_sent=int(counters.bytes_sent),
                bytes_recv=int(counters.bytes_recv),
                packets_sent=int(counters.packets_sent),
                packets_recv=int(counters.packets_recv),
            )
        )
        total_sent += int(counters.bytes_sent)
        total_recv += int(counters.bytes_recv)

    return NetworkStats(
        interfaces=tuple(interfaces),
        connection_count=connection_count,
        total_bytes_sent=total_sent,
        total_bytes_recv=total_recv,
    ), None
