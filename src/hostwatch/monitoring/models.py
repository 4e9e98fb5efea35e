"""Snapshot data model.

Every domain value defaults to its zero value so a source that fails half
way can still hand back whatever it managed to read. A SystemSnapshot is
built once per collection cycle and never mutated afterwards.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class HostInfo:
    """Host identity."""

    hostname: str = ""
    platform: str = ""  # e.g. "ubuntu", "darwin"
    os: str = ""  # e.g. "linux", "windows"
    kernel_version: str = ""
    boot_time: Optional[datetime] = None


@dataclass(frozen=True)
class CPUInfo:
    """One logical CPU."""

    model_name: str = ""
    cores: int = 0  # Physical cores of the package
    frequency_mhz: float = 0.0
    usage: float = 0.0  # Percent since previous sample
    temperature: float = 0.0  # Celsius, 0.0 when no CPU sensor


@dataclass(frozen=True)
class MemoryInfo:
    total: int = 0
    used: int = 0
    free: int = 0
    used_percent: float = 0.0
    swap_total: int = 0
    swap_used: int = 0
    swap_percent: float = 0.0


@dataclass(frozen=True)
class DiskInfo:
    total: int = 0
    used: int = 0
    free: int = 0
    usage_percent: float = 0.0
    path: str = "/"


@dataclass(frozen=True)
class NetworkInterface:
    name: str
    ip_address: str = ""
    bytes_sent: int = 0
    bytes_recv: int = 0
    packets_sent: int = 0
    packets_recv: int = 0


@dataclass(frozen=True)
class NetworkStats:
    interfaces: tuple[NetworkInterface, ...] = ()
    connection_count: int = 0
    total_bytes_sent: int = 0
    total_bytes_recv: int = 0


@dataclass(frozen=True)
class ProcessInfo:
    """Resource usage of the current process."""

    pid: int = 0
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    rss: int = 0
    vms: int = 0
    open_files: int = 0
    num_threads: int = 0


@dataclass(frozen=True)
class GCGenerationStats:
    generation: int
    collections: int = 0
    collected: int = 0
    uncollectable: int = 0
    threshold: int = 0
    pending: int = 0  # Allocations counted toward the next collection


@dataclass(frozen=True)
class RuntimeStats:
    """Python interpreter and garbage collector statistics."""

    implementation: str = ""
    python_version: str = ""
    num_threads: int = 0
    num_cpu: int = 0
    gc_enabled: bool = False
    gc_generations: tuple[GCGenerationStats, ...] = ()
    num_gc: int = 0  # Collections observed since the GC timer was installed
    gc_pause_total: timedelta = timedelta(0)
    last_gc_time: Optional[datetime] = None
    last_gc_duration: timedelta = timedelta(0)


@dataclass(frozen=True)
class TemperatureInfo:
    cpu_temp: float = 0.0
    system_temp: float = 0.0
    disk_temp: float = 0.0
    ambient_temp: float = 0.0
    has_temp_data: bool = False


@dataclass(frozen=True)
class SystemSnapshot:
    """One consistent, point-in-time view of every metric domain."""

    collected_at: datetime
    start_time: datetime
    uptime_seconds: int
    hostname: str = ""
    platform: str = ""
    os: str = ""
    kernel_version: str = ""
    cpu_info: tuple[CPUInfo, ...] = ()
    memory_info: MemoryInfo = field(default_factory=MemoryInfo)
    disk_info: DiskInfo = field(default_factory=DiskInfo)
    runtime_stats: RuntimeStats = field(default_factory=RuntimeStats)
    process_stats: ProcessInfo = field(default_factory=ProcessInfo)
    temperature: TemperatureInfo = field(default_factory=TemperatureInfo)
    network_interfaces: tuple[NetworkInterface, ...] = ()
    network_connections: int = 0
    network_bytes_sent: int = 0
    network_bytes_recv: int = 0

    @property
    def disk_total(self) -> int:
        return self.disk_info.total

    @property
    def disk_used(self) -> int:
        return self.disk_info.used

    @property
    def disk_free(self) -> int:
        return self.disk_info.free

    @property
    def has_temp_data(self) -> bool:
        return self.temperature.has_temp_data

    @property
    def average_cpu_usage(self) -> float:
        if not self.cpu_info:
            return 0.0
        return sum(cpu.usage for cpu in self.cpu_info) / len(self.cpu_info)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


def snapshot_to_dict(snapshot: SystemSnapshot) -> dict[str, Any]:
    """Plain-dict view of a snapshot, ready for json.dumps().

    Datetimes become ISO-8601 strings and timedeltas become seconds.
    """
    data = _to_jsonable(asdict(snapshot))
    data["has_temp_data"] = snapshot.has_temp_data
    data["disk_total"] = snapshot.disk_total
    data["disk_used"] = snapshot.disk_used
    data["disk_free"] = snapshot.disk_free
    return data
