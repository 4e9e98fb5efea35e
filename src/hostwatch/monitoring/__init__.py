# Monitoring core - metric sources, snapshot cache and request telemetry

from .collector import (
    STATS_REFRESH_INTERVAL,
    CacheEntry,
    SnapshotCollector,
    Source,
    SourcePipeline,
    default_sources,
    snapshot_refresh_loop,
)
from .deadline import Deadline
from .errors import (
    JoinedMetricError,
    MetricError,
    MetricErrorKind,
    contains_error,
    find_error,
    is_error_kind,
    is_permission_error,
    is_sensor_error,
    is_system_error,
    is_timeout,
    iter_errors,
    join_errors,
    wrap_exception,
)
from .models import SystemSnapshot, snapshot_to_dict
from .requests import (
    PathStats,
    RequestMetrics,
    RequestStats,
    format_duration,
    status_string,
)
from .ring_buffer import RingBuffer
from .sensors import is_cpu_temp, is_disk_temp, is_system_temp

__all__ = [
    "STATS_REFRESH_INTERVAL",
    "CacheEntry",
    "Deadline",
    "JoinedMetricError",
    "MetricError",
    "MetricErrorKind",
    "PathStats",
    "RequestMetrics",
    "RequestStats",
    "RingBuffer",
    "SnapshotCollector",
    "Source",
    "SourcePipeline",
    "SystemSnapshot",
    "contains_error",
    "default_sources",
    "find_error",
    "format_duration",
    "is_cpu_temp",
    "is_disk_temp",
    "is_error_kind",
    "is_permission_error",
    "is_sensor_error",
    "is_system_error",
    "is_system_temp",
    "is_timeout",
    "iter_errors",
    "join_errors",
    "snapshot_refresh_loop",
    "snapshot_to_dict",
    "status_string",
    "wrap_exception",
]
