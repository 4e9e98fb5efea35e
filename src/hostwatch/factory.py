"""Build monitoring components from a loaded ConfigManager.

Dynamic keys are applied to live objects through ConfigManager.subscribe,
so a hot update of the refresh interval, the excluded paths or the log
level takes effect without a restart.
"""

from typing import Any, Optional

import structlog

from .config.manager import ConfigManager
from .logging_setup import set_log_level
from .monitoring.collector import SnapshotCollector
from .monitoring.requests import RequestStats
from .observability.request_logging import RequestTracker

logger = structlog.get_logger(__name__)


def collector_from_config(cfg: ConfigManager) -> SnapshotCollector:
    return SnapshotCollector(
        refresh_interval=cfg.get("monitoring.refresh_interval_seconds"),
        disk_path=cfg.get("monitoring.disk_path"),
    )


def request_stats_from_config(cfg: ConfigManager) -> RequestStats:
    return RequestStats(
        capacity=cfg.get("monitoring.recent_requests_capacity"),
        rate_window=cfg.get("monitoring.request_rate_window_seconds"),
    )


def request_tracker_from_config(cfg: ConfigManager, stats: RequestStats) -> RequestTracker:
    return RequestTracker(stats, excluded_paths=cfg.get("monitoring.excluded_paths"))


def bind_config_updates(
    cfg: ConfigManager,
    collector: SnapshotCollector,
    tracker: Optional[RequestTracker] = None,
) -> None:
    """Subscribe live components to dynamic config changes."""

    def _on_config_update(key: str, value: Any) -> None:
        if key == "monitoring.refresh_interval_seconds":
            collector.refresh_interval = value
            logger.info("collector_refresh_interval_updated", refresh_interval=value)
        elif key == "monitoring.excluded_paths" and tracker is not None:
            tracker.set_excluded_paths(value)
            logger.info("excluded_paths_updated", count=len(value))
        elif key == "logging.level":
            set_log_level(value)

    cfg.subscribe(_on_config_update)
