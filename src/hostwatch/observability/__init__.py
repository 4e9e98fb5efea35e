# Observability - request logging and health checks

from .health_checks import HealthCheckResult, overall_status, run_all_health_checks
from .request_logging import RequestTracker, request_log_fields

__all__ = [
    "HealthCheckResult",
    "RequestTracker",
    "overall_status",
    "request_log_fields",
    "run_all_health_checks",
]
