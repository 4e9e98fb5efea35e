# hostwatch - host metrics snapshots and HTTP request telemetry

__version__ = "0.1.0"
