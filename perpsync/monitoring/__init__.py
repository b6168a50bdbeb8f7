"""
Monitoring package: in-process metrics, health and the metrics HTTP server.
"""

from perpsync.monitoring.metrics import HealthChecker, HealthStatus, Metrics, metric_key, start_metrics_server

__all__ = [
    "HealthChecker",
    "HealthStatus",
    "Metrics",
    "metric_key",
    "start_metrics_server",
]
