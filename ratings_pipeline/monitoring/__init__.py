"""
Monitoring Package für die Ratings Pipeline

Enthält Prometheus Metriken.
"""

from .prometheus_metrics import PrometheusMetrics

__all__ = [
    "PrometheusMetrics",
]
