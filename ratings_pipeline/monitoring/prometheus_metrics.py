"""
Prometheus Metrics für die Ratings Pipeline

Implementiert Metriken-Sammlung und -Export für Monitoring.
"""

import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from ..core.config import Settings


class PrometheusMetrics:
    """Prometheus Metriken für die Ratings Pipeline"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings
        self.logger = logging.getLogger("prometheus_metrics")

        # Custom Registry für bessere Kontrolle
        self.registry = CollectorRegistry()

        # API Metriken
        self.api_requests_total = Counter(
            "api_requests_total",
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self.registry,
        )

        self.api_request_duration = Histogram(
            "api_request_duration_seconds",
            "API request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry,
        )

        self.api_rejections_total = Counter(
            "api_rejections_total",
            "Requests rejected by the gateway",
            ["reason"],
            registry=self.registry,
        )

        # Scraping Metriken
        self.page_fetches_total = Counter(
            "page_fetches_total",
            "Total number of page fetch attempts",
            ["page_type", "status"],
            registry=self.registry,
        )

        self.page_fetch_duration = Histogram(
            "page_fetch_duration_seconds",
            "Page fetch duration in seconds",
            ["page_type"],
            buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0],
            registry=self.registry,
        )

        self.scraping_operations_total = Counter(
            "scraping_operations_total",
            "Total number of category crawls",
            ["category", "status"],
            registry=self.registry,
        )

        self.scraping_duration = Histogram(
            "scraping_duration_seconds",
            "Category crawl duration in seconds",
            ["category"],
            buckets=[10, 30, 60, 300, 600, 1800, 3600],
            registry=self.registry,
        )

        # Reconciliation Metriken
        self.reconciliation_total = Counter(
            "reconciliation_total",
            "Reconciliation outcomes per category",
            ["category", "outcome"],
            registry=self.registry,
        )

        self.canonical_players = Gauge(
            "canonical_players",
            "Canonical player records per category",
            ["category"],
            registry=self.registry,
        )

        # Background Tasks
        self.background_tasks_total = Counter(
            "background_tasks_total",
            "Total number of background tasks executed",
            ["task_name", "status"],
            registry=self.registry,
        )

        self.background_task_duration = Histogram(
            "background_task_duration_seconds",
            "Background task duration in seconds",
            ["task_name"],
            registry=self.registry,
        )

        self.request_logs_purged_total = Counter(
            "request_logs_purged_total",
            "Request log entries deleted by retention cleanup",
            registry=self.registry,
        )

        # Application Info
        self.app_info = Info("ratings_pipeline_info", "Ratings Pipeline information", registry=self.registry)
        self.app_info.info(
            {
                "version": "1.0.0",
                "environment": settings.environment if settings else "unknown",
            }
        )

    def record_api_request(self, method: str, endpoint: str, status: str, duration: float):
        """Zeichnet API Request auf"""
        self.api_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
        self.api_request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_api_rejection(self, reason: str):
        self.api_rejections_total.labels(reason=reason).inc()

    def record_page_fetch(self, page_type: str, status: str, duration: float):
        """Zeichnet einen Seitenabruf auf"""
        self.page_fetches_total.labels(page_type=page_type, status=status).inc()
        self.page_fetch_duration.labels(page_type=page_type).observe(duration)

    def record_scraping_operation(self, category: str, status: str, duration: float):
        """Zeichnet Scraping Operation auf"""
        self.scraping_operations_total.labels(category=category, status=status).inc()
        self.scraping_duration.labels(category=category).observe(duration)

    def record_reconciliation(self, category: str, outcome: str):
        self.reconciliation_total.labels(category=category, outcome=outcome).inc()

    def set_canonical_players(self, category: str, count: int):
        self.canonical_players.labels(category=category).set(count)

    def record_background_task(self, task_name: str, status: str, duration: float):
        """Zeichnet Background Task auf"""
        self.background_tasks_total.labels(task_name=task_name, status=status).inc()
        self.background_task_duration.labels(task_name=task_name).observe(duration)

    def record_request_logs_purged(self, count: int):
        if count > 0:
            self.request_logs_purged_total.inc(count)

    def export_metrics(self) -> str:
        """Exportiert Metriken im Prometheus Format"""
        try:
            return generate_latest(self.registry).decode("utf-8")
        except Exception as e:
            self.logger.error(f"Failed to export metrics: {e}")
            return f"# Error exporting metrics: {e}\n"
