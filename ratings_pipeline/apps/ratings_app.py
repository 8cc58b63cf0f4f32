"""
Ratings Data App - Hauptanwendungsklasse für Ingestion und Wartung

Verdrahtet Store, Metriken, IngestionService und Task-Registry für CLI,
Scheduler-Prozess und main.py.
"""

import logging
from typing import Any, Iterable, Optional

from ..common.constants import normalize_category
from ..core.config import Settings
from ..data_collection.ingestion import IngestionService
from ..data_collection.reconciliation import EmptyCrawlAborted, ReconciliationEngine
from ..data_collection.scrapers.base import FetchClient, PlaywrightFetchClient, ScrapingConfig
from ..database import create_store
from ..database.export import read_export, write_export
from ..database.store import Store
from ..monitoring import PrometheusMetrics
from .scheduler import TaskRegistry, TaskScheduler, init_scheduler


class RatingsDataApp:
    """Hauptanwendung für Ratings Ingestion"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[Store] = None,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.settings = settings or Settings()
        self._store = store
        self.scraping_config = ScrapingConfig.from_settings(self.settings)
        self.metrics = metrics or (PrometheusMetrics(self.settings) if self.settings.enable_metrics else None)
        self.ingestion: Optional[IngestionService] = None
        self.registry: Optional[TaskRegistry] = None
        self.scheduler: Optional[TaskScheduler] = None

        # Logger (configured globally via configure_logging)
        self.logger = logging.getLogger("ratings_data_app")

    @property
    def store(self) -> Store:
        if self._store is None:
            raise RuntimeError("RatingsDataApp not initialized. Call initialize() first.")
        return self._store

    def fetch_client_factory(self) -> FetchClient:
        return PlaywrightFetchClient(self.scraping_config, metrics=self.metrics)

    def initialize(self) -> "RatingsDataApp":
        """Initialisiert Store, Ingestion und Task-Registry"""
        try:
            self.logger.info("Initializing Ratings Data App...")
            if self._store is None:
                self._store = create_store(self.settings)
            self.ingestion = IngestionService(
                self.store, self.fetch_client_factory, self.scraping_config, metrics=self.metrics
            )
            self.registry = init_scheduler(self.store, self.settings, metrics=self.metrics, ingestion=self.ingestion)
            self.scheduler = TaskScheduler(self.registry)
            self.logger.info("Ratings Data App initialized successfully")
            return self
        except Exception as e:
            self.logger.error(f"Failed to initialize Ratings Data App: {e}")
            raise

    async def run_scheduled_tasks(self):
        """Führt die geplanten Tasks aus, bis stop() aufgerufen wird"""
        await self.scheduler.start_schedule()

    def export(self, path: str) -> int:
        return write_export(self.store, path)

    def import_export(self, path: str, categories: Optional[Iterable[str]] = None) -> dict[str, Any]:
        """Reconciles an export artifact into the store, category by category"""
        players = read_export(path)
        if categories:
            categories = [normalize_category(c) for c in categories]
            players = [p for p in players if p.category in categories]
        engine = ReconciliationEngine(self.store, metrics=self.metrics)
        try:
            reports = engine.reconcile_players(players, categories)
            aborted: list[str] = []
        except EmptyCrawlAborted as e:
            self.logger.error(str(e))
            reports, aborted = e.committed, [c.value for c in e.categories]
        return {"reports": reports, "aborted": aborted}

    def stop(self):
        if self.scheduler:
            self.scheduler.stop()

    def close(self):
        self.stop()
        if self._store is not None:
            self._store.close()
