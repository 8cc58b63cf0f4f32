"""
IngestionService - die Operation ``ingest(category)``.

Crawlt eine Kategorie vollständig und übergibt das Ergebnis erst danach an die
ReconciliationEngine. Abbruch, unvollständige Crawls und leere Crawls lassen den
kanonischen Bestand unverändert; jeder Lauf wird als ScrapeJob protokolliert.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable, Optional, Sequence

from ratings_pipeline.common.constants import Category, normalize_category
from ratings_pipeline.data_collection.reconciliation import (
    EmptyCrawlAborted,
    ReconciliationEngine,
    ReconciliationReport,
)
from ratings_pipeline.data_collection.scrapers.base import FetchClient, ScrapingConfig
from ratings_pipeline.data_collection.scrapers.scraping_orchestrator import CrawlIncomplete, CrawlOrchestrator
from ratings_pipeline.database.store import Store
from ratings_pipeline.domain.models import JobStatus, ScrapeJob
from ratings_pipeline.domain.utils import utcnow


class IngestionService:
    """Führt Ingestion-Läufe aus (idempotent, beliebig oft wiederholbar)"""

    def __init__(
        self,
        store: Store,
        fetch_client_factory: Callable[[], FetchClient],
        config: ScrapingConfig,
        metrics=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.fetch_client_factory = fetch_client_factory
        self.config = config
        self.metrics = metrics
        self._clock = clock
        self.engine = ReconciliationEngine(store, metrics=metrics, clock=clock)
        self.logger = logging.getLogger("ingestion")

    def _finish(self, job: ScrapeJob, status: JobStatus, error: Optional[str] = None) -> ScrapeJob:
        job.status = status
        job.finished_at = self._clock()
        if error:
            job.errors.append(error)
        self.store.save_scrape_job(job)
        return job

    async def ingest(
        self,
        category: Category,
        *,
        with_details: bool = True,
        team_filter: Optional[Sequence[str]] = None,
    ) -> ScrapeJob:
        """Crawlt und gleicht eine Kategorie ab.

        Raises EmptyCrawlAborted / CrawlIncomplete after recording the job, so the
        operator sees the failure; CancelledError propagates without any commit.
        """
        category = normalize_category(category)
        job = ScrapeJob(job_id=uuid.uuid4().hex, category=category, started_at=self._clock())
        self.store.save_scrape_job(job)
        self.logger.info(f"Ingest {category.value} started (job {job.job_id})")

        try:
            async with self.fetch_client_factory() as client:
                orchestrator = CrawlOrchestrator(client, self.config, metrics=self.metrics)
                result = await orchestrator.crawl_category(
                    category, with_details=with_details, team_filter=team_filter
                )
        except asyncio.CancelledError:
            self._finish(job, JobStatus.FAILED, "cancelled")
            raise
        except CrawlIncomplete as e:
            self.logger.error(f"Ingest {category.value} failed: {e}")
            self._finish(job, JobStatus.FAILED, str(e))
            raise

        job.teams_scraped = len(result.teams)
        job.players_scraped = len(result.entries)
        job.partial_records = result.partial_count
        job.errors.extend(result.errors)

        try:
            report: ReconciliationReport = self.engine.reconcile_crawl(result)
        except EmptyCrawlAborted as e:
            self._finish(job, JobStatus.ABORTED, str(e))
            raise

        job.players_added = report.added
        job.players_updated = report.updated
        job.players_removed = report.removed
        self._finish(job, JobStatus.COMPLETED)
        self.logger.info(
            f"Ingest {category.value} completed: {report.total} players "
            f"(+{report.added} ~{report.updated} -{report.removed}, partial={report.partial})"
        )
        return job
