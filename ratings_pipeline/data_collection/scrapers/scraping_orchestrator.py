"""
Crawl Orchestrator für die Ratings Pipeline

Koordiniert Teamliste -> Kader -> Spielerseiten einer Kategorie mit begrenzter
Parallelität. Ergebnisse werden in Quellreihenfolge zusammengesetzt, die
Fertigstellungsreihenfolge der Worker spielt keine Rolle.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from ratings_pipeline.common.constants import Category, normalize_category
from ratings_pipeline.data_collection.scrapers.base import FetchClient, FetchError, ScrapingConfig
from ratings_pipeline.data_collection.scrapers.extractors import ExtractionError
from ratings_pipeline.data_collection.scrapers.ratings_scraper import (
    PlayerDetailCrawler,
    RosterCrawler,
    TeamListCrawler,
)
from ratings_pipeline.domain.contracts import CategoryCrawlResult, RosterEntry, TeamRef

I = TypeVar("I")
R = TypeVar("R")


class CrawlIncomplete(RuntimeError):
    """A required page (team roster) could not be collected; nothing may be committed."""

    def __init__(self, category: Category, message: str):
        super().__init__(f"{category.value} crawl incomplete: {message}")
        self.category = category


class BoundedWorkerPool:
    """Fester Worker-Pool mit Mindestabstand zwischen zwei Requests desselben Workers"""

    def __init__(
        self,
        concurrency: int = 3,
        politeness_delay: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self.politeness_delay = politeness_delay
        self._clock = clock
        self._sleep = sleep

    async def map(self, func: Callable[[I], Awaitable[R]], items: Iterable[I]) -> list[R]:
        """Wendet func auf alle items an; Ergebnisliste in Eingabereihenfolge"""
        work = list(enumerate(items))
        results: list[Any] = [None] * len(work)
        queue = iter(work)

        async def worker() -> None:
            last_start: Optional[float] = None
            for idx, item in queue:
                if last_start is not None and self.politeness_delay > 0:
                    wait = self.politeness_delay - (self._clock() - last_start)
                    if wait > 0:
                        await self._sleep(wait)
                last_start = self._clock()
                results[idx] = await func(item)

        workers = [asyncio.create_task(worker()) for _ in range(min(self.concurrency, len(work)))]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise
        return results


class CrawlOrchestrator:
    """Orchestriert den Crawl einer Kategorie"""

    def __init__(self, fetch_client: FetchClient, config: ScrapingConfig, metrics=None):
        self.config = config
        self.metrics = metrics
        self.team_crawler = TeamListCrawler(fetch_client, config.base_url)
        self.roster_crawler = RosterCrawler(fetch_client, config.base_url)
        self.detail_crawler = PlayerDetailCrawler(fetch_client, config.base_url)
        self.logger = logging.getLogger("crawl_orchestrator")

    def _pool(self) -> BoundedWorkerPool:
        return BoundedWorkerPool(self.config.concurrency, self.config.politeness_delay)

    async def collect_teams(self, category: Category, result: CategoryCrawlResult) -> list[TeamRef]:
        try:
            return [team async for team in self.team_crawler.crawl(category)]
        except (FetchError, ExtractionError) as e:
            # Zero teams -> zero records; reconciliation decides whether that is safe
            self.logger.error(f"Team list for {category.value} unavailable: {e}")
            result.errors.append(str(e))
            return []

    async def _roster(self, team: TeamRef) -> list[RosterEntry]:
        try:
            return await self.roster_crawler.crawl(team)
        except (FetchError, ExtractionError) as e:
            raise CrawlIncomplete(team.category, f"roster of {team.name}: {e}") from e

    async def crawl_category(
        self,
        category: Category,
        *,
        with_details: bool = True,
        team_filter: Optional[Sequence[str]] = None,
    ) -> CategoryCrawlResult:
        """Führt den vollständigen Crawl einer Kategorie aus"""
        category = normalize_category(category)
        start_time = datetime.now()
        status = "error"
        result = CategoryCrawlResult(category=category)
        try:
            teams = await self.collect_teams(category, result)
            if team_filter:
                wanted = {t.casefold() for t in team_filter}
                teams = [t for t in teams if t.name.casefold() in wanted]
            result.teams = teams

            rosters = await self._pool().map(self._roster, teams)
            result.entries = [entry for roster in rosters for entry in roster]
            self.logger.info(
                f"{category.value}: {len(result.entries)} roster entries from {len(teams)} teams"
            )

            if with_details:
                result.details = await self._pool().map(self.detail_crawler.crawl, result.entries)
            else:
                result.details = [None] * len(result.entries)
            status = "success" if result.entries else "no_data"
            return result
        except asyncio.CancelledError:
            status = "cancelled"
            self.logger.warning(f"{category.value} crawl cancelled, discarding partial results")
            raise
        finally:
            duration = (datetime.now() - start_time).total_seconds()
            if self.metrics:
                self.metrics.record_scraping_operation(category.value, status, duration)
            self.logger.info(f"{category.value} crawl finished with status={status} in {duration:.1f}s")
