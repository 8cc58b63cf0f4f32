"""
ReconciliationEngine - builds the canonical Player/Team sets from crawl results.

Every crawled category is replaced as a whole with the newest crawl output
(source rosters are the ground truth of each run). Within one run the last
record seen for a (normalized name, category) key wins. Players listed in more
than one category keep one record per category.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from ratings_pipeline.common.constants import Category, normalize_category
from ratings_pipeline.database.store import Store
from ratings_pipeline.domain.contracts import CategoryCrawlResult, TeamRef
from ratings_pipeline.domain.models import Player, Team
from ratings_pipeline.domain.utils import player_from_crawl, utcnow


class EmptyCrawlAborted(RuntimeError):
    """Refused to replace a non-empty category with an empty crawl."""

    def __init__(
        self,
        categories: Sequence[Category],
        previous: dict[str, int],
        committed: Sequence[ReconciliationReport] = (),
    ):
        names = ", ".join(c.value for c in categories)
        super().__init__(f"Empty crawl for {names}; kept existing records {previous}")
        self.categories = list(categories)
        self.previous = previous
        # categories of the same run that were committed regardless
        self.committed = list(committed)


@dataclass
class ReconciliationReport:
    category: Category
    total: int = 0
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    removed: int = 0
    duplicates: int = 0
    partial: int = 0
    teams: int = 0
    removed_keys: list[str] = field(default_factory=list)


class ReconciliationEngine:
    """Gleicht Crawl-Ergebnisse mit dem kanonischen Datenbestand ab"""

    def __init__(self, store: Store, metrics=None, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.metrics = metrics
        self._clock = clock
        self.logger = logging.getLogger("reconciliation")

    def dedupe(self, players: Iterable[Player]) -> tuple[list[Player], int]:
        """Last-seen-wins per key, in emission order; returns (players, duplicates)."""
        by_key: dict[tuple[str, str], Player] = {}
        duplicates = 0
        for p in players:
            if p.key in by_key:
                duplicates += 1
            by_key[p.key] = p
        return list(by_key.values()), duplicates

    def reconcile_category(
        self,
        category: Category,
        players: Sequence[Player],
        teams: Sequence[Team] = (),
    ) -> ReconciliationReport:
        """Ersetzt die komplette Kategorie atomar; wirft EmptyCrawlAborted bei leerem Crawl"""
        category = normalize_category(category)
        foreign = [p for p in players if p.category != category]
        if foreign:
            raise ValueError(f"{len(foreign)} records do not belong to category {category.value}")

        previous = {p.key: p for p in self.store.players_by_category(category)}
        if not players and previous:
            self.logger.error(
                f"Refusing to replace {category.value}: crawl returned 0 players, "
                f"{len(previous)} canonical records kept"
            )
            if self.metrics:
                self.metrics.record_reconciliation(category.value, "empty_aborted")
            raise EmptyCrawlAborted([category], {category.value: len(previous)})

        merged, duplicates = self.dedupe(players)
        now = self._clock()
        report = ReconciliationReport(category=category, duplicates=duplicates)
        canonical: list[Player] = []
        for p in merged:
            old = previous.get(p.key)
            if old is None:
                canonical.append(p.model_copy(update={"created_at": now, "last_updated": now}))
                report.added += 1
            elif old.content() == p.content():
                canonical.append(
                    p.model_copy(update={"created_at": old.created_at, "last_updated": old.last_updated})
                )
                report.unchanged += 1
            else:
                canonical.append(p.model_copy(update={"created_at": old.created_at or now, "last_updated": now}))
                report.updated += 1
        current_keys = {p.key for p in canonical}
        report.removed_keys = sorted(k[0] for k in previous if k not in current_keys)
        report.removed = len(report.removed_keys)
        report.total = len(canonical)
        report.partial = sum(1 for p in canonical if p.is_partial)

        team_rows = self._teams_for(category, canonical, teams)
        report.teams = len(team_rows)
        canonical.sort(key=lambda p: p.name_key)
        self.store.replace_category(category, canonical, team_rows)

        if self.metrics:
            self.metrics.record_reconciliation(category.value, "replaced")
            self.metrics.set_canonical_players(category.value, report.total)
        self.logger.info(
            f"Reconciled {category.value}: total={report.total} added={report.added} "
            f"updated={report.updated} unchanged={report.unchanged} removed={report.removed} "
            f"duplicates={report.duplicates} partial={report.partial}"
        )
        return report

    def _teams_for(self, category: Category, players: Sequence[Player], teams: Sequence[Team]) -> list[Team]:
        by_name: dict[str, Team] = {}
        for t in teams:
            by_name.setdefault(t.name, t)
        # teams only known through their players still get a record
        for p in players:
            if p.team and p.team not in by_name:
                by_name[p.team] = Team(name=p.team, category=category, logo=p.team_image)
        return [by_name[name] for name in sorted(by_name)]

    def _run_all(self, jobs: Iterable[Callable[[], ReconciliationReport]]) -> list[ReconciliationReport]:
        reports: list[ReconciliationReport] = []
        aborted: list[Category] = []
        previous: dict[str, int] = {}
        for job in jobs:
            try:
                reports.append(job())
            except EmptyCrawlAborted as e:
                aborted.extend(e.categories)
                previous.update(e.previous)
        if aborted:
            raise EmptyCrawlAborted(aborted, previous, reports)
        return reports

    def reconcile(self, results: Iterable[CategoryCrawlResult]) -> list[ReconciliationReport]:
        """Reconciles several category crawls; healthy categories commit even if one is empty."""
        return self._run_all(lambda r=r: self.reconcile_crawl(r) for r in results)

    def reconcile_crawl(self, result: CategoryCrawlResult) -> ReconciliationReport:
        players = [player_from_crawl(entry, detail) for entry, detail in zip(result.entries, result.details)]
        return self.reconcile_category(result.category, players, [team_from_ref(t) for t in result.teams])

    def reconcile_players(
        self, players: Iterable[Player], categories: Optional[Iterable[Category]] = None
    ) -> list[ReconciliationReport]:
        """Partitions mixed records by category (e.g. an imported export artifact)."""
        partitions: dict[Category, list[Player]] = {normalize_category(c): [] for c in categories or ()}
        for p in players:
            partitions.setdefault(p.category, []).append(p)
        return self._run_all(lambda c=c: self.reconcile_category(c, partitions[c]) for c in partitions)


def team_from_ref(ref: TeamRef) -> Team:
    return Team(name=ref.name, category=ref.category, url=ref.url, logo=ref.logo)
