"""
Store - keyed persistence contract for players, teams, request logs and
rate-limit counters, plus the in-memory implementation.

The ReconciliationEngine is the only writer of Player/Team records, the API
gateway the only writer of RequestLog/RateLimitWindow/ApiKey records. Every
method is atomic with respect to concurrent callers.
"""

from __future__ import annotations

import bisect
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional, Sequence

from ratings_pipeline.common.constants import Category, normalize_category, normalize_position
from ratings_pipeline.common.parsing import normalize_name
from ratings_pipeline.domain.models import (
    ApiKey,
    DatasetStats,
    Player,
    PositionAverages,
    RateLimitWindow,
    RequestLog,
    ScrapeJob,
    Team,
    TeamStats,
    TeamSummary,
)


def sort_players(players: Iterable[Player]) -> list[Player]:
    """Highest rated first, ties by name then category."""
    return sorted(players, key=lambda p: (-p.overall, p.name_key, p.category.value))


class Store(ABC):
    """Abstract keyed store with secondary indices (category, team, position, timestamp)."""

    # --- Players / Teams ---------------------------------------------------

    @abstractmethod
    def replace_category(self, category: Category, players: Sequence[Player], teams: Sequence[Team]) -> None:
        """Atomically swap the complete player/team slice of one category."""

    @abstractmethod
    def upsert_player(self, player: Player) -> None: ...

    @abstractmethod
    def delete_player(self, name: str, category: Category) -> bool: ...

    @abstractmethod
    def get_player(self, name: str, category: Category) -> Optional[Player]: ...

    @abstractmethod
    def get_player_by_slug(self, slug: str, category: Optional[Category] = None) -> Optional[Player]:
        """Highest rated player with this slug, optionally within one category."""

    @abstractmethod
    def players_by_category(self, category: Category) -> list[Player]: ...

    @abstractmethod
    def players_by_team(self, team: str, category: Optional[Category] = None) -> list[Player]: ...

    @abstractmethod
    def players_by_position(self, position: str, category: Optional[Category] = None) -> list[Player]: ...

    @abstractmethod
    def search_players(self, query: str, category: Optional[Category] = None, limit: int = 25) -> list[Player]: ...

    @abstractmethod
    def all_players(self) -> list[Player]: ...

    @abstractmethod
    def teams(self, category: Optional[Category] = None) -> list[Team]: ...

    # --- Request logs ------------------------------------------------------

    @abstractmethod
    def append_request_log(self, log: RequestLog) -> RequestLog: ...

    @abstractmethod
    def request_logs_between(self, start: datetime, end: datetime) -> list[RequestLog]:
        """Logs with start <= timestamp < end, oldest first."""

    @abstractmethod
    def request_logs_for_caller(self, caller: str, limit: int = 20) -> list[RequestLog]:
        """Newest first."""

    @abstractmethod
    def delete_request_logs_before(self, cutoff: datetime) -> int: ...

    # --- Rate limit windows -----------------------------------------------

    @abstractmethod
    def increment_rate_window(self, caller: str, bucket: int) -> int:
        """Atomically add one to (caller, bucket) and return the new count."""

    @abstractmethod
    def get_rate_window(self, caller: str, bucket: int) -> Optional[RateLimitWindow]: ...

    @abstractmethod
    def delete_rate_windows_before(self, bucket: int) -> int: ...

    # --- API keys / scrape jobs -------------------------------------------

    @abstractmethod
    def save_api_key(self, api_key: ApiKey) -> None: ...

    @abstractmethod
    def get_api_key(self, key: str) -> Optional[ApiKey]: ...

    @abstractmethod
    def touch_api_key(self, key: str, when: datetime) -> None:
        """Bump request_count/last_request of a registered key."""

    @abstractmethod
    def save_scrape_job(self, job: ScrapeJob) -> None: ...

    @abstractmethod
    def get_scrape_job(self, job_id: str) -> Optional[ScrapeJob]: ...

    @abstractmethod
    def recent_scrape_jobs(self, limit: int = 20) -> list[ScrapeJob]: ...

    def health_check(self) -> bool:
        return True

    def close(self) -> None:
        return None

    # --- Aggregates (shared) -----------------------------------------------

    def list_players(
        self,
        category: Optional[Category] = None,
        team: Optional[str] = None,
        position: Optional[str] = None,
        min_rating: Optional[int] = None,
        max_rating: Optional[int] = None,
    ) -> list[Player]:
        if team:
            players = self.players_by_team(team, category)
        elif position:
            players = self.players_by_position(position, category)
        elif category is not None:
            players = self.players_by_category(category)
        else:
            players = self.all_players()
        pos = normalize_position(position) if position else None
        out = []
        for p in players:
            if category is not None and p.category != category:
                continue
            if pos and pos not in p.positions:
                continue
            if min_rating is not None and p.overall < min_rating:
                continue
            if max_rating is not None and p.overall > max_rating:
                continue
            out.append(p)
        return sort_players(out)

    def position_averages(self, position: str, category: Optional[Category] = Category.CURRENT) -> PositionAverages:
        """Mean overall and per-attribute means at a position.

        A player lacking an attribute is left out of that attribute's denominator only.
        """
        pos = normalize_position(position) or position.upper()
        players = self.players_by_position(pos, category)
        sums: dict[str, int] = defaultdict(int)
        counts: dict[str, int] = defaultdict(int)
        for p in players:
            for name, value in p.attributes.items():
                sums[name] += value
                counts[name] += 1
        overall = sum(p.overall for p in players) / len(players) if players else None
        return PositionAverages(
            position=pos,
            category=category,
            player_count=len(players),
            overall=overall,
            attributes={name: sums[name] / counts[name] for name in sorted(sums)},
            attribute_counts={name: counts[name] for name in sorted(counts)},
        )

    def team_summaries(self, category: Optional[Category] = None) -> list[TeamSummary]:
        summaries = []
        for team in self.teams(category):
            roster = self.players_by_team(team.name, team.category)
            avg = sum(p.overall for p in roster) / len(roster) if roster else None
            summaries.append(
                TeamSummary(
                    name=team.name,
                    category=team.category,
                    logo=team.logo,
                    player_count=len(roster),
                    avg_rating=round(avg, 1) if avg is not None else None,
                )
            )
        return sorted(summaries, key=lambda s: (s.category.value, s.name))

    def team_stats(self, team: str, category: Category = Category.CURRENT) -> Optional[TeamStats]:
        roster = self.players_by_team(team, category)
        if not roster:
            return None
        positions: dict[str, int] = defaultdict(int)
        sums: dict[str, int] = defaultdict(int)
        counts: dict[str, int] = defaultdict(int)
        for p in roster:
            for pos in p.positions:
                positions[pos] += 1
            for name, value in p.attributes.items():
                sums[name] += value
                counts[name] += 1
        top = roster[0]
        record = next((t for t in self.teams(category) if t.name.casefold() == team.casefold()), None)
        return TeamStats(
            name=record.name if record else top.team,
            category=category,
            logo=(record.logo if record else None) or top.team_image,
            player_count=len(roster),
            avg_rating=round(sum(p.overall for p in roster) / len(roster), 1),
            top_player={
                "name": top.name,
                "slug": top.slug,
                "overall": top.overall,
                "positions": list(top.positions),
                "image": top.player_image,
            },
            position_distribution=dict(sorted(positions.items())),
            attribute_averages={name: round(sums[name] / counts[name], 1) for name in sorted(sums)},
            attribute_counts={name: counts[name] for name in sorted(counts)},
        )

    def stats(self) -> DatasetStats:
        players = self.all_players()
        by_category = {c.value: 0 for c in Category}
        teams = set()
        for p in players:
            by_category[p.category.value] += 1
            if p.team:
                teams.add((p.team, p.category.value))
        stamps = [p.last_updated for p in players if p.last_updated]
        return DatasetStats(
            total_players=len(players),
            by_category=by_category,
            unique_teams=len(teams),
            avg_overall=round(sum(p.overall for p in players) / len(players), 2) if players else None,
            partial_players=sum(1 for p in players if p.is_partial),
            last_updated=max(stamps) if stamps else None,
        )


class MemoryStore(Store):
    """Process-local store; one re-entrant lock serialises every operation."""

    def __init__(self):
        self.logger = logging.getLogger("memory_store")
        self._lock = threading.RLock()
        self._players: dict[tuple[str, str], Player] = {}
        self._by_category: dict[str, set] = defaultdict(set)
        self._by_team: dict[str, set] = defaultdict(set)
        self._by_position: dict[str, set] = defaultdict(set)
        self._by_slug: dict[str, set] = defaultdict(set)
        self._teams: dict[tuple[str, str], Team] = {}
        # (timestamp, id, log), ordered by timestamp
        self._logs: list[tuple[datetime, int, RequestLog]] = []
        self._log_ids = itertools.count(1)
        self._windows: dict[tuple[str, int], int] = {}
        self._api_keys: dict[str, ApiKey] = {}
        self._jobs: dict[str, ScrapeJob] = {}
        # job_id -> insertion sequence, tiebreak for equal start times
        self._job_seq: dict[str, int] = {}
        self._job_ids = itertools.count(1)

    # --- index maintenance (lock held) ---

    def _index(self, player: Player) -> None:
        key = player.key
        self._players[key] = player
        self._by_category[player.category.value].add(key)
        if player.team:
            self._by_team[player.team.casefold()].add(key)
        for pos in player.positions:
            self._by_position[pos].add(key)
        if player.slug:
            self._by_slug[player.slug].add(key)

    def _unindex(self, key: tuple[str, str]) -> Optional[Player]:
        player = self._players.pop(key, None)
        if player is None:
            return None
        self._by_category[player.category.value].discard(key)
        if player.team:
            self._by_team[player.team.casefold()].discard(key)
        for pos in player.positions:
            self._by_position[pos].discard(key)
        if player.slug:
            self._by_slug[player.slug].discard(key)
        return player

    def _lookup(self, keys: Iterable[tuple[str, str]], category: Optional[Category]) -> list[Player]:
        out = [self._players[k] for k in keys if k in self._players]
        if category is not None:
            out = [p for p in out if p.category == category]
        return sort_players(out)

    # --- players / teams ---

    def replace_category(self, category: Category, players: Sequence[Player], teams: Sequence[Team]) -> None:
        category = normalize_category(category)
        with self._lock:
            for key in list(self._by_category[category.value]):
                self._unindex(key)
            for key in [k for k in self._teams if k[1] == category.value]:
                del self._teams[key]
            for player in players:
                self._index(player)
            for team in teams:
                self._teams[team.key] = team

    def upsert_player(self, player: Player) -> None:
        with self._lock:
            self._unindex(player.key)
            self._index(player)

    def delete_player(self, name: str, category: Category) -> bool:
        with self._lock:
            return self._unindex((normalize_name(name), normalize_category(category).value)) is not None

    def get_player(self, name: str, category: Category) -> Optional[Player]:
        with self._lock:
            return self._players.get((normalize_name(name), normalize_category(category).value))

    def get_player_by_slug(self, slug: str, category: Optional[Category] = None) -> Optional[Player]:
        with self._lock:
            found = self._lookup(self._by_slug.get(slug, ()), category)
        return found[0] if found else None

    def players_by_category(self, category: Category) -> list[Player]:
        category = normalize_category(category)
        with self._lock:
            return self._lookup(self._by_category[category.value], None)

    def players_by_team(self, team: str, category: Optional[Category] = None) -> list[Player]:
        with self._lock:
            return self._lookup(self._by_team.get((team or "").casefold(), ()), category)

    def players_by_position(self, position: str, category: Optional[Category] = None) -> list[Player]:
        pos = normalize_position(position)
        with self._lock:
            return self._lookup(self._by_position.get(pos, ()) if pos else (), category)

    def search_players(self, query: str, category: Optional[Category] = None, limit: int = 25) -> list[Player]:
        needle = normalize_name(query)
        if not needle:
            return []
        with self._lock:
            hits = [k for k in self._players if needle in k[0]]
            return self._lookup(hits, category)[:limit]

    def all_players(self) -> list[Player]:
        with self._lock:
            return sort_players(self._players.values())

    def teams(self, category: Optional[Category] = None) -> list[Team]:
        with self._lock:
            out = [t for t in self._teams.values() if category is None or t.category == category]
        return sorted(out, key=lambda t: (t.category.value, t.name))

    # --- request logs ---

    def append_request_log(self, log: RequestLog) -> RequestLog:
        with self._lock:
            stored = log.model_copy(update={"id": next(self._log_ids)})
            bisect.insort(self._logs, (stored.timestamp, stored.id, stored))
            return stored

    def request_logs_between(self, start: datetime, end: datetime) -> list[RequestLog]:
        with self._lock:
            lo = bisect.bisect_left(self._logs, (start,))
            hi = bisect.bisect_left(self._logs, (end,))
            return [entry[2] for entry in self._logs[lo:hi]]

    def request_logs_for_caller(self, caller: str, limit: int = 20) -> list[RequestLog]:
        with self._lock:
            mine = [entry[2] for entry in reversed(self._logs) if entry[2].caller == caller]
        return mine[:limit]

    def delete_request_logs_before(self, cutoff: datetime) -> int:
        with self._lock:
            idx = bisect.bisect_left(self._logs, (cutoff,))
            del self._logs[:idx]
            return idx

    # --- rate limit windows ---

    def increment_rate_window(self, caller: str, bucket: int) -> int:
        with self._lock:
            count = self._windows.get((caller, bucket), 0) + 1
            self._windows[(caller, bucket)] = count
            return count

    def get_rate_window(self, caller: str, bucket: int) -> Optional[RateLimitWindow]:
        with self._lock:
            count = self._windows.get((caller, bucket))
        if count is None:
            return None
        return RateLimitWindow(caller=caller, bucket=bucket, count=count)

    def delete_rate_windows_before(self, bucket: int) -> int:
        with self._lock:
            stale = [k for k in self._windows if k[1] < bucket]
            for k in stale:
                del self._windows[k]
            return len(stale)

    # --- api keys / jobs ---

    def save_api_key(self, api_key: ApiKey) -> None:
        with self._lock:
            self._api_keys[api_key.key] = api_key

    def get_api_key(self, key: str) -> Optional[ApiKey]:
        with self._lock:
            return self._api_keys.get(key)

    def touch_api_key(self, key: str, when: datetime) -> None:
        with self._lock:
            current = self._api_keys.get(key)
            if current is not None:
                self._api_keys[key] = current.model_copy(
                    update={"request_count": current.request_count + 1, "last_request": when}
                )

    def save_scrape_job(self, job: ScrapeJob) -> None:
        with self._lock:
            self._jobs[job.job_id] = job
            if job.job_id not in self._job_seq:
                self._job_seq[job.job_id] = next(self._job_ids)

    def get_scrape_job(self, job_id: str) -> Optional[ScrapeJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def recent_scrape_jobs(self, limit: int = 20) -> list[ScrapeJob]:
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda j: (j.started_at, self._job_seq[j.job_id]), reverse=True)
        return jobs[:limit]
