"""
SqlStore - Store-Implementierung auf Basis von SQLAlchemy.

Timestamps are persisted as naive UTC and returned timezone-aware.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite

from ratings_pipeline.common.constants import Category, normalize_category, normalize_position
from ratings_pipeline.common.parsing import normalize_name
from ratings_pipeline.database.manager import DatabaseManager
from ratings_pipeline.database.schema import (
    ApiKeyRow,
    PlayerPositionRow,
    PlayerRow,
    RateLimitWindowRow,
    RequestLogRow,
    ScrapeJobRow,
    TeamRow,
)
from ratings_pipeline.database.store import Store, sort_players
from ratings_pipeline.domain.models import ApiKey, Player, RateLimitWindow, RequestLog, ScrapeJob, Team
from ratings_pipeline.domain.utils import ensure_aware


def _to_db(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def _player_row(p: Player) -> PlayerRow:
    row = PlayerRow(
        name_key=p.name_key,
        category=p.category.value,
        name=p.name,
        slug=p.slug,
        team=p.team,
        team_key=p.team.casefold() if p.team else None,
        overall=p.overall,
        position=p.position,
        height=p.height,
        weight=p.weight,
        wingspan=p.wingspan,
        build=p.build,
        attributes=dict(p.attributes),
        badge_count=p.badge_count,
        player_url=p.player_url,
        player_image=p.player_image,
        team_image=p.team_image,
        is_partial=p.is_partial,
        partial_reason=p.partial_reason,
        created_at=_to_db(p.created_at),
        last_updated=_to_db(p.last_updated),
    )
    row.positions = [PlayerPositionRow(position=pos, ordinal=i) for i, pos in enumerate(p.positions)]
    return row


def _player(row: PlayerRow) -> Player:
    return Player(
        name=row.name,
        category=row.category,
        slug=row.slug or "",
        team=row.team,
        overall=row.overall,
        position=row.position,
        positions=[pp.position for pp in row.positions],
        height=row.height,
        weight=row.weight,
        wingspan=row.wingspan,
        build=row.build,
        attributes=dict(row.attributes or {}),
        badge_count=row.badge_count,
        player_url=row.player_url,
        player_image=row.player_image,
        team_image=row.team_image,
        is_partial=bool(row.is_partial),
        partial_reason=row.partial_reason,
        created_at=ensure_aware(row.created_at),
        last_updated=ensure_aware(row.last_updated),
    )


def _request_log(row: RequestLogRow) -> RequestLog:
    return RequestLog(
        id=row.id,
        timestamp=ensure_aware(row.timestamp),
        caller=row.caller,
        endpoint=row.endpoint,
        method=row.method,
        status_code=row.status_code,
        outcome=row.outcome,
        response_time_ms=row.response_time_ms,
    )


def _api_key(row: ApiKeyRow) -> ApiKey:
    return ApiKey(
        key=row.key,
        name=row.name,
        email=row.email,
        rate_limit=row.rate_limit,
        is_active=bool(row.is_active),
        request_count=row.request_count,
        last_request=ensure_aware(row.last_request),
        created_at=ensure_aware(row.created_at),
    )


def _scrape_job(row: ScrapeJobRow) -> ScrapeJob:
    return ScrapeJob(
        job_id=row.job_id,
        category=row.category,
        status=row.status,
        teams_scraped=row.teams_scraped,
        players_scraped=row.players_scraped,
        partial_records=row.partial_records,
        players_added=row.players_added,
        players_updated=row.players_updated,
        players_removed=row.players_removed,
        errors=list(row.errors or []),
        started_at=ensure_aware(row.started_at),
        finished_at=ensure_aware(row.finished_at),
    )


class SqlStore(Store):
    """Store auf Basis einer SQLAlchemy Engine (PostgreSQL oder SQLite)"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager
        self.logger = logging.getLogger("sql_store")

    def _insert(self, table):
        dialect = self.db.dialect
        if dialect == "postgresql":
            return postgresql.insert(table)
        if dialect == "sqlite":
            return sqlite.insert(table)
        raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")

    # --- players / teams ---

    def replace_category(self, category: Category, players: Sequence[Player], teams: Sequence[Team]) -> None:
        cat = normalize_category(category).value
        with self.db.get_session() as session, session.begin():
            ids = select(PlayerRow.id).where(PlayerRow.category == cat)
            session.execute(delete(PlayerPositionRow).where(PlayerPositionRow.player_id.in_(ids)))
            session.execute(delete(PlayerRow).where(PlayerRow.category == cat))
            session.execute(delete(TeamRow).where(TeamRow.category == cat))
            session.add_all([_player_row(p) for p in players])
            session.add_all([TeamRow(name=t.name, category=cat, url=t.url, logo=t.logo) for t in teams])
        self.logger.debug(f"Replaced category {cat}: {len(players)} players, {len(teams)} teams")

    def upsert_player(self, player: Player) -> None:
        with self.db.get_session() as session, session.begin():
            existing = session.execute(
                select(PlayerRow).where(
                    PlayerRow.name_key == player.name_key, PlayerRow.category == player.category.value
                )
            ).scalar_one_or_none()
            if existing is not None:
                session.delete(existing)
                session.flush()
            session.add(_player_row(player))

    def delete_player(self, name: str, category: Category) -> bool:
        with self.db.get_session() as session, session.begin():
            existing = session.execute(
                select(PlayerRow).where(
                    PlayerRow.name_key == normalize_name(name),
                    PlayerRow.category == normalize_category(category).value,
                )
            ).scalar_one_or_none()
            if existing is None:
                return False
            session.delete(existing)
            return True

    def _players(self, stmt) -> list[Player]:
        with self.db.get_session() as session:
            return sort_players(_player(row) for row in session.execute(stmt).scalars().unique())

    def get_player(self, name: str, category: Category) -> Optional[Player]:
        stmt = select(PlayerRow).where(
            PlayerRow.name_key == normalize_name(name), PlayerRow.category == normalize_category(category).value
        )
        found = self._players(stmt)
        return found[0] if found else None

    def get_player_by_slug(self, slug: str, category: Optional[Category] = None) -> Optional[Player]:
        stmt = select(PlayerRow).where(PlayerRow.slug == slug)
        if category is not None:
            stmt = stmt.where(PlayerRow.category == normalize_category(category).value)
        found = self._players(stmt)
        return found[0] if found else None

    def players_by_category(self, category: Category) -> list[Player]:
        return self._players(select(PlayerRow).where(PlayerRow.category == normalize_category(category).value))

    def players_by_team(self, team: str, category: Optional[Category] = None) -> list[Player]:
        stmt = select(PlayerRow).where(PlayerRow.team_key == (team or "").casefold())
        if category is not None:
            stmt = stmt.where(PlayerRow.category == normalize_category(category).value)
        return self._players(stmt)

    def players_by_position(self, position: str, category: Optional[Category] = None) -> list[Player]:
        pos = normalize_position(position)
        if not pos:
            return []
        stmt = select(PlayerRow).join(PlayerPositionRow).where(PlayerPositionRow.position == pos)
        if category is not None:
            stmt = stmt.where(PlayerRow.category == normalize_category(category).value)
        return self._players(stmt)

    def search_players(self, query: str, category: Optional[Category] = None, limit: int = 25) -> list[Player]:
        needle = normalize_name(query)
        if not needle:
            return []
        stmt = select(PlayerRow).where(PlayerRow.name_key.contains(needle, autoescape=True))
        if category is not None:
            stmt = stmt.where(PlayerRow.category == normalize_category(category).value)
        return self._players(stmt)[:limit]

    def all_players(self) -> list[Player]:
        return self._players(select(PlayerRow))

    def teams(self, category: Optional[Category] = None) -> list[Team]:
        stmt = select(TeamRow)
        if category is not None:
            stmt = stmt.where(TeamRow.category == normalize_category(category).value)
        with self.db.get_session() as session:
            rows = session.execute(stmt).scalars().all()
            out = [Team(name=r.name, category=r.category, url=r.url, logo=r.logo) for r in rows]
        return sorted(out, key=lambda t: (t.category.value, t.name))

    # --- request logs ---

    def append_request_log(self, log: RequestLog) -> RequestLog:
        with self.db.get_session() as session, session.begin():
            row = RequestLogRow(
                timestamp=_to_db(log.timestamp),
                caller=log.caller,
                endpoint=log.endpoint,
                method=log.method,
                status_code=log.status_code,
                outcome=log.outcome,
                response_time_ms=log.response_time_ms,
            )
            session.add(row)
            session.flush()
            return log.model_copy(update={"id": row.id})

    def request_logs_between(self, start: datetime, end: datetime) -> list[RequestLog]:
        stmt = (
            select(RequestLogRow)
            .where(RequestLogRow.timestamp >= _to_db(start), RequestLogRow.timestamp < _to_db(end))
            .order_by(RequestLogRow.timestamp, RequestLogRow.id)
        )
        with self.db.get_session() as session:
            return [_request_log(r) for r in session.execute(stmt).scalars()]

    def request_logs_for_caller(self, caller: str, limit: int = 20) -> list[RequestLog]:
        stmt = (
            select(RequestLogRow)
            .where(RequestLogRow.caller == caller)
            .order_by(RequestLogRow.timestamp.desc(), RequestLogRow.id.desc())
            .limit(limit)
        )
        with self.db.get_session() as session:
            return [_request_log(r) for r in session.execute(stmt).scalars()]

    def delete_request_logs_before(self, cutoff: datetime) -> int:
        with self.db.get_session() as session, session.begin():
            result = session.execute(delete(RequestLogRow).where(RequestLogRow.timestamp < _to_db(cutoff)))
            return result.rowcount or 0

    # --- rate limit windows ---

    def increment_rate_window(self, caller: str, bucket: int) -> int:
        stmt = (
            self._insert(RateLimitWindowRow)
            .values(caller=caller, bucket=bucket, count=1)
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["caller", "bucket"],
            set_={"count": RateLimitWindowRow.count + 1},
        ).returning(RateLimitWindowRow.count)
        with self.db.get_session() as session, session.begin():
            return session.execute(stmt).scalar_one()

    def get_rate_window(self, caller: str, bucket: int) -> Optional[RateLimitWindow]:
        with self.db.get_session() as session:
            row = session.get(RateLimitWindowRow, (caller, bucket))
            if row is None:
                return None
            return RateLimitWindow(caller=row.caller, bucket=row.bucket, count=row.count)

    def delete_rate_windows_before(self, bucket: int) -> int:
        with self.db.get_session() as session, session.begin():
            result = session.execute(delete(RateLimitWindowRow).where(RateLimitWindowRow.bucket < bucket))
            return result.rowcount or 0

    # --- api keys / jobs ---

    def save_api_key(self, api_key: ApiKey) -> None:
        with self.db.get_session() as session, session.begin():
            session.merge(
                ApiKeyRow(
                    key=api_key.key,
                    name=api_key.name,
                    email=api_key.email,
                    rate_limit=api_key.rate_limit,
                    is_active=api_key.is_active,
                    request_count=api_key.request_count,
                    last_request=_to_db(api_key.last_request),
                    created_at=_to_db(api_key.created_at),
                )
            )

    def get_api_key(self, key: str) -> Optional[ApiKey]:
        with self.db.get_session() as session:
            row = session.get(ApiKeyRow, key)
            return _api_key(row) if row is not None else None

    def touch_api_key(self, key: str, when: datetime) -> None:
        with self.db.get_session() as session, session.begin():
            session.execute(
                update(ApiKeyRow)
                .where(ApiKeyRow.key == key)
                .values(request_count=ApiKeyRow.request_count + 1, last_request=_to_db(when))
            )

    def save_scrape_job(self, job: ScrapeJob) -> None:
        values = dict(
            category=job.category.value,
            status=job.status.value,
            teams_scraped=job.teams_scraped,
            players_scraped=job.players_scraped,
            partial_records=job.partial_records,
            players_added=job.players_added,
            players_updated=job.players_updated,
            players_removed=job.players_removed,
            errors=list(job.errors),
            started_at=_to_db(job.started_at),
            finished_at=_to_db(job.finished_at),
        )
        with self.db.get_session() as session, session.begin():
            # update in place so the row keeps its insertion id
            result = session.execute(update(ScrapeJobRow).where(ScrapeJobRow.job_id == job.job_id).values(**values))
            if not result.rowcount:
                session.add(ScrapeJobRow(job_id=job.job_id, **values))

    def get_scrape_job(self, job_id: str) -> Optional[ScrapeJob]:
        with self.db.get_session() as session:
            row = session.execute(select(ScrapeJobRow).where(ScrapeJobRow.job_id == job_id)).scalar_one_or_none()
            return _scrape_job(row) if row is not None else None

    def recent_scrape_jobs(self, limit: int = 20) -> list[ScrapeJob]:
        stmt = select(ScrapeJobRow).order_by(ScrapeJobRow.started_at.desc(), ScrapeJobRow.id.desc()).limit(limit)
        with self.db.get_session() as session:
            return [_scrape_job(r) for r in session.execute(stmt).scalars()]

    def health_check(self) -> bool:
        return self.db.health_check()

    def close(self) -> None:
        self.db.close()
