from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from ratings_pipeline.common.parsing import slug_from_url
from ratings_pipeline.domain.contracts import DetailResult, PartialRecord, RosterEntry
from ratings_pipeline.domain.models import Player


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(ts: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps (e.g. from SQLite) are UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def player_from_crawl(entry: RosterEntry, detail: Optional[DetailResult]) -> Player:
    """Combine a roster row with its detail page result into a Player.

    Roster data (name, rating, team) is authoritative; the detail page adds
    attributes and physical data. A missing detail result yields a partial player.
    """
    positions = list(detail.positions) if detail and detail.positions else list(entry.positions)
    if detail is None:
        partial, reason = True, "details_skipped"
    elif isinstance(detail, PartialRecord):
        partial, reason = True, detail.reason
    else:
        partial, reason = False, None
    return Player(
        name=entry.name,
        category=entry.category,
        slug=slug_from_url(entry.url, entry.name),
        team=entry.team,
        overall=entry.rating,
        positions=positions,
        height=detail.height if detail else None,
        weight=detail.weight if detail else None,
        wingspan=detail.wingspan if detail else None,
        build=detail.build if detail else None,
        attributes=dict(detail.attributes) if detail else {},
        badge_count=detail.badge_count if detail else None,
        player_url=entry.url,
        player_image=detail.image if detail else None,
        team_image=entry.team_logo,
        is_partial=partial,
        partial_reason=reason,
    )
