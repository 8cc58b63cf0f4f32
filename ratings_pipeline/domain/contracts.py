from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from ratings_pipeline.common.constants import Category

# Typed data transfer objects shared between crawlers, orchestrator and reconciliation


@dataclass(frozen=True)
class TeamRef:
    name: str
    url: str
    category: Category
    logo: Optional[str] = None


@dataclass(frozen=True)
class RosterEntry:
    name: str
    rating: int
    team: str
    category: Category
    url: Optional[str] = None
    positions: tuple[str, ...] = ()
    team_logo: Optional[str] = None


@dataclass
class PlayerDetail:
    url: Optional[str]
    height: Optional[str] = None
    weight: Optional[str] = None
    wingspan: Optional[str] = None
    build: Optional[str] = None
    positions: List[str] = field(default_factory=list)
    attributes: Dict[str, int] = field(default_factory=dict)
    badge_count: Optional[int] = None
    image: Optional[str] = None


@dataclass
class PartialRecord(PlayerDetail):
    """Degraded detail result: whatever could be extracted, plus why the rest is missing."""

    reason: str = "layout_unmatched"


DetailResult = Union[PlayerDetail, PartialRecord]


@dataclass
class CategoryCrawlResult:
    category: Category
    teams: List[TeamRef] = field(default_factory=list)
    # Roster entries paired with detail results, in source page order
    entries: List[RosterEntry] = field(default_factory=list)
    details: List[Optional[DetailResult]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def partial_count(self) -> int:
        return sum(1 for d in self.details if d is None or isinstance(d, PartialRecord))
