"""
Domain models for validated ratings data using Pydantic.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import AwareDatetime, BaseModel, Field, field_validator, model_validator

from ratings_pipeline.common.constants import ATTRIBUTE_CATEGORIES, Category
from ratings_pipeline.common.parsing import normalize_name

ANONYMOUS_CALLER = "anonymous"

# Volatile fields, ignored when deciding whether a record changed between runs
TIMESTAMP_FIELDS = frozenset({"created_at", "last_updated"})


class Team(BaseModel):
    name: str
    category: Category
    url: Optional[str] = None
    logo: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.category.value)


class Player(BaseModel):
    """Canonical player record; identity is (name_key, category)."""

    name: str
    name_key: str = ""
    category: Category
    slug: str = ""
    team: Optional[str] = None
    overall: int = Field(ge=0, le=99)
    position: Optional[str] = None
    positions: list[str] = Field(default_factory=list)
    height: Optional[str] = None
    weight: Optional[str] = None
    wingspan: Optional[str] = None
    build: Optional[str] = None
    attributes: dict[str, int] = Field(default_factory=dict)
    badge_count: Optional[int] = Field(default=None, ge=0)
    player_url: Optional[str] = None
    player_image: Optional[str] = None
    team_image: Optional[str] = None
    is_partial: bool = False
    partial_reason: Optional[str] = None
    created_at: Optional[AwareDatetime] = None
    last_updated: Optional[AwareDatetime] = None

    @field_validator("attributes")
    @classmethod
    def _ratings_in_range(cls, v: dict[str, int]) -> dict[str, int]:
        for name, value in v.items():
            if not 0 <= value <= 99:
                raise ValueError(f"attribute {name}={value} outside 0-99")
        return v

    @model_validator(mode="after")
    def _derive_identity(self) -> "Player":
        self.name_key = normalize_name(self.name)
        if not self.name_key:
            raise ValueError("player name must not be empty")
        if self.position is None and self.positions:
            self.position = self.positions[0]
        return self

    @property
    def key(self) -> tuple[str, str]:
        return (self.name_key, self.category.value)

    def content(self) -> dict:
        """JSON view without timestamps (used for change detection)."""
        return self.model_dump(mode="json", exclude=set(TIMESTAMP_FIELDS))

    def attribute_groups(self) -> dict[str, dict[str, int]]:
        groups: dict[str, dict[str, int]] = {}
        for group, names in ATTRIBUTE_CATEGORIES.items():
            values = {n: self.attributes[n] for n in names if n in self.attributes}
            if values:
                groups[group] = values
        return groups


class RequestLog(BaseModel):
    id: Optional[int] = None
    timestamp: AwareDatetime
    caller: str = ANONYMOUS_CALLER
    endpoint: str
    method: str = "GET"
    status_code: int
    outcome: str = "ok"
    response_time_ms: float = 0.0


class RateLimitWindow(BaseModel):
    caller: str
    bucket: int
    count: int = 0


class ApiKey(BaseModel):
    key: str
    name: str
    email: Optional[str] = None
    rate_limit: int = Field(default=100, ge=1)
    is_active: bool = True
    request_count: int = 0
    last_request: Optional[AwareDatetime] = None
    created_at: Optional[AwareDatetime] = None


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class ScrapeJob(BaseModel):
    job_id: str
    category: Category
    status: JobStatus = JobStatus.RUNNING
    teams_scraped: int = 0
    players_scraped: int = 0
    partial_records: int = 0
    players_added: int = 0
    players_updated: int = 0
    players_removed: int = 0
    errors: list[str] = Field(default_factory=list)
    started_at: AwareDatetime
    finished_at: Optional[AwareDatetime] = None


class PositionAverages(BaseModel):
    position: str
    category: Optional[Category] = None
    player_count: int = 0
    overall: Optional[float] = None
    attributes: dict[str, float] = Field(default_factory=dict)
    attribute_counts: dict[str, int] = Field(default_factory=dict)


class TeamSummary(BaseModel):
    name: str
    category: Category
    logo: Optional[str] = None
    player_count: int = 0
    avg_rating: Optional[float] = None


class TeamStats(BaseModel):
    """Roster aggregate of one team: top player, position spread, attribute means"""

    name: str
    category: Category
    logo: Optional[str] = None
    player_count: int = 0
    avg_rating: Optional[float] = None
    top_player: Optional[dict] = None
    position_distribution: dict[str, int] = Field(default_factory=dict)
    attribute_averages: dict[str, float] = Field(default_factory=dict)
    attribute_counts: dict[str, int] = Field(default_factory=dict)


class DatasetStats(BaseModel):
    total_players: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    unique_teams: int = 0
    avg_overall: Optional[float] = None
    partial_players: int = 0
    last_updated: Optional[AwareDatetime] = None
