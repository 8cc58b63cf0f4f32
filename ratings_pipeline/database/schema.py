"""
Database Schema
SQLAlchemy Models für die Ratings-Datenbank
"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class PlayerRow(Base):
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name_key = Column(String(200), nullable=False)
    category = Column(String(16), nullable=False)
    name = Column(String(200), nullable=False)
    slug = Column(String(200))
    team = Column(String(200))
    team_key = Column(String(200))
    overall = Column(Integer, nullable=False)
    position = Column(String(4))
    height = Column(String(16))
    weight = Column(String(16))
    wingspan = Column(String(16))
    build = Column(String(100))
    attributes = Column(JSON, nullable=False, default=dict)
    badge_count = Column(Integer)
    player_url = Column(Text)
    player_image = Column(Text)
    team_image = Column(Text)
    is_partial = Column(Boolean, nullable=False, default=False)
    partial_reason = Column(String(50))
    created_at = Column(DateTime)
    last_updated = Column(DateTime)

    # Relationships
    positions = relationship(
        "PlayerPositionRow",
        cascade="all, delete-orphan",
        order_by="PlayerPositionRow.ordinal",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("name_key", "category", name="uq_players_identity"),
        Index("ix_players_category", "category"),
        Index("ix_players_team_key", "team_key"),
        Index("ix_players_overall", "overall"),
        Index("ix_players_slug", "slug"),
    )


class PlayerPositionRow(Base):
    __tablename__ = "player_positions"

    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), primary_key=True)
    position = Column(String(4), primary_key=True)
    ordinal = Column(Integer, nullable=False, default=0)

    __table_args__ = (Index("ix_player_positions_position", "position"),)


class TeamRow(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    category = Column(String(16), nullable=False)
    url = Column(Text)
    logo = Column(Text)

    __table_args__ = (
        UniqueConstraint("name", "category", name="uq_teams_identity"),
        Index("ix_teams_category", "category"),
    )


class RequestLogRow(Base):
    __tablename__ = "request_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False)
    caller = Column(String(100), nullable=False)
    endpoint = Column(String(300), nullable=False)
    method = Column(String(10), nullable=False, default="GET")
    status_code = Column(Integer, nullable=False)
    outcome = Column(String(50), nullable=False, default="ok")
    response_time_ms = Column(Float, nullable=False, default=0.0)

    __table_args__ = (
        Index("ix_request_logs_timestamp", "timestamp"),
        Index("ix_request_logs_caller", "caller"),
    )


class RateLimitWindowRow(Base):
    __tablename__ = "rate_limit_windows"

    caller = Column(String(100), primary_key=True)
    bucket = Column(BigInteger, primary_key=True)
    count = Column(Integer, nullable=False, default=0)

    __table_args__ = (Index("ix_rate_limit_windows_bucket", "bucket"),)


class ApiKeyRow(Base):
    __tablename__ = "api_keys"

    key = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200))
    rate_limit = Column(Integer, nullable=False, default=100)
    is_active = Column(Boolean, nullable=False, default=True)
    request_count = Column(Integer, nullable=False, default=0)
    last_request = Column(DateTime)
    created_at = Column(DateTime)


class ScrapeJobRow(Base):
    __tablename__ = "scrape_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(64), nullable=False, unique=True)
    category = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False)
    teams_scraped = Column(Integer, nullable=False, default=0)
    players_scraped = Column(Integer, nullable=False, default=0)
    partial_records = Column(Integer, nullable=False, default=0)
    players_added = Column(Integer, nullable=False, default=0)
    players_updated = Column(Integer, nullable=False, default=0)
    players_removed = Column(Integer, nullable=False, default=0)
    errors = Column(JSON, nullable=False, default=list)
    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime)

    __table_args__ = (Index("ix_scrape_jobs_started_at", "started_at", "id"),)
