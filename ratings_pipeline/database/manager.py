"""
Database Manager
Engine- und Session-Verwaltung mit SQLAlchemy
"""

import logging
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ratings_pipeline.core.config import Settings
from ratings_pipeline.database.schema import Base


class DatabaseManager:
    """Datenbankverwaltung mit SQLAlchemy (PostgreSQL via psycopg2, SQLite für Tests)"""

    def __init__(self, database_url: Optional[str] = None, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.database_url = database_url or self.settings.database_url
        self.engine = None
        self.SessionLocal = None
        self.logger = logging.getLogger(__name__)

    @property
    def dialect(self) -> str:
        if self.engine is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self.engine.dialect.name

    def initialize(self, create_tables: bool = True):
        """Initialisiert die SQLAlchemy Engine und SessionFactory"""
        try:
            database_url = self.database_url
            # Async-Treiber im DSN auf psycopg2 umschalten (Sync-Engine)
            if "+asyncpg" in database_url:
                database_url = database_url.replace("+asyncpg", "+psycopg2")
            if database_url.startswith("sqlite"):
                in_memory = ":memory:" in database_url or database_url.rstrip("/") == "sqlite:"
                kwargs = {
                    "connect_args": {"check_same_thread": False},
                    "poolclass": StaticPool if in_memory else QueuePool,
                }
            else:
                kwargs = {
                    "poolclass": QueuePool,
                    "pool_size": self.settings.database_pool_size,
                    "pool_pre_ping": True,
                }
            self.engine = create_engine(database_url, echo=self.settings.database_echo, **kwargs)
            if self.engine.dialect.name == "sqlite":
                event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
            self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False)
            # Leichter Verbindungscheck
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            if create_tables:
                self.create_tables()
            self.logger.info(f"Database engine initialized ({self.engine.dialect.name})")
        except Exception as e:
            self.logger.error(f"Failed to initialize database: {e}")
            # Engine/SessionLocal auf None setzen, damit Aufrufer damit umgehen können
            self.engine = None
            self.SessionLocal = None
            raise

    def create_tables(self):
        """Legt alle Tabellen an (idempotent)"""
        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        """Gibt eine neue SQLAlchemy Session zurück"""
        if not self.SessionLocal:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self.SessionLocal()

    def health_check(self) -> bool:
        if self.engine is None:
            return False
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            self.logger.warning(f"Database health check failed: {e}")
            return False

    def close(self):
        """Schließt alle Datenbankverbindungen"""
        if self.engine:
            self.engine.dispose()
            self.engine = None
            self.SessionLocal = None
            self.logger.info("Database connections closed")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
