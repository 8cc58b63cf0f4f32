"""
Database Module
Store-Abstraktion, SQLAlchemy Schema und Database Manager
"""

from typing import Optional

from ratings_pipeline.core.config import Settings

from .manager import DatabaseManager
from .sql_store import SqlStore
from .store import MemoryStore, Store


def create_store(settings: Settings, database_url: Optional[str] = None) -> Store:
    """Erzeugt das konfigurierte Store-Backend (``sql`` oder ``memory``)"""
    if settings.store_backend == "memory":
        return MemoryStore()
    db = DatabaseManager(database_url=database_url, settings=settings)
    db.initialize()
    return SqlStore(db)


__all__ = [
    "DatabaseManager",
    "MemoryStore",
    "SqlStore",
    "Store",
    "create_store",
]
