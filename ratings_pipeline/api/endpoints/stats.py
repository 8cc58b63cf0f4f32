"""
Stats API Endpoints
Positions-Durchschnitte und Datensatz-Statistiken
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends

from ratings_pipeline.api.dependencies import get_settings, get_store, parse_category
from ratings_pipeline.api.errors import InvalidRequest
from ratings_pipeline.api.models import APIResponse, respond
from ratings_pipeline.common.constants import POSITIONS, Category, normalize_position
from ratings_pipeline.core.config import Settings
from ratings_pipeline.database.store import Store

router = APIRouter()


def averages_scope(category: Optional[str], settings: Settings) -> Optional[Category]:
    """``all`` (explizit oder per Setting) mittelt über alle Kategorien"""
    if category is not None and category.strip().lower() == "all":
        return None
    if category:
        return parse_category(category)
    if settings.position_averages_scope == "all":
        return None
    return parse_category(settings.position_averages_scope)


@router.get("/positions/{position}/averages", response_model=APIResponse)
def get_position_averages(
    position: str,
    category: Optional[str] = None,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Mean overall and attribute ratings of all players at a position"""
    start_time = time.time()
    pos = normalize_position(position)
    if pos is None:
        raise InvalidRequest(f"Unknown position '{position}'. Allowed: {', '.join(POSITIONS)}")
    averages = store.position_averages(pos, averages_scope(category, settings))
    return respond(averages.model_dump(mode="json"), start_time)


@router.get("/stats", response_model=APIResponse)
def get_stats(store: Store = Depends(get_store)):
    """Dataset totals"""
    start_time = time.time()
    return respond(store.stats().model_dump(mode="json"), start_time)
