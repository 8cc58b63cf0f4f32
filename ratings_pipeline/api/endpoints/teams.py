"""
Teams API Endpoints
API Routen für Team-bezogene Operationen
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends

from ratings_pipeline.api.dependencies import get_store, parse_category
from ratings_pipeline.api.endpoints.players import player_payload
from ratings_pipeline.api.errors import NotFound
from ratings_pipeline.api.models import APIResponse, respond
from ratings_pipeline.common.constants import Category
from ratings_pipeline.database.store import Store

router = APIRouter()


@router.get("/teams", response_model=APIResponse)
def list_teams(category: Optional[str] = None, store: Store = Depends(get_store)):
    """Teams with player count and average rating"""
    start_time = time.time()
    summaries = store.team_summaries(parse_category(category))
    return respond([s.model_dump(mode="json") for s in summaries], start_time, count=len(summaries))


@router.get("/teams/{team}/players", response_model=APIResponse)
def get_team_players(team: str, category: Optional[str] = None, store: Store = Depends(get_store)):
    """Roster of a team, highest overall first"""
    start_time = time.time()
    players = store.list_players(category=parse_category(category), team=team)
    if not players:
        raise NotFound(f"No players found for team '{team}'")
    return respond([player_payload(p) for p in players], start_time, team=team, count=len(players))


@router.get("/teams/{team}/stats", response_model=APIResponse)
def get_team_stats(team: str, category: Optional[str] = None, store: Store = Depends(get_store)):
    """Top player, position distribution and attribute averages of a team (default: current)"""
    start_time = time.time()
    stats = store.team_stats(team, parse_category(category) or Category.CURRENT)
    if stats is None:
        raise NotFound(f"No players found for team '{team}'")
    return respond(stats.model_dump(mode="json"), start_time)
