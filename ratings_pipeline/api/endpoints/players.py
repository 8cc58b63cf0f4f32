"""
Players API Endpoints
API Routen für Spieler-bezogene Operationen
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ratings_pipeline.api.dependencies import get_store, parse_category
from ratings_pipeline.api.errors import InvalidRequest, NotFound
from ratings_pipeline.api.models import APIResponse, respond
from ratings_pipeline.database.store import Store
from ratings_pipeline.domain.models import Player

router = APIRouter()


def player_payload(player: Player, with_groups: bool = False) -> dict:
    data = player.model_dump(mode="json")
    if with_groups:
        data["attribute_groups"] = player.attribute_groups()
    return data


@router.get("/players", response_model=APIResponse)
def list_players(
    category: Optional[str] = None,
    team: Optional[str] = None,
    position: Optional[str] = None,
    min_rating: Optional[int] = Query(default=None, ge=0, le=99),
    max_rating: Optional[int] = Query(default=None, ge=0, le=99),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    store: Store = Depends(get_store),
):
    """List players, highest overall first"""
    start_time = time.time()
    if min_rating is not None and max_rating is not None and min_rating > max_rating:
        raise InvalidRequest("min_rating must not exceed max_rating")

    players = store.list_players(
        category=parse_category(category),
        team=team,
        position=position,
        min_rating=min_rating,
        max_rating=max_rating,
    )
    page = players[offset : offset + limit]
    return respond(
        [player_payload(p) for p in page],
        start_time,
        total=len(players),
        count=len(page),
        limit=limit,
        offset=offset,
    )


@router.get("/players/search", response_model=APIResponse)
def search_players(
    q: str = Query(min_length=1, max_length=100),
    category: Optional[str] = None,
    limit: int = Query(default=25, ge=1, le=100),
    store: Store = Depends(get_store),
):
    """Case-insensitive substring search on player names"""
    start_time = time.time()
    players = store.search_players(q, parse_category(category), limit=limit)
    return respond([player_payload(p) for p in players], start_time, query=q, count=len(players))


@router.get("/players/slug/{slug}", response_model=APIResponse)
def get_player_by_slug(slug: str, category: Optional[str] = None, store: Store = Depends(get_store)):
    """Get one player by URL slug (highest rated match unless a category is given)"""
    start_time = time.time()
    player = store.get_player_by_slug(slug, parse_category(category))
    if player is None:
        raise NotFound(f"Player with slug '{slug}' not found")
    return respond(player_payload(player, with_groups=True), start_time)


@router.get("/players/{category}/{name}", response_model=APIResponse)
def get_player(category: str, name: str, store: Store = Depends(get_store)):
    """Get one player by name within a category"""
    start_time = time.time()
    player = store.get_player(name, parse_category(category))
    if player is None:
        raise NotFound(f"Player '{name}' not found in category '{category}'")
    return respond(player_payload(player, with_groups=True), start_time)
