"""
Aggregated API router for versioned endpoints.
"""

from fastapi import APIRouter

from ratings_pipeline.api.endpoints import account, admin, players, stats, teams


api_router = APIRouter()

# Register endpoint routers here to keep create_fastapi_app clean
api_router.include_router(account.router, tags=["account"])
api_router.include_router(players.router, tags=["players"])
api_router.include_router(teams.router, tags=["teams"])
api_router.include_router(stats.router, tags=["stats"])
api_router.include_router(admin.router, tags=["admin"])
