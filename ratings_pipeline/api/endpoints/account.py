"""
Account API Endpoints
Health, API-Key-Registrierung und Nutzungsübersicht
"""

import time

from fastapi import APIRouter, Depends, Request

from ratings_pipeline import __version__
from ratings_pipeline.api.dependencies import get_api_key, get_rate_limiter, get_settings, get_store
from ratings_pipeline.api.models import APIResponse, RegisterRequest, respond
from ratings_pipeline.api.security import FixedWindowRateLimiter, generate_api_key
from ratings_pipeline.core.config import Settings
from ratings_pipeline.database.store import Store
from ratings_pipeline.domain.models import ApiKey

router = APIRouter()


@router.get("/health", response_model=APIResponse)
def api_health(request: Request):
    """Public health check (logged like every /api/v1 request)"""
    start_time = time.time()
    store = getattr(request.app.state, "store", None)
    healthy = store is not None and store.health_check()
    return respond({"status": "ok" if healthy else "degraded", "version": __version__}, start_time)


@router.post("/register", response_model=APIResponse, status_code=201)
def register(
    body: RegisterRequest,
    request: Request,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Create an API key"""
    start_time = time.time()
    api_key = ApiKey(
        key=generate_api_key(),
        name=body.name.strip(),
        email=body.email,
        rate_limit=settings.rate_limit_requests,
        created_at=request.app.state.clock(),
    )
    store.save_api_key(api_key)
    return respond(
        {
            "api_key": api_key.key,
            "name": api_key.name,
            "rate_limit": api_key.rate_limit,
            "window_seconds": settings.rate_limit_window_seconds,
        },
        start_time,
    )


@router.get("/usage", response_model=APIResponse)
def usage(
    request: Request,
    api_key: ApiKey = Depends(get_api_key),
    store: Store = Depends(get_store),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    """Usage of the calling key in the current window"""
    start_time = time.time()
    decision = limiter.peek(api_key.key, api_key.rate_limit, request.app.state.clock())
    recent = store.request_logs_for_caller(api_key.key, limit=10)
    return respond(
        {
            "name": api_key.name,
            "rate_limit": decision.limit,
            "window_requests": decision.count,
            "remaining": decision.remaining,
            "reset_at": decision.reset_at,
            "total_requests": api_key.request_count,
            "last_request": api_key.last_request.isoformat() if api_key.last_request else None,
            "recent_requests": [log.model_dump(mode="json") for log in recent],
        },
        start_time,
    )
