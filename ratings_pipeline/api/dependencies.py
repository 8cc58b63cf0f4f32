"""
API Dependencies
Dependency Injection für FastAPI
"""

import secrets
from typing import Optional

from fastapi import Header, Request

from ratings_pipeline.common.constants import Category, normalize_category
from ratings_pipeline.core.config import Settings
from ratings_pipeline.database.store import Store
from ratings_pipeline.domain.models import ApiKey

from .errors import AuthenticationFailed, Forbidden, InvalidRequest
from .security import FixedWindowRateLimiter


def get_store(request: Request) -> Store:
    """Dependency für den Store (geteilt über App-Lebenszyklus)"""
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.rate_limiter


def get_api_key(request: Request) -> ApiKey:
    """Vom Gateway authentifizierter Key des aktuellen Requests"""
    api_key = getattr(request.state, "api_key", None)
    if api_key is None:
        raise AuthenticationFailed()
    return api_key


def require_admin(
    request: Request,
    x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
) -> None:
    """Admin-Endpoints: X-Admin-Key muss dem konfigurierten admin_api_key entsprechen"""
    expected = request.app.state.settings.admin_api_key
    if not expected:
        raise Forbidden("Admin API is disabled (no admin key configured)")
    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise AuthenticationFailed("Invalid admin key")


def parse_category(value: Optional[str]) -> Optional[Category]:
    """Query-/Path-Parameter -> Category (Aliase erlaubt)"""
    if value is None or value == "":
        return None
    try:
        return normalize_category(value)
    except ValueError as e:
        raise InvalidRequest(str(e)) from None
