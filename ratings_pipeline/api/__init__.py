"""
API Module
FastAPI Anwendung, Endpoints und Models
"""

from .dependencies import get_settings, get_store
from .errors import ApiError, AuthenticationFailed, InvalidRequest, NotFound, RateLimitExceeded
from .main import create_fastapi_app
from .models import APIResponse, RegisterRequest

__all__ = [
    "create_fastapi_app",
    "APIResponse",
    "RegisterRequest",
    "ApiError",
    "AuthenticationFailed",
    "InvalidRequest",
    "NotFound",
    "RateLimitExceeded",
    "get_store",
    "get_settings",
]
