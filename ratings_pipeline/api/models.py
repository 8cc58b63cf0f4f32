"""
API Models
Pydantic Models für API Requests und Responses
"""

import time
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ErrorInfo(BaseModel):
    kind: str
    message: str
    timestamp: datetime = Field(default_factory=_now)


class APIResponse(BaseModel):
    """Standard API Response Model"""

    success: bool
    data: Optional[Any] = None
    meta: Optional[dict[str, Any]] = None
    error: Optional[ErrorInfo] = None
    execution_time_ms: Optional[float] = None
    timestamp: datetime = Field(default_factory=_now)


def respond(data: Any, started: float, **meta: Any) -> APIResponse:
    """Erfolgs-Response mit Laufzeit; ``started`` ist ein time.time()-Wert"""
    return APIResponse(
        success=True,
        data=data,
        meta=meta or None,
        execution_time_ms=(time.time() - started) * 1000,
    )


class RegisterRequest(BaseModel):
    """Request model for API key registration"""

    name: str = Field(min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=200)
