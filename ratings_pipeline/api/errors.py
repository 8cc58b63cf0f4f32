"""
API Errors
Fehler-Taxonomie des Gateways und einheitliche Fehler-Responses
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi.responses import JSONResponse

# HTTP status -> error kind, for responses produced outside ApiError
STATUS_KINDS: dict[int, str] = {
    400: "invalid_request",
    401: "authentication_failed",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    422: "invalid_request",
    429: "rate_limit_exceeded",
}


def kind_for_status(status_code: int) -> str:
    if status_code < 400:
        return "ok"
    return STATUS_KINDS.get(status_code, "internal_error" if status_code >= 500 else "client_error")


class ApiError(Exception):
    kind = "internal_error"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, headers: Optional[dict[str, str]] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.headers = headers or {}


class AuthenticationFailed(ApiError):
    kind = "authentication_failed"
    status_code = 401
    default_message = "A valid API key is required (X-API-Key header)"


class Forbidden(ApiError):
    kind = "forbidden"
    status_code = 403
    default_message = "Not allowed"


class RateLimitExceeded(ApiError):
    kind = "rate_limit_exceeded"
    status_code = 429
    default_message = "Rate limit exceeded"


class NotFound(ApiError):
    kind = "not_found"
    status_code = 404
    default_message = "Resource not found"


class InvalidRequest(ApiError):
    kind = "invalid_request"
    status_code = 400
    default_message = "Invalid request"


def error_body(kind: str, message: str, when: Optional[datetime] = None) -> dict:
    return {
        "success": False,
        "data": None,
        "error": {
            "kind": kind,
            "message": message,
            "timestamp": (when or datetime.now(timezone.utc)).isoformat(),
        },
    }


def error_response(
    kind: str,
    message: str,
    status_code: int,
    headers: Optional[dict[str, str]] = None,
    when: Optional[datetime] = None,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(kind, message, when), headers=headers)


def api_error_response(exc: ApiError, when: Optional[datetime] = None) -> JSONResponse:
    return error_response(exc.kind, exc.message, exc.status_code, exc.headers, when)
