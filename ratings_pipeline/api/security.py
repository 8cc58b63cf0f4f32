"""
API Security
API-Key-Authentifizierung und Fixed-Window Rate Limiting

Zähler liegen im Store (nicht im Prozess), damit mehrere API-Worker dasselbe
Limit teilen. Die Erhöhung ist atomar; pro Fenster werden höchstens ``limit``
Requests eines Callers zugelassen.
"""

import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ratings_pipeline.core.config import Settings
from ratings_pipeline.database.store import Store
from ratings_pipeline.domain.models import ApiKey

from .errors import AuthenticationFailed

API_KEY_PREFIX = "2k_"
_KEY_ALPHABET = string.ascii_letters + string.digits


def generate_api_key() -> str:
    return API_KEY_PREFIX + "".join(secrets.choice(_KEY_ALPHABET) for _ in range(32))


class ApiKeyAuthenticator:
    """Prüft X-API-Key gegen registrierte Keys und die konfigurierten Bootstrap-Keys"""

    def __init__(self, store: Store, settings: Settings):
        self.store = store
        self.settings = settings

    def authenticate(self, key: Optional[str]) -> ApiKey:
        if not key:
            raise AuthenticationFailed("API key required. Provide it in the X-API-Key header.")
        api_key = self.store.get_api_key(key)
        if api_key is None:
            if key in self.settings.api_keys:
                return ApiKey(key=key, name="configured", rate_limit=self.settings.rate_limit_requests)
            raise AuthenticationFailed("Invalid API key")
        if not api_key.is_active:
            raise AuthenticationFailed("API key has been deactivated")
        return api_key


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    count: int
    reset_at: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class FixedWindowRateLimiter:
    """Fixed-Window Limiter; Fenster = floor(epoch / window_seconds)"""

    def __init__(self, store: Store, window_seconds: int):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.store = store
        self.window_seconds = window_seconds

    def bucket_for(self, now: datetime) -> int:
        return int(now.timestamp() // self.window_seconds)

    def _decision(self, count: int, limit: int, bucket: int) -> RateDecision:
        return RateDecision(
            allowed=count <= limit,
            limit=limit,
            count=count,
            reset_at=(bucket + 1) * self.window_seconds,
        )

    def hit(self, caller: str, limit: int, now: datetime) -> RateDecision:
        """Zählt einen Request und entscheidet über Zulassung"""
        bucket = self.bucket_for(now)
        count = self.store.increment_rate_window(caller, bucket)
        return self._decision(count, limit, bucket)

    def peek(self, caller: str, limit: int, now: datetime) -> RateDecision:
        """Aktueller Stand ohne Zählung"""
        bucket = self.bucket_for(now)
        window = self.store.get_rate_window(caller, bucket)
        return self._decision(window.count if window else 0, limit, bucket)
