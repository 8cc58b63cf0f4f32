from datetime import timedelta

import pytest

from ratings_pipeline.api.errors import AuthenticationFailed, error_body, kind_for_status
from ratings_pipeline.api.security import (
    API_KEY_PREFIX,
    ApiKeyAuthenticator,
    FixedWindowRateLimiter,
    generate_api_key,
)
from ratings_pipeline.domain.models import ApiKey


def test_generate_api_key():
    first, second = generate_api_key(), generate_api_key()

    assert first.startswith(API_KEY_PREFIX)
    assert len(first) == len(API_KEY_PREFIX) + 32
    assert first != second


def test_authenticator(memory_store, test_settings):
    memory_store.save_api_key(ApiKey(key="2k_live", name="Live", rate_limit=10))
    memory_store.save_api_key(ApiKey(key="2k_dead", name="Dead", is_active=False))
    settings = test_settings.model_copy(update={"api_keys": ["bootstrap"]})
    auth = ApiKeyAuthenticator(memory_store, settings)

    assert auth.authenticate("2k_live").rate_limit == 10
    assert auth.authenticate("bootstrap").name == "configured"
    for key, message in [(None, "API key required"), ("2k_nope", "Invalid API key"), ("2k_dead", "deactivated")]:
        with pytest.raises(AuthenticationFailed) as exc:
            auth.authenticate(key)
        assert message in exc.value.message


def test_fixed_window_allows_limit_then_rejects(memory_store, fixed_now):
    limiter = FixedWindowRateLimiter(memory_store, window_seconds=60)

    decisions = [limiter.hit("k1", 5, fixed_now) for _ in range(6)]

    assert [d.allowed for d in decisions] == [True] * 5 + [False]
    assert [d.remaining for d in decisions] == [4, 3, 2, 1, 0, 0]
    bucket = int(fixed_now.timestamp() // 60)
    assert decisions[-1].reset_at == (bucket + 1) * 60
    assert decisions[0].headers() == {
        "X-RateLimit-Limit": "5",
        "X-RateLimit-Remaining": "4",
        "X-RateLimit-Reset": str((bucket + 1) * 60),
    }


def test_fixed_window_resets_in_next_window(memory_store, fixed_now):
    limiter = FixedWindowRateLimiter(memory_store, window_seconds=60)
    for _ in range(5):
        limiter.hit("k1", 5, fixed_now)

    assert limiter.peek("k1", 5, fixed_now).remaining == 0
    assert limiter.hit("k1", 5, fixed_now + timedelta(seconds=60)).allowed
    # other callers have their own counter
    assert limiter.hit("k2", 5, fixed_now).count == 1


def test_fixed_window_rejects_bad_window(memory_store):
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(memory_store, window_seconds=0)


def test_error_kinds_and_body(fixed_now):
    assert kind_for_status(200) == "ok"
    assert kind_for_status(404) == "not_found"
    assert kind_for_status(418) == "client_error"
    assert kind_for_status(503) == "internal_error"

    body = error_body("not_found", "Player 'X' not found", fixed_now)
    assert body == {
        "success": False,
        "data": None,
        "error": {"kind": "not_found", "message": "Player 'X' not found", "timestamp": fixed_now.isoformat()},
    }
