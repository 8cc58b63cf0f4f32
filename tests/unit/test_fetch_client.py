from contextlib import asynccontextmanager

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ratings_pipeline.data_collection.scrapers import base
from ratings_pipeline.data_collection.scrapers.base import (
    FetchBlocked,
    FetchNetworkError,
    FetchTimeout,
    PlaywrightFetchClient,
    RetryPolicy,
    ScrapingConfig,
)

URL = "https://www.2kratings.com/lebron-james"


class RecordingMetrics:
    def __init__(self):
        self.fetches = []

    def record_page_fetch(self, page_type, status, duration):
        self.fetches.append((page_type, status))


def test_retry_policy_backoff_is_capped():
    policy = RetryPolicy(attempts=5, base_delay=1.0, factor=2.0, max_delay=8.0, jitter=0)

    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [2.0, 4.0, 8.0, 8.0]


def test_retry_policy_jitter_bounds():
    policy = RetryPolicy(base_delay=1.0, jitter=0.5)

    for _ in range(20):
        assert 2.0 <= policy.delay_for(1) <= 2.5


def test_retry_policy_from_config():
    config = ScrapingConfig(max_retries=4, retry_base_delay=0.5, retry_max_delay=3.0, retry_jitter=0.1)

    policy = RetryPolicy.from_config(config)

    assert (policy.attempts, policy.base_delay, policy.max_delay, policy.jitter) == (4, 0.5, 3.0, 0.1)


@pytest.mark.asyncio
async def test_fetch_retries_until_success(fetch_client_factory):
    client = fetch_client_factory({URL: [FetchTimeout(URL), FetchBlocked(URL), "<html>ok</html>"]})
    client.metrics = RecordingMetrics()

    html = await client.fetch(URL, page_type="player_detail")

    assert html == "<html>ok</html>"
    assert len(client.calls) == 3
    # backoff between attempts only, jitter disabled
    assert client.sleeps == [2.0, 4.0]
    assert client.metrics.fetches == [
        ("player_detail", "timeout"),
        ("player_detail", "blocked"),
        ("player_detail", "success"),
    ]


@pytest.mark.asyncio
async def test_fetch_raises_last_error_when_exhausted(fetch_client_factory):
    client = fetch_client_factory({URL: [FetchTimeout(URL), FetchBlocked(URL, "HTTP 403")]}, attempts=3)

    with pytest.raises(FetchBlocked) as exc:
        await client.fetch(URL)

    assert exc.value.url == URL
    assert exc.value.kind == "blocked"
    assert len(client.calls) == 3
    assert len(client.sleeps) == 2


@pytest.mark.asyncio
async def test_fetch_client_context_manager(fetch_client_factory):
    client = fetch_client_factory({})

    async with client as c:
        assert c.started

    assert client.closed


# -------------------- PlaywrightFetchClient -------------------- #


class DummyResponse:
    def __init__(self, status):
        self.status = status


class DummyPage:
    def __init__(self, *, html="<html><body><li class='mb-1'>ok</li></body></html>", title="LeBron James",
                 status=200, goto_error=None):
        self._html = html
        self._title = title
        self._status = status
        self._goto_error = goto_error
        self.wait_for_selector_calls = []
        self.closed = False

    async def goto(self, url, wait_until="domcontentloaded", timeout=0):  # noqa: ARG002
        if self._goto_error:
            raise self._goto_error
        return DummyResponse(self._status)

    async def title(self):
        return self._title

    async def wait_for_timeout(self, ms):  # noqa: ARG002
        return None

    async def wait_for_selector(self, selector, timeout=0):  # noqa: ARG002
        self.wait_for_selector_calls.append(selector)

    async def wait_for_load_state(self, state, timeout=0):  # noqa: ARG002
        return None

    async def content(self):
        return self._html

    async def close(self):
        self.closed = True


class DummyContext:
    def __init__(self, page):
        self.page = page
        self.exited = False

    async def new_page(self):
        return self.page


def _patch_browser(monkeypatch, page):
    ctx = DummyContext(page)

    @asynccontextmanager
    async def fake_session(opts):  # noqa: ARG001
        try:
            yield ctx
        finally:
            ctx.exited = True

    monkeypatch.setattr(base, "browser_session", fake_session)
    return ctx


def _client():
    config = ScrapingConfig(challenge_wait_s=0, timeout_ms=1000)
    return PlaywrightFetchClient(config, retry=RetryPolicy(attempts=1, jitter=0))


@pytest.mark.asyncio
async def test_playwright_client_returns_rendered_html(monkeypatch):
    page = DummyPage()
    ctx = _patch_browser(monkeypatch, page)
    client = _client()

    async with client:
        html = await client.fetch(URL, wait_selectors=["li.mb-1 .attribute-box"])

    assert "mb-1" in html
    assert page.wait_for_selector_calls == ["li.mb-1 .attribute-box"]
    assert page.closed
    assert ctx.exited


@pytest.mark.asyncio
async def test_playwright_client_detects_challenge(monkeypatch, challenge_html):
    _patch_browser(monkeypatch, DummyPage(html=challenge_html, title="Just a moment..."))

    with pytest.raises(FetchBlocked):
        await _client().fetch(URL)


@pytest.mark.asyncio
@pytest.mark.parametrize("status,error", [(429, FetchBlocked), (403, FetchBlocked), (500, FetchNetworkError)])
async def test_playwright_client_maps_http_status(monkeypatch, status, error):
    _patch_browser(monkeypatch, DummyPage(status=status))

    with pytest.raises(error):
        await _client().fetch(URL)


@pytest.mark.asyncio
async def test_playwright_client_maps_timeout(monkeypatch):
    page = DummyPage(goto_error=PlaywrightTimeoutError("Timeout 1000ms exceeded"))
    _patch_browser(monkeypatch, page)

    with pytest.raises(FetchTimeout):
        await _client().fetch(URL)

    assert page.closed
