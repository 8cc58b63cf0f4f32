from __future__ import annotations

# Shared async Playwright helpers used by the fetch client

import asyncio
import contextlib
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Sequence

from playwright.async_api import BrowserContext, Page, async_playwright

DEFAULT_UAS: list[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
]

# Markers of Cloudflare style interstitials ("checking your browser")
CHALLENGE_MARKERS: tuple[str, ...] = (
    "just a moment...",
    "checking your browser",
    "cf-browser-verification",
    "cf_chl_opt",
    "attention required! | cloudflare",
    "verify you are human",
)


@dataclass
class FetchOptions:
    wait_until: str = "domcontentloaded"
    wait_selectors: Sequence[str] | None = None
    network_idle: bool = True
    timeout_ms: int = 30000
    challenge_wait_s: float = 15.0
    headless: bool = False
    user_agent: str | None = None
    locale: str | None = "en-US"
    viewport: dict[str, int] | None = None
    extra_headers: dict[str, str] | None = None


def pick_user_agent(preferred: str | None = None) -> str:
    return preferred or random.choice(DEFAULT_UAS)


def looks_like_challenge(html: str | None, title: str | None = None) -> bool:
    """True if the document is a bot-check interstitial instead of real content."""
    haystack = f"{title or ''}\n{(html or '')[:20000]}".lower()
    return any(marker in haystack for marker in CHALLENGE_MARKERS)


async def wait_for_challenge(page: Page, timeout_s: float, poll_s: float = 1.0) -> bool:
    """Give an in-page challenge time to resolve itself.

    Returns True once the page no longer looks like a challenge, False on timeout.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s
    while True:
        with contextlib.suppress(Exception):
            title = await page.title()
            if not looks_like_challenge("", title):
                return True
        if loop.time() >= deadline:
            return False
        await page.wait_for_timeout(int(poll_s * 1000))


async def apply_waits(page: Page, opts: FetchOptions) -> None:
    # selectors
    if opts.wait_selectors:
        for sel in opts.wait_selectors:
            try:
                await page.wait_for_selector(sel, timeout=5000)
            except Exception:
                continue
    if opts.network_idle:
        with contextlib.suppress(Exception):
            await page.wait_for_load_state("networkidle", timeout=opts.timeout_ms)


@asynccontextmanager
async def browser_session(opts: FetchOptions) -> AsyncIterator[BrowserContext]:
    """Async context manager yielding one browser context with standard teardown."""
    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=opts.headless,
            args=["--disable-blink-features=AutomationControlled"],
        )
        context_args: dict[str, Any] = {"user_agent": pick_user_agent(opts.user_agent)}
        if opts.locale:
            context_args["locale"] = opts.locale
        if opts.extra_headers:
            context_args["extra_http_headers"] = opts.extra_headers
        context_args["viewport"] = opts.viewport or {"width": 1366, "height": 900}
        context = await browser.new_context(**context_args)
        try:
            yield context
        finally:
            with contextlib.suppress(Exception):
                await context.close()
            with contextlib.suppress(Exception):
                await browser.close()
