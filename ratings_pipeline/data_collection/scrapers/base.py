"""
Base classes and utilities for fetching source pages.

FetchClient is the only component that talks to the network. It retries every
failure with exponential backoff; callers only ever see the last error once the
attempts are exhausted.
"""

import asyncio
import contextlib
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ratings_pipeline.common.playwright_utils import (
    FetchOptions,
    apply_waits,
    browser_session,
    looks_like_challenge,
    wait_for_challenge,
)
from ratings_pipeline.core.config import Settings

# =============================================================================
# 1. SCRAPING CONFIGURATION
# =============================================================================


@dataclass
class ScrapingConfig:
    """Konfiguration für das Crawling"""

    base_url: str = "https://www.2kratings.com"
    concurrency: int = 3
    politeness_delay: float = 1.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0
    retry_jitter: float = 0.5
    timeout_ms: int = 30000
    challenge_wait_s: float = 15.0
    headless: bool = False
    user_agent: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScrapingConfig":
        return cls(
            base_url=settings.source_base_url,
            concurrency=max(1, settings.scraping_concurrency),
            politeness_delay=settings.scraping_politeness_delay_seconds,
            max_retries=max(1, settings.scraping_max_retries),
            retry_base_delay=settings.scraping_retry_base_delay_seconds,
            retry_max_delay=settings.scraping_retry_max_delay_seconds,
            retry_jitter=settings.scraping_retry_jitter_seconds,
            timeout_ms=settings.scraping_timeout_ms,
            challenge_wait_s=settings.scraping_challenge_wait_seconds,
            headless=settings.scraping_headless,
            user_agent=settings.scraping_user_agent,
        )


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 8.0
    jitter: float = 0.5

    def delay_for(self, attempt: int) -> float:
        """Wartezeit nach dem n-ten Fehlversuch (2x, 4x, 8x base_delay, gedeckelt)"""
        delay = min(self.base_delay * (self.factor ** attempt), self.max_delay)
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    @classmethod
    def from_config(cls, config: ScrapingConfig) -> "RetryPolicy":
        return cls(
            attempts=config.max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            jitter=config.retry_jitter,
        )


# =============================================================================
# 2. FETCH ERRORS
# =============================================================================


class FetchError(RuntimeError):
    kind = "fetch_error"

    def __init__(self, url: str, message: str = ""):
        super().__init__(f"{self.kind}: {url} {message}".strip())
        self.url = url


class FetchBlocked(FetchError):
    kind = "blocked"


class FetchTimeout(FetchError):
    kind = "timeout"


class FetchNetworkError(FetchError):
    kind = "network_error"


# =============================================================================
# 3. FETCH CLIENTS
# =============================================================================


class FetchClient(ABC):
    """Abstrakte Basisklasse: URL rein, gerendertes HTML raus"""

    def __init__(
        self,
        retry: Optional[RetryPolicy] = None,
        metrics=None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.retry = retry or RetryPolicy()
        self.metrics = metrics
        self._sleep = sleep
        self.logger = logging.getLogger(f"fetch.{self.__class__.__name__}")

    @abstractmethod
    async def _fetch_once(self, url: str, wait_selectors: Optional[Sequence[str]] = None) -> str:
        """Ein einzelner Versuch; wirft FetchError"""

    async def fetch(self, url: str, *, wait_selectors: Optional[Sequence[str]] = None, page_type: str = "page") -> str:
        """Lädt eine Seite mit Retry und exponentiellem Backoff"""
        last_err: Optional[FetchError] = None
        for attempt in range(1, self.retry.attempts + 1):
            start = time.perf_counter()
            try:
                html = await self._fetch_once(url, wait_selectors)
                self._record(page_type, "success", time.perf_counter() - start)
                return html
            except FetchError as e:
                last_err = e
                self._record(page_type, e.kind, time.perf_counter() - start)
                self.logger.warning(f"Attempt {attempt}/{self.retry.attempts} failed for {url}: {e}")
            if attempt < self.retry.attempts:
                await self._sleep(self.retry.delay_for(attempt))
        assert last_err is not None
        self.logger.error(f"Giving up on {url} after {self.retry.attempts} attempts ({last_err.kind})")
        raise last_err

    def _record(self, page_type: str, status: str, duration: float) -> None:
        if self.metrics:
            self.metrics.record_page_fetch(page_type, status, duration)

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class PlaywrightFetchClient(FetchClient):
    """FetchClient mit echtem Chromium (Playwright); ein Browser-Kontext für den ganzen Lauf"""

    def __init__(self, config: ScrapingConfig, retry: Optional[RetryPolicy] = None, metrics=None):
        super().__init__(retry or RetryPolicy.from_config(config), metrics)
        self.config = config
        self.options = FetchOptions(
            timeout_ms=config.timeout_ms,
            challenge_wait_s=config.challenge_wait_s,
            headless=config.headless,
            user_agent=config.user_agent,
        )
        self._stack: Optional[contextlib.AsyncExitStack] = None
        self._context = None

    async def start(self) -> None:
        """Startet Browser und Kontext"""
        if self._context is not None:
            return
        self._stack = contextlib.AsyncExitStack()
        self._context = await self._stack.enter_async_context(browser_session(self.options))
        self.logger.info(f"Browser started (headless={self.options.headless})")

    async def close(self) -> None:
        """Schließt Browser-Ressourcen"""
        if self._stack is not None:
            await self._stack.aclose()
        self._stack = None
        self._context = None

    async def _fetch_once(self, url: str, wait_selectors: Optional[Sequence[str]] = None) -> str:
        await self.start()
        opts = replace(self.options, wait_selectors=wait_selectors)
        page = await self._context.new_page()
        try:
            response = await page.goto(url, wait_until=opts.wait_until, timeout=opts.timeout_ms)
            if not await wait_for_challenge(page, opts.challenge_wait_s):
                raise FetchBlocked(url, "bot challenge not passed")
            await apply_waits(page, opts)
            html = await page.content()
        except PlaywrightTimeoutError as e:
            raise FetchTimeout(url, str(e)) from e
        except PlaywrightError as e:
            raise FetchNetworkError(url, str(e)) from e
        finally:
            with contextlib.suppress(Exception):
                await page.close()
        if looks_like_challenge(html):
            raise FetchBlocked(url, "challenge page returned")
        status = response.status if response is not None else 200
        if status in (403, 429):
            raise FetchBlocked(url, f"HTTP {status}")
        if status >= 400:
            raise FetchNetworkError(url, f"HTTP {status}")
        return html
