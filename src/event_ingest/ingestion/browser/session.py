"""
event_ingest.ingestion.browser.session

Scoped browser sessions for sources that render client-side.

A BrowserDriver hands out a BrowserSession through an async context
manager; the session (page, context, browser, playwright) is closed on
every exit path.

Notes:
- Playwright is imported when the first session opens, so importing this
  module does not require browser binaries.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

TIMEZONES: tuple[str, ...] = ("Australia/Melbourne", "Australia/Sydney", "Australia/Brisbane")

BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})

LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1920,1080",
)

STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });
Object.defineProperty(navigator, 'languages', { get: () => ['en-AU', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
if (!window.chrome) { window.chrome = { runtime: {} }; }
"""


@dataclass
class BrowserSessionOptions:
    """Fingerprint and timeout settings for a browser session."""

    headless: bool = True
    viewport: dict[str, int] = field(default_factory=lambda: {"width": 1920, "height": 1080})
    locale: str = "en-AU"
    accept_language: str = "en-AU,en;q=0.9"
    user_agent: str | None = None  # random from USER_AGENTS when None
    timezone_id: str | None = None  # random from TIMEZONES when None
    nav_timeout_ms: int = 30_000
    block_resources: bool = True
    seed: int | None = None

    def pick_fingerprint(self) -> tuple[str, str]:
        """Return (user_agent, timezone_id), filling unset values at random."""
        rnd = random.Random(self.seed)
        user_agent = self.user_agent or rnd.choice(USER_AGENTS)
        timezone_id = self.timezone_id or rnd.choice(TIMEZONES)
        return user_agent, timezone_id

    def context_kwargs(self) -> dict[str, Any]:
        user_agent, timezone_id = self.pick_fingerprint()
        return {
            "viewport": dict(self.viewport),
            "user_agent": user_agent,
            "locale": self.locale,
            "timezone_id": timezone_id,
            "extra_http_headers": {"Accept-Language": self.accept_language},
        }


class BrowserSession:
    """
    Handle to one open page.

    Wraps the handful of page operations the adapters need so tests can
    substitute a fake page object.
    """

    def __init__(
        self,
        page: Any,
        on_close: Callable[[], Awaitable[None]] | None = None,
        nav_timeout_ms: int = 30_000,
    ):
        self.page = page
        self._on_close = on_close
        self.nav_timeout_ms = nav_timeout_ms
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def goto(self, url: str, wait_until: str = "networkidle") -> str:
        """Navigate and return the rendered HTML."""
        await self.page.goto(url, wait_until=wait_until, timeout=self.nav_timeout_ms)
        return await self.page.content()

    async def content(self) -> str:
        return await self.page.content()

    async def has_selector(self, selector: str) -> bool:
        return await self.page.query_selector(selector) is not None

    async def wait_for_selector(self, selector: str, timeout_ms: int = 10_000) -> bool:
        """Wait for a selector; False on timeout instead of raising."""
        try:
            await self.page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except Exception as e:
            logger.debug(f"Selector {selector!r} not found: {type(e).__name__}")
            return False

    async def hrefs(self, selector: str) -> list[str]:
        """Absolute hrefs of all anchors matching a selector."""
        return await self.page.eval_on_selector_all(selector, "els => els.map(a => a.href)")

    async def scroll_viewport(self, fraction: float = 0.8) -> None:
        await self.page.evaluate(
            "f => window.scrollBy({ top: window.innerHeight * f, behavior: 'smooth' })",
            fraction,
        )

    async def close(self) -> None:
        """Release the page and everything behind it. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            await self._on_close()


class BrowserDriver(ABC):
    """Factory for scoped browser sessions."""

    @abstractmethod
    async def _open(self) -> BrowserSession:
        """Launch and return a ready session."""
        pass

    @asynccontextmanager
    async def session(self) -> AsyncIterator[BrowserSession]:
        """
        Open a session for the duration of the block.

        The session is closed on normal exit, early return and exceptions.
        """
        session = await self._open()
        try:
            yield session
        finally:
            await session.close()


async def _block_non_essential(route: Any) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class PlaywrightDriver(BrowserDriver):
    """Chromium via the Playwright async API, with a spoofed fingerprint."""

    def __init__(self, options: BrowserSessionOptions | None = None):
        self.options = options or BrowserSessionOptions()

    async def _open(self) -> BrowserSession:
        try:
            from playwright.async_api import async_playwright
        except ImportError as e:
            raise ImportError(
                "Playwright is missing. Install it with: pip install playwright "
                "&& playwright install chromium"
            ) from e

        pw = await async_playwright().start()
        browser = None
        context = None
        try:
            try:
                browser = await pw.chromium.launch(
                    headless=self.options.headless,
                    args=list(LAUNCH_ARGS),
                    ignore_default_args=["--enable-automation"],
                )
            except Exception as e:
                if "executable doesn't exist" in str(e) or "not installed" in str(e).lower():
                    raise RuntimeError(
                        "Browser binaries for chromium are missing. Run: playwright install"
                    ) from e
                raise

            context = await browser.new_context(**self.options.context_kwargs())
            await context.add_init_script(STEALTH_INIT_SCRIPT)
            if self.options.block_resources:
                await context.route("**/*", _block_non_essential)
            page = await context.new_page()
            page.set_default_navigation_timeout(self.options.nav_timeout_ms)
        except Exception:
            await _close_all(context, browser, pw)
            raise

        async def _close() -> None:
            await _close_all(context, browser, pw)

        return BrowserSession(page, on_close=_close, nav_timeout_ms=self.options.nav_timeout_ms)


async def _close_all(context: Any, browser: Any, pw: Any) -> None:
    try:
        if context is not None:
            await context.close()
    finally:
        try:
            if browser is not None:
                await browser.close()
        finally:
            if pw is not None:
                await pw.stop()
