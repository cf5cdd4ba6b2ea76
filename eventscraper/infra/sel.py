"""
sel.py - Async Playwright session used by the page acquirer.

One :class:`PlaywrightClient` owns one Playwright driver, one browser and
one context.  The acquirer opens a fresh client per attempt:

    async with PlaywrightClient(user_agent=UA) as pw:
        html = await pw.get_page_content(url, wait_until="networkidle")

Leaving the ``async with`` block closes context, browser and driver even
when navigation times out or the surrounding task is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import random
from types import TracebackType
from typing import Any, Dict, Optional, Type

from playwright.async_api import (
    Browser,
    BrowserContext,
    BrowserType,
    Page,
    async_playwright,
)

logger = logging.getLogger(__name__)

# Chromium flags that keep headless sessions from advertising automation
STEALTH_ARGS = [
    "--no-first-run",
    "--disable-blink-features=AutomationControlled",
    "--disable-features=VizDisplayCompositor",
]

DEFAULT_HEADERS = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}

_STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""


class PlaywrightClient:
    """
    Isolated browser session: driver + browser + context.

    Examples
    --------
    async with PlaywrightClient(timeout=10_000) as pw:
        html = await pw.get_page_content("https://example.com")
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        browser_type: str = "chromium",
        timeout: float = 30_000,
        user_agent: Optional[str] = None,
        viewport: Optional[Dict[str, int]] = None,
        extra_launch_kwargs: Optional[Dict[str, Any]] = None,
        extra_context_kwargs: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.headless = headless
        self.browser_type = browser_type.lower()
        self.timeout = timeout
        self.user_agent = user_agent
        self.viewport = viewport or {"width": 1920, "height": 1080}
        self._launch_kwargs = extra_launch_kwargs or {}
        self._context_kwargs = extra_context_kwargs or {}

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    # --------------------------------------------------------------------- #
    async def __aenter__(self) -> "PlaywrightClient":
        try:
            await self.start()
        except BaseException:
            # a half-started session (driver up, launch failed) must still be torn down
            await self.stop()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.stop()

    # --------------------------------------------------------------------- #
    async def start(self) -> None:
        """Launch browser & context if not already started."""
        if self._browser:
            return

        self._playwright = await async_playwright().start()
        browser_launcher: BrowserType

        if self.browser_type == "chromium":
            browser_launcher = self._playwright.chromium
        elif self.browser_type == "firefox":
            browser_launcher = self._playwright.firefox
        elif self.browser_type == "webkit":
            browser_launcher = self._playwright.webkit
        else:
            raise ValueError(f"Unsupported browser type: {self.browser_type}")

        launch_kwargs: Dict[str, Any] = {"headless": self.headless, **self._launch_kwargs}
        if self.browser_type == "chromium":
            launch_kwargs.setdefault("args", STEALTH_ARGS)
        self._browser = await browser_launcher.launch(**launch_kwargs)

        context_kwargs: Dict[str, Any] = {
            "ignore_https_errors": True,
            "viewport": self.viewport,
            "extra_http_headers": DEFAULT_HEADERS,
            **self._context_kwargs,
        }
        if self.user_agent:
            context_kwargs.setdefault("user_agent", self.user_agent)

        self._context = await self._browser.new_context(**context_kwargs)
        await self._context.add_init_script(_STEALTH_INIT_SCRIPT)

        logger.debug("Playwright started: %s (headless=%s)", self.browser_type, self.headless)

    async def stop(self) -> None:
        """Close context, browser & driver; each step runs even if an earlier one fails."""
        try:
            if self._context:
                await self._context.close()
        except Exception as e:
            logger.debug("Closing browser context failed: %s", e)
        finally:
            self._context = None
            try:
                if self._browser:
                    await self._browser.close()
            except Exception as e:
                logger.debug("Closing browser failed: %s", e)
            finally:
                self._browser = None
                try:
                    if self._playwright:
                        await self._playwright.stop()
                except Exception as e:
                    logger.debug("Stopping playwright failed: %s", e)
                finally:
                    self._playwright = None

    # --------------------------------------------------------------------- #
    async def new_page(self) -> Page:
        if not self._context:
            await self.start()
        page = await self._context.new_page()
        page.set_default_timeout(self.timeout)
        return page

    async def get_page_content(
        self,
        url: str,
        *,
        wait_until: str = "networkidle",
        settle_delay: tuple[float, float] = (0.0, 0.0),
        scroll: bool = False,
    ) -> str:
        """Navigate, optionally linger like a human, return the rendered HTML."""
        page = await self.new_page()
        try:
            await page.goto(url, wait_until=wait_until, timeout=self.timeout)
            low, high = settle_delay
            if high > 0:
                await asyncio.sleep(random.uniform(low, high))
            if scroll:
                await scroll_to_bottom(page)
            return await page.content()
        finally:
            await page.close()


async def scroll_to_bottom(
    page: Page,
    *,
    step_px: int = 2048,
    delay: float = 0.25,
    max_scrolls: int = 50,
) -> None:
    """
    Scroll down chunk-by-chunk until the page stops growing (or max_scrolls).

    Good for event lists that lazy-load further entries.
    """
    last_height = -1
    for _ in range(max_scrolls):
        height = await page.evaluate("() => document.body.scrollHeight")
        if height == last_height:
            break
        last_height = height
        await page.evaluate(f"window.scrollTo(0, {max(0, height - step_px)});")
        await asyncio.sleep(delay)
        await page.evaluate("window.scrollTo(0, document.body.scrollHeight);")
        await asyncio.sleep(delay)
