"""Headless browser fallback for pages plain HTTP cannot retrieve.

One Chromium process is launched lazily on first use and kept until
``close()``. Every fetch runs in a fresh browser context that is torn down
afterwards, so cookies and storage never leak between requests.
"""

import asyncio
import logging

from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from ..config import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

BROWSER_ARGS = [
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-extensions",
    "--disable-blink-features=AutomationControlled",
]


class HeadlessPage:
    """Result of a headless navigation."""

    def __init__(self, status: int | None, html: str, url: str):
        self.status = status
        self.html = html
        self.url = url


class HeadlessFetcher:
    """Lazily started Playwright browser with per-request contexts.

    Attributes:
        enabled: When False, fetch() returns None without starting a browser.
        timeout_ms: Navigation timeout in milliseconds.
        settle_ms: Extra wait after DOMContentLoaded for client-side rendering.
    """

    def __init__(
        self,
        enabled: bool = False,
        timeout_ms: int = 25_000,
        user_agent: str = DEFAULT_USER_AGENT,
        settle_ms: int = 500,
    ):
        self.enabled = enabled
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent
        self.settle_ms = settle_ms
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def _ensure_browser(self) -> Browser:
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            if self._playwright is None:
                self._playwright = await async_playwright().start()

            self._browser = await self._playwright.chromium.launch(headless=True, args=BROWSER_ARGS)
            logger.info("Headless browser started")
            return self._browser

    async def fetch(self, url: str, referer: str | None = None) -> HeadlessPage | None:
        """Navigate to ``url`` in an isolated context and return the rendered HTML.

        Args:
            url: Page to load.
            referer: Referer header for the navigation.

        Returns:
            HeadlessPage, or None when the fallback is disabled.

        Raises:
            playwright.async_api.Error: Navigation failed or timed out.
        """
        if not self.enabled:
            return None

        browser = await self._ensure_browser()
        context = await browser.new_context(
            user_agent=self.user_agent,
            viewport={"width": 1366, "height": 768},
            locale="en-US",
            java_script_enabled=True,
            accept_downloads=False,
        )
        try:
            page = await context.new_page()
            response = await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.timeout_ms,
                referer=referer,
            )
            await page.wait_for_timeout(self.settle_ms)
            html = await page.content()
            status = response.status if response is not None else None
            return HeadlessPage(status=status, html=html, url=page.url)
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.warning(f"Failed to close browser context: {e}")

    async def close(self) -> None:
        """Shut down the browser process and Playwright driver."""
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except PlaywrightError as e:
                    logger.warning(f"Failed to close headless browser: {e}")
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
