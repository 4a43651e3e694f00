"""
Owns the Playwright driver and the one browser a test session launches.

Contexts and pages are not created here: every test gets its own context
from SurfaceManager, so tests share nothing but the browser process.

Usage:
    async with PlaywrightClient() as client:
        manager = SurfaceManager(client.browser, ...)
"""

import logging
from typing import Optional

from playwright.async_api import Browser, Playwright, async_playwright

from ui_harness.config import settings

logger = logging.getLogger(__name__)

BROWSER_TYPES = ("chromium", "firefox", "webkit")


class PlaywrightClient:
    """Starts Playwright in-process and launches the configured engine."""

    def __init__(self, browser_type: Optional[str] = None, headless: Optional[bool] = None):
        """
        Args:
            browser_type: chromium, firefox or webkit (None = PLAYWRIGHT_BROWSER)
            headless: Run without a window (None = PLAYWRIGHT_HEADLESS)
        """
        self.browser_type = browser_type or settings.browser_type
        if self.browser_type not in BROWSER_TYPES:
            raise ValueError(f"Unsupported browser type {self.browser_type!r}, expected one of {BROWSER_TYPES}")
        self.headless = settings.playwright_headless if headless is None else headless

        self._driver: Optional[Playwright] = None
        self._launched: Optional[Browser] = None

    async def __aenter__(self) -> "PlaywrightClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> Browser:
        """Start the driver and launch the browser; the driver is stopped again if the launch fails."""
        driver = await async_playwright().start()
        try:
            self._launched = await getattr(driver, self.browser_type).launch(headless=self.headless)
        except BaseException:
            await driver.stop()
            raise
        self._driver = driver
        logger.debug("Launched %s (headless=%s)", self.browser_type, self.headless)
        return self._launched

    async def close(self) -> None:
        browser, driver = self._launched, self._driver
        self._launched = self._driver = None
        if browser is not None:
            await browser.close()
        if driver is not None:
            await driver.stop()

    @property
    def browser(self) -> Browser:
        if self._launched is None:
            raise RuntimeError("PlaywrightClient is not connected; call connect() or use 'async with'")
        return self._launched
