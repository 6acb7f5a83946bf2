"""Browser driver: thin Playwright wrapper that reports failures as DriverError."""

from __future__ import annotations

import logging
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, Playwright
from playwright.async_api import async_playwright

from src.errors import DriverError, HarnessStateError
from src.models.config import ViewportConfig

logger = logging.getLogger(__name__)


class BrowserDriver:
    """Owns one Playwright instance and one launched browser for the process."""

    def __init__(self, browser_type: str = "chromium", timeout_ms: int = 10000):
        self.browser_type = browser_type
        self.timeout_ms = timeout_ms
        self._playwright: Playwright | None = None
        self.browser: Browser | None = None

    async def launch(self, headless: bool = True) -> Browser:
        """Start Playwright and launch the browser."""
        if self.browser is not None:
            raise HarnessStateError("Browser already launched")
        logger.debug("Launching %s (headless=%s)...", self.browser_type, headless)
        try:
            self._playwright = await async_playwright().start()
            launcher = getattr(self._playwright, self.browser_type)
            self.browser = await launcher.launch(headless=headless)
        except PlaywrightError as e:
            await self._stop_playwright()
            raise DriverError("launch", e.message) from e
        logger.info("Launched %s %s", self.browser_type, self.browser.version)
        return self.browser

    async def new_context(self, viewport: Optional[ViewportConfig] = None) -> BrowserContext:
        """Create an isolated browsing context (own cookies and storage)."""
        if self.browser is None:
            raise HarnessStateError("Browser not launched")
        try:
            return await self.browser.new_context(
                viewport=viewport.as_dict() if viewport else None,
            )
        except PlaywrightError as e:
            raise DriverError("new_context", e.message) from e

    async def new_page(self, context: BrowserContext) -> Page:
        try:
            page = await context.new_page()
        except PlaywrightError as e:
            raise DriverError("new_page", e.message) from e
        page.set_default_timeout(self.timeout_ms)
        return page

    async def set_viewport(self, page: Page, viewport: ViewportConfig) -> None:
        try:
            await page.set_viewport_size(viewport.as_dict())
        except PlaywrightError as e:
            raise DriverError("set_viewport", f"{viewport}: {e.message}") from e

    async def goto(self, page: Page, url: str) -> None:
        logger.debug("Navigating to %s...", url)
        try:
            await page.goto(url, wait_until="domcontentloaded")
        except PlaywrightError as e:
            raise DriverError("goto", e.message, selector=url) from e
        try:
            await page.wait_for_load_state("networkidle", timeout=min(self.timeout_ms, 10000))
        except PlaywrightError:
            logger.debug("Network idle timeout, continuing")

    async def fill(self, page: Page, selector: str, text: str) -> None:
        logger.debug("Filling %s with '%s'", selector,
                     "***" if "password" in selector.lower() else text)
        try:
            await page.locator(selector).fill(text)
        except PlaywrightError as e:
            raise DriverError("fill", e.message, selector=selector) from e

    async def click(self, page: Page, selector: str) -> None:
        logger.debug("Clicking: %s", selector)
        try:
            await page.locator(selector).click()
        except PlaywrightError as e:
            raise DriverError("click", e.message, selector=selector) from e

    async def press(self, page: Page, key: str, selector: Optional[str] = None) -> None:
        logger.debug("Pressing key: %s", key)
        try:
            if selector:
                await page.locator(selector).press(key)
            else:
                await page.keyboard.press(key)
        except PlaywrightError as e:
            raise DriverError("press", e.message, selector=selector) from e

    async def wait(self, page: Page, selector: Optional[str] = None, ms: int = 1000) -> None:
        try:
            if selector:
                logger.debug("Waiting for selector: %s", selector)
                await page.locator(selector).wait_for(state="visible")
            else:
                logger.debug("Waiting %dms...", ms)
                await page.wait_for_timeout(ms)
        except PlaywrightError as e:
            raise DriverError("wait", e.message, selector=selector) from e

    def device_viewport(self, device_name: str, orientation: str = "portrait") -> ViewportConfig:
        """Viewport of a device from Playwright's device registry."""
        if self._playwright is None:
            raise HarnessStateError("Playwright not started")
        devices = self._playwright.devices
        if orientation == "landscape" and f"{device_name} landscape" in devices:
            return ViewportConfig(**devices[f"{device_name} landscape"]["viewport"])
        if device_name not in devices:
            raise DriverError("device_viewport", f"Unknown device: {device_name}")
        viewport = devices[device_name]["viewport"]
        width, height = viewport["width"], viewport["height"]
        if orientation == "landscape" and height > width:
            width, height = height, width
        return ViewportConfig(width=width, height=height)

    async def close_page(self, page: Page) -> None:
        try:
            await page.close()
        except PlaywrightError as e:
            raise DriverError("close_page", e.message) from e

    async def close_context(self, context: BrowserContext) -> None:
        try:
            await context.close()
        except PlaywrightError as e:
            raise DriverError("close_context", e.message) from e

    async def dispose(self) -> None:
        """Close the browser and stop Playwright."""
        if self.browser is not None:
            try:
                await self.browser.close()
            except PlaywrightError as e:
                logger.warning("Browser close failed: %s", e.message)
            self.browser = None
        await self._stop_playwright()

    async def _stop_playwright(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
