"""Tests for the Playwright browser driver wrapper."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from src.driver.browser import BrowserDriver
from src.errors import DriverError, HarnessStateError
from src.models.config import ViewportConfig

ASYNC_PW = "src.driver.browser.async_playwright"

DEVICES = {
    "Pixel 2": {"viewport": {"width": 411, "height": 731}},
    "Nexus 10": {"viewport": {"width": 800, "height": 1280}},
    "Nexus 10 landscape": {"viewport": {"width": 1280, "height": 800}},
}


def _mock_playwright(browser=None):
    pw = AsyncMock()
    pw.chromium.launch = AsyncMock(return_value=browser or AsyncMock())
    pw.devices = DEVICES
    return pw


def _mock_page():
    page = AsyncMock()
    page.set_default_timeout = Mock()
    locator = AsyncMock()
    page.locator = Mock(return_value=locator)
    return page, locator


async def _launched_driver(pw=None):
    pw = pw or _mock_playwright()
    driver = BrowserDriver()
    with patch(ASYNC_PW) as mock_pw_cls:
        mock_pw_cls.return_value.start = AsyncMock(return_value=pw)
        await driver.launch(headless=True)
    return driver, pw


class TestLaunch:

    @pytest.mark.asyncio
    async def test_launch_uses_headless_flag(self):
        pw = _mock_playwright()
        driver = BrowserDriver()
        with patch(ASYNC_PW) as mock_pw_cls:
            mock_pw_cls.return_value.start = AsyncMock(return_value=pw)
            await driver.launch(headless=False)
        pw.chromium.launch.assert_awaited_once_with(headless=False)
        assert driver.browser is not None

    @pytest.mark.asyncio
    async def test_launch_failure_raises_driver_error(self):
        pw = _mock_playwright()
        pw.chromium.launch.side_effect = PlaywrightError("Executable doesn't exist")
        driver = BrowserDriver()
        with patch(ASYNC_PW) as mock_pw_cls:
            mock_pw_cls.return_value.start = AsyncMock(return_value=pw)
            with pytest.raises(DriverError) as exc_info:
                await driver.launch()
        assert exc_info.value.action == "launch"
        pw.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_launch_twice_rejected(self):
        driver, _ = await _launched_driver()
        with pytest.raises(HarnessStateError):
            await driver.launch()

    @pytest.mark.asyncio
    async def test_context_requires_launch(self):
        with pytest.raises(HarnessStateError):
            await BrowserDriver().new_context()


class TestInteractions:

    @pytest.mark.asyncio
    async def test_new_context_passes_viewport(self):
        driver, _ = await _launched_driver()
        await driver.new_context(viewport=ViewportConfig(width=1200, height=600))
        driver.browser.new_context.assert_awaited_once_with(viewport={"width": 1200, "height": 600})

    @pytest.mark.asyncio
    async def test_new_page_sets_default_timeout(self):
        driver = BrowserDriver(timeout_ms=5000)
        page, _ = _mock_page()
        context = AsyncMock()
        context.new_page = AsyncMock(return_value=page)
        assert await driver.new_page(context) is page
        page.set_default_timeout.assert_called_once_with(5000)

    @pytest.mark.asyncio
    async def test_fill_and_click_use_locators(self):
        driver = BrowserDriver()
        page, locator = _mock_page()
        await driver.fill(page, "#username", "andy")
        await driver.click(page, "#log-in")
        page.locator.assert_any_call("#username")
        page.locator.assert_any_call("#log-in")
        locator.fill.assert_awaited_once_with("andy")
        locator.click.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_click_failure_reports_selector(self):
        driver = BrowserDriver()
        page, locator = _mock_page()
        locator.click.side_effect = PlaywrightError("Timeout 10000ms exceeded")
        with pytest.raises(DriverError) as exc_info:
            await driver.click(page, "#log-in")
        assert exc_info.value.action == "click"
        assert exc_info.value.selector == "#log-in"
        assert "#log-in" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_goto_failure_reports_url(self):
        driver = BrowserDriver()
        page, _ = _mock_page()
        page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        with pytest.raises(DriverError) as exc_info:
            await driver.goto(page, "https://nowhere.invalid")
        assert exc_info.value.action == "goto"
        assert exc_info.value.selector == "https://nowhere.invalid"

    @pytest.mark.asyncio
    async def test_goto_tolerates_network_idle_timeout(self):
        driver = BrowserDriver()
        page, _ = _mock_page()
        page.wait_for_load_state.side_effect = PlaywrightError("Timeout")
        await driver.goto(page, "https://demo.applitools.com")
        page.goto.assert_awaited_once_with("https://demo.applitools.com", wait_until="domcontentloaded")

    @pytest.mark.asyncio
    async def test_press_without_selector_uses_keyboard(self):
        driver = BrowserDriver()
        page, _ = _mock_page()
        page.keyboard = AsyncMock()
        await driver.press(page, "Enter")
        page.keyboard.press.assert_awaited_once_with("Enter")

    @pytest.mark.asyncio
    async def test_wait_for_timeout(self):
        driver = BrowserDriver()
        page, _ = _mock_page()
        await driver.wait(page, ms=250)
        page.wait_for_timeout.assert_awaited_once_with(250)


    @pytest.mark.asyncio
    async def test_set_viewport(self):
        driver = BrowserDriver()
        page, _ = _mock_page()
        await driver.set_viewport(page, ViewportConfig(width=800, height=600))
        page.set_viewport_size.assert_awaited_once_with({"width": 800, "height": 600})

    @pytest.mark.asyncio
    async def test_set_viewport_failure_raises_driver_error(self):
        driver = BrowserDriver()
        page, _ = _mock_page()
        page.set_viewport_size.side_effect = PlaywrightError("Target closed")
        with pytest.raises(DriverError) as exc_info:
            await driver.set_viewport(page, ViewportConfig(width=800, height=600))
        assert exc_info.value.action == "set_viewport"
        assert "800x600" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_close_page_failure_raises_driver_error(self):
        driver = BrowserDriver()
        page, _ = _mock_page()
        page.close.side_effect = PlaywrightError("Target closed")
        with pytest.raises(DriverError) as exc_info:
            await driver.close_page(page)
        assert exc_info.value.action == "close_page"


class TestDevices:

    @pytest.mark.asyncio
    async def test_portrait_device(self):
        driver, _ = await _launched_driver()
        assert driver.device_viewport("Pixel 2", "portrait") == ViewportConfig(width=411, height=731)

    @pytest.mark.asyncio
    async def test_landscape_descriptor_preferred(self):
        driver, _ = await _launched_driver()
        assert driver.device_viewport("Nexus 10", "landscape") == ViewportConfig(width=1280, height=800)

    @pytest.mark.asyncio
    async def test_landscape_swaps_when_no_descriptor(self):
        driver, _ = await _launched_driver()
        assert driver.device_viewport("Pixel 2", "landscape") == ViewportConfig(width=731, height=411)

    @pytest.mark.asyncio
    async def test_unknown_device(self):
        driver, _ = await _launched_driver()
        with pytest.raises(DriverError):
            driver.device_viewport("Tamagotchi")

    def test_devices_require_playwright(self):
        with pytest.raises(HarnessStateError):
            BrowserDriver().device_viewport("Pixel 2")


class TestDispose:

    @pytest.mark.asyncio
    async def test_dispose_closes_browser_and_playwright(self):
        driver, pw = await _launched_driver()
        browser = driver.browser
        await driver.dispose()
        browser.close.assert_awaited_once()
        pw.stop.assert_awaited_once()
        assert driver.browser is None

    @pytest.mark.asyncio
    async def test_dispose_is_safe_when_never_launched(self):
        await BrowserDriver().dispose()
