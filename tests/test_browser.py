"""
Tests for the browser layer.

This module tests the browser manager and navigation against playwright
mocks, and the page watcher against a mock page. One end-to-end test runs
against a real browser when one is installed.
"""

import asyncio
import unittest
from unittest.mock import AsyncMock

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from tests.test_framework import (
    BaseTestCase, BrowserTestCase, MockPage, async_test, skip_if_no_browser, page_html, table_html
)
from browser.manager import BrowserManager
from browser.navigation import navigate_to, wait_for_content
from browser.watcher import PageWatcher, NOTIFY_BINDING, OBSERVER_SCRIPT, DISCONNECT_SCRIPT
from config.settings import Settings
from controller.registry import ADDED, REMOVED
from utils.errors import BrowserError, NavigationError


def keyed_table(key: int) -> str:
    return table_html(["Key", "Value"], [[f"row {key}", str(key)]], attrs=f'data-tw-key="{key}"')


class FailingPage(MockPage):
    """Page whose navigation and waits fail."""

    def __init__(self, error: Exception):
        super().__init__()
        self.error = error

    async def goto(self, url: str, **kwargs):
        raise self.error

    async def wait_for_selector(self, selector: str, **kwargs):
        raise self.error


class StatusResponse:
    """Minimal navigation response."""

    def __init__(self, status: int):
        self.status = status
        self.ok = status < 400


class StatusPage(MockPage):
    """Page that answers navigation with a given status."""

    def __init__(self, status: int):
        super().__init__()
        self.status = status

    async def goto(self, url: str, **kwargs):
        await super().goto(url, **kwargs)
        return StatusResponse(self.status)


class TestBrowserManager(BrowserTestCase):
    """Test case for browser lifecycle management."""

    @async_test
    async def test_initialize_opens_context(self):
        await self.browser_manager.initialize()

        self.assertTrue(self.browser_manager.initialized)
        launch_options = self.mock_playwright.chromium.launch_options
        self.assertEqual(launch_options["headless"], self.settings.headless)
        context = self.browser_manager.context
        self.assertEqual(context.options["viewport"], {"width": 1280, "height": 720})
        self.assertEqual(context.navigation_timeout, self.settings.navigation_timeout)

    @async_test
    async def test_get_page_reuses_last_page(self):
        await self.browser_manager.initialize()

        first = await self.browser_manager.get_page()
        again = await self.browser_manager.get_page()
        extra = await self.browser_manager.new_page()

        self.assertIs(first, again)
        self.assertIsNot(first, extra)
        self.assertIs(await self.browser_manager.get_page(), extra)

    @async_test
    async def test_user_agent_setting(self):
        manager = BrowserManager(Settings(user_agent="TestAgent/1.0"))
        await manager.initialize()

        self.assertEqual(manager.context.options["user_agent"], "TestAgent/1.0")
        await manager.cleanup()

    @async_test
    async def test_page_before_initialize(self):
        with self.assertRaises(BrowserError):
            await self.browser_manager.get_page()

    @async_test
    async def test_context_manager_cleans_up(self):
        async with BrowserManager(Settings(browser_type="firefox")) as manager:
            self.assertTrue(manager.initialized)
            browser = manager.browser
            context = manager.context

        self.assertEqual(browser.browser_type, "firefox")
        self.assertTrue(context.is_closed)
        self.assertTrue(browser.is_closed)
        self.assertTrue(self.mock_playwright.stopped)
        self.assertFalse(manager.initialized)

    @async_test
    async def test_launch_failure(self):
        self.mock_playwright.chromium.launch = AsyncMock(side_effect=RuntimeError("no executable"))

        with self.assertRaises(BrowserError):
            await self.browser_manager.initialize()

        self.assertFalse(self.browser_manager.initialized)
        self.assertTrue(self.mock_playwright.stopped)


class TestNavigation(BaseTestCase):
    """Test case for page navigation."""

    @async_test
    async def test_navigate(self):
        page = MockPage()

        result = await navigate_to(page, "example.com/chat", self.settings)

        self.assertEqual(result["status"], "success")
        self.assertEqual(page.navigation_history, ["https://example.com/chat"])

    @async_test
    async def test_non_ok_status(self):
        result = await navigate_to(StatusPage(404), "https://example.com/missing", self.settings)

        self.assertEqual(result["status"], "warning")
        self.assertEqual(result["status_code"], 404)

    @async_test
    async def test_timeout(self):
        page = FailingPage(PlaywrightTimeoutError("Timeout 10ms exceeded"))

        with self.assertRaises(NavigationError) as context:
            await navigate_to(page, "https://claude.ai", self.settings, timeout=10)

        self.assertEqual(context.exception.details["url"], "https://claude.ai")

    @async_test
    async def test_playwright_error(self):
        page = FailingPage(PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))

        with self.assertRaises(NavigationError):
            await navigate_to(page, "https://nowhere.invalid", self.settings)

    @async_test
    async def test_wait_for_content(self):
        self.assertTrue(await wait_for_content(MockPage(), timeout=10))
        self.assertFalse(await wait_for_content(FailingPage(PlaywrightTimeoutError("Timeout")), timeout=10))


class TestPageWatcher(BaseTestCase):
    """Test case for watching a mock page."""

    def make_watcher(self, *fragments: str):
        page = MockPage(url="https://example.com/chat", html=page_html(*fragments))
        return page, PageWatcher(page, self.settings)

    @async_test
    async def test_start_scans_snapshot(self):
        page, watcher = self.make_watcher(keyed_table(1), keyed_table(2))

        events = await watcher.start()
        await watcher.stop()

        self.assertEqual([event.kind for event in events], [ADDED, ADDED])
        self.assertIn(NOTIFY_BINDING, page.exposed)
        self.assertIn(OBSERVER_SCRIPT, page.evaluated)
        self.assertEqual(watcher.batch().count, 2)

    @async_test
    async def test_page_mutation_triggers_rescan(self):
        page, watcher = self.make_watcher(keyed_table(1), keyed_table(2))
        received = []
        watcher.on_change(received.extend)
        await watcher.start()

        page.set_content(page_html(keyed_table(1), keyed_table(3)))
        page.exposed[NOTIFY_BINDING](1)
        await asyncio.sleep(0.15)
        await watcher.stop()

        changes = {(event.kind, event.key) for event in received[2:]}
        self.assertEqual(changes, {(REMOVED, "k2"), (ADDED, "k3")})
        self.assertEqual(len(watcher.registry), 2)

    @async_test
    async def test_hidden_stamp_respected(self):
        hidden = keyed_table(2).replace("<table ", '<table data-tw-hidden="1" ')
        page, watcher = self.make_watcher(keyed_table(1), hidden)

        await watcher.start()
        await watcher.stop()

        self.assertEqual(len(watcher.registry), 1)

    @async_test
    async def test_navigation_rescans(self):
        page, watcher = self.make_watcher(keyed_table(1))
        received = []
        watcher.on_change(received.extend)
        await watcher.start()

        page.set_content(page_html(keyed_table(5)))
        page.emit("load")
        await asyncio.sleep(0.15)
        await watcher.stop()

        self.assertEqual(received[-1].reason, "navigation")
        self.assertEqual([result.key for result in watcher.registry.results()], ["k5"])

    @async_test
    async def test_snapshot_failure_keeps_last_document(self):
        page, watcher = self.make_watcher(keyed_table(1))
        await watcher.start()

        page.fail_snapshot = True
        events = await watcher.rescan()
        await watcher.stop()

        self.assertEqual(events, [])
        self.assertEqual(len(watcher.registry), 1)

    @async_test
    async def test_stop_disconnects(self):
        page, watcher = self.make_watcher(keyed_table(1))
        await watcher.start()

        await watcher.stop()

        self.assertEqual(page.event_listeners["load"], [])
        self.assertIs(page.evaluated[-1], DISCONNECT_SCRIPT)
        self.assertFalse(page.observer_installed)


class TestLivePage(BaseTestCase):
    """End-to-end test against a real browser."""

    @skip_if_no_browser
    @async_test
    async def test_live_page(self):
        settings = Settings(debounce_ms=50, rescan_interval_ms=60000, headless=True)
        first = table_html(["Name", "Score"], [["Ann", "10"]])
        second = table_html(["City", "Temp"], [["Oslo", "3"]])

        async with BrowserManager(settings) as manager:
            page = await manager.get_page()
            await page.set_content(page_html(first, second))

            watcher = PageWatcher(page, settings)
            await watcher.start()
            initial = len(watcher.registry)

            await page.evaluate(
                "() => document.body.appendChild(document.querySelector('table').cloneNode(true))"
            )
            await asyncio.sleep(1.0)
            final = len(watcher.registry)
            await watcher.stop()

        self.assertEqual(initial, 2)
        self.assertEqual(final, 3)


if __name__ == "__main__":
    unittest.main()
