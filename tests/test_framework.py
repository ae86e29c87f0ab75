"""
Test framework for Chat Table Watch.

This module provides base classes, page mocks and markup helpers for testing
the application.
"""

import os
import sys
import asyncio
import functools
import unittest
from typing import Any, Callable, Dict, List, Optional, Sequence
from unittest.mock import AsyncMock, patch

# Add parent directory to path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Import application modules
from config.settings import Settings
from browser.manager import BrowserManager
from browser.watcher import SNAPSHOT_SCRIPT, OBSERVER_SCRIPT, DISCONNECT_SCRIPT
from extraction.dom import HostDocument
from utils.logging import setup_logging


def table_html(headers: Sequence[str], rows: Sequence[Sequence[str]], attrs: str = "") -> str:
    """Build a native table with a thead."""
    head = "".join(f"<th>{header}</th>" for header in headers)
    body = "".join(
        "<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>"
        for row in rows
    )
    return f"<table {attrs}><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"


def page_html(*fragments: str, title: Optional[str] = None) -> str:
    """Wrap fragments in a full page."""
    head = f"<head><title>{title}</title></head>" if title else "<head></head>"
    return f"<html>{head}<body>{''.join(fragments)}</body></html>"


class MockPage:
    """Mock Page for testing the page watcher."""

    def __init__(self, url: str = "https://example.com", html: str = None):
        self.url = url
        self.html = html or page_html("<h1>Mock Page</h1>")
        self.navigation_history = []
        self.exposed: Dict[str, Callable] = {}
        self.event_listeners: Dict[str, List[Callable]] = {}
        self.evaluated: List[str] = []
        self.observer_installed = False
        self.fail_snapshot = False

    async def goto(self, url: str, **kwargs) -> None:
        """Mock goto method."""
        self.url = url
        self.navigation_history.append(url)
        return None

    async def evaluate(self, js_code: str, *args) -> Any:
        """Mock evaluate method."""
        self.evaluated.append(js_code)
        if js_code is SNAPSHOT_SCRIPT:
            if self.fail_snapshot:
                from playwright.async_api import Error as PlaywrightError
                raise PlaywrightError("Target page, context or browser has been closed")
            return self.html.count("<")
        if js_code is OBSERVER_SCRIPT:
            installed = not self.observer_installed
            self.observer_installed = True
            return installed
        if js_code is DISCONNECT_SCRIPT:
            self.observer_installed = False
        return None

    async def content(self) -> str:
        """Mock content method."""
        return self.html

    async def expose_function(self, name: str, callback: Callable) -> None:
        """Mock expose_function method."""
        self.exposed[name] = callback

    async def wait_for_selector(self, selector: str, **kwargs) -> None:
        """Mock wait_for_selector method."""
        return None

    def on(self, event: str, callback: Callable) -> None:
        """Mock on method."""
        self.event_listeners.setdefault(event, []).append(callback)

    def remove_listener(self, event: str, callback: Callable) -> None:
        """Mock remove_listener method."""
        listeners = self.event_listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def set_content(self, html: str) -> None:
        """Set page content."""
        self.html = html

    def emit(self, event: str) -> None:
        """Fire a page event at the registered listeners."""
        for callback in list(self.event_listeners.get(event, [])):
            callback(self)


class MockBrowserContext:
    """Mock BrowserContext for testing browser context interactions."""

    def __init__(self, browser_type: str = "chromium", **options):
        self.browser_type = browser_type
        self.options = options
        self.pages = []
        self.is_closed = False
        self.navigation_timeout = None
        self.timeout = None

    async def new_page(self) -> MockPage:
        """Mock new_page method."""
        page = MockPage()
        self.pages.append(page)
        return page

    def set_default_navigation_timeout(self, timeout: int) -> None:
        self.navigation_timeout = timeout

    def set_default_timeout(self, timeout: int) -> None:
        self.timeout = timeout

    async def close(self) -> None:
        """Mock close method."""
        self.is_closed = True


class MockBrowser:
    """Mock Browser for testing browser interactions."""

    def __init__(self, browser_type: str = "chromium"):
        self.browser_type = browser_type
        self.contexts = []
        self.is_closed = False

    async def new_context(self, **kwargs) -> MockBrowserContext:
        """Mock new_context method."""
        context = MockBrowserContext(self.browser_type, **kwargs)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        """Mock close method."""
        self.is_closed = True


class MockBrowserLauncher:
    """Mock Browser Launcher for testing."""

    def __init__(self, browser_type: str):
        self.browser_type = browser_type
        self.launch_options = None
        self.browser = None

    async def launch(self, **kwargs) -> MockBrowser:
        """Mock launch method."""
        self.launch_options = kwargs
        self.browser = MockBrowser(self.browser_type)
        return self.browser


class MockPlaywright:
    """Mock Playwright for testing."""

    def __init__(self):
        self.chromium = MockBrowserLauncher("chromium")
        self.firefox = MockBrowserLauncher("firefox")
        self.webkit = MockBrowserLauncher("webkit")
        self.stopped = False

    async def stop(self) -> None:
        """Mock stop method."""
        self.stopped = True


class BaseTestCase(unittest.TestCase):
    """Base test case for application tests."""

    @classmethod
    def setUpClass(cls):
        """Set up test class."""
        # Configure logging
        cls.logger = setup_logging(log_level="DEBUG")

        # Short debounce, periodic scans out of the way
        cls.settings = Settings(debounce_ms=20, rescan_interval_ms=60000)

    def run_async(self, coro):
        """Run coroutine in a fresh event loop."""
        return asyncio.run(coro)

    def make_document(self, *fragments: str, url: str = "", title: Optional[str] = None) -> HostDocument:
        """Build a document from body fragments."""
        return HostDocument(page_html(*fragments, title=title), url)


class BrowserTestCase(BaseTestCase):
    """Test case specifically for browser-related tests."""

    def setUp(self):
        """Set up test case."""
        super().setUp()

        # Create mocks
        self.mock_playwright = MockPlaywright()
        self.mock_page = MockPage()

        # Common patches
        self.playwright_patch = patch('browser.manager.async_playwright')
        self.mock_async_playwright = self.playwright_patch.start()
        self.mock_async_playwright.return_value.start = AsyncMock(return_value=self.mock_playwright)

        # Create browser manager with mocks
        self.browser_manager = BrowserManager(self.settings)

    def tearDown(self):
        """Tear down test case."""
        # Clean up browser manager
        self.run_async(self.browser_manager.cleanup())
        self.playwright_patch.stop()
        super().tearDown()


def async_test(coro):
    """Decorator for running async test functions."""
    @functools.wraps(coro)
    def wrapper(*args, **kwargs):
        return asyncio.run(coro(*args, **kwargs))
    return wrapper


def skip_if_no_browser(test_func):
    """Decorator to skip tests if browser is not available."""
    async def check_browser():
        try:
            from playwright.async_api import async_playwright
            async with async_playwright() as p:
                browser = await p.chromium.launch(headless=True)
                await browser.close()
            return True
        except Exception:
            return False

    @functools.wraps(test_func)
    def wrapper(*args, **kwargs):
        if not asyncio.run(check_browser()):
            raise unittest.SkipTest("Browser not available for testing")
        return test_func(*args, **kwargs)

    return wrapper
