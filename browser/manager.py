"""
Browser lifecycle management module.

Starts playwright, launches the configured browser and owns the single
context that watched chat pages live in.
"""

import logging
from typing import Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from config.settings import Settings
from utils.errors import BrowserError

# Set up logger
logger = logging.getLogger(__name__)


class BrowserManager:
    """
    Browser manager for watching chat pages.

    Usable as an async context manager; leaving the block closes the
    context, the browser and playwright.
    """

    def __init__(self, settings: Settings):
        """
        Initialize the browser manager.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None

    @property
    def initialized(self) -> bool:
        return self.context is not None

    async def __aenter__(self) -> "BrowserManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.cleanup()

    async def initialize(self) -> None:
        """
        Start playwright, launch the browser and open its context.

        Raises:
            BrowserError: If the browser cannot be launched
        """
        if self.initialized:
            return

        browser_type = self.settings.browser_type.lower()
        logger.info(f"Launching {browser_type} (headless={self.settings.headless})")

        try:
            self.playwright = await async_playwright().start()
            launcher = getattr(self.playwright, browser_type)
            self.browser = await launcher.launch(
                headless=self.settings.headless,
                args=self.settings.browser_args
            )
            self.context = await self.browser.new_context(**self._context_options())
        except Exception as e:
            logger.error(f"Could not start {browser_type}: {str(e)}")
            await self.cleanup()
            raise BrowserError(f"Could not launch {browser_type}: {str(e)}")

        self.context.set_default_navigation_timeout(self.settings.navigation_timeout)
        self.context.set_default_timeout(self.settings.action_timeout)

    def _context_options(self) -> dict:
        options = {
            "viewport": {
                "width": self.settings.viewport_width,
                "height": self.settings.viewport_height
            }
        }
        if self.settings.user_agent:
            options["user_agent"] = self.settings.user_agent
        return options

    async def cleanup(self) -> None:
        """Close the context, the browser and playwright, in that order."""
        for name, close in (
            ("context", self.context and self.context.close),
            ("browser", self.browser and self.browser.close),
            ("playwright", self.playwright and self.playwright.stop),
        ):
            if not close:
                continue
            try:
                await close()
            except Exception as e:
                logger.warning(f"Error closing {name}: {str(e)}")

        self.context = None
        self.browser = None
        self.playwright = None

    async def get_page(self) -> Page:
        """
        Get the most recent page of the context, opening one if there is none.

        Raises:
            BrowserError: If the manager is not initialized
        """
        context = self._require_context()
        if context.pages:
            return context.pages[-1]
        return await context.new_page()

    async def new_page(self) -> Page:
        """Open another page in the context."""
        return await self._require_context().new_page()

    def _require_context(self) -> BrowserContext:
        if self.context is None:
            raise BrowserError("Browser manager is not initialized")
        return self.context
