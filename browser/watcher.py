"""
Live page watcher module.

This module binds the detection lifecycle to a playwright page. A
MutationObserver inside the page reports added tables and code blocks back
to Python; before every rescan the page is snapshotted into a
``HostDocument`` with stable element keys, visibility and position stamps.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Set

from playwright.async_api import Page, Error as PlaywrightError

from config.settings import Settings
from controller.batch import BatchGrouper
from controller.registry import DetectionRegistry, RegistryEvent, RegistryListener
from controller.scheduler import RescanScheduler
from extraction.dom import HostDocument, KEY_ATTR, HIDDEN_ATTR, X_ATTR, Y_ATTR
from extraction.models import BatchTableDetectionResult
from utils.errors import BrowserError

# Set up logger
logger = logging.getLogger(__name__)

NOTIFY_BINDING = "__tableWatchNotify"

# Stamps keys, visibility and position on every element of the body
SNAPSHOT_SCRIPT = f"""
() => {{
    const keys = window.__tableWatchKeys || (window.__tableWatchKeys = new WeakMap());
    if (window.__tableWatchNextKey === undefined) {{
        window.__tableWatchNextKey = 1;
    }}
    for (const el of document.querySelectorAll('body *')) {{
        let key = keys.get(el);
        if (key === undefined) {{
            key = window.__tableWatchNextKey++;
            keys.set(el, key);
        }}
        el.setAttribute('{KEY_ATTR}', String(key));
        if (el.offsetParent === null && getComputedStyle(el).position !== 'fixed') {{
            el.setAttribute('{HIDDEN_ATTR}', '1');
        }} else {{
            el.removeAttribute('{HIDDEN_ATTR}');
        }}
        const rect = el.getBoundingClientRect();
        el.setAttribute('{X_ATTR}', String(Math.round(rect.left + window.scrollX)));
        el.setAttribute('{Y_ATTR}', String(Math.round(rect.top + window.scrollY)));
    }}
    return document.querySelectorAll('body *').length;
}}
"""

# Reports added tables and pre blocks to Python
OBSERVER_SCRIPT = f"""
() => {{
    if (window.__tableWatchObserver || !document.body) {{
        return false;
    }}
    const relevant = (node) => node.nodeType === 1 &&
        (node.matches('table, pre') || node.querySelector('table, pre') !== null);
    window.__tableWatchObserver = new MutationObserver((mutations) => {{
        let added = 0;
        for (const mutation of mutations) {{
            for (const node of mutation.addedNodes) {{
                if (relevant(node)) {{
                    added += 1;
                }}
            }}
        }}
        if (added > 0) {{
            window.{NOTIFY_BINDING}(added);
        }}
    }});
    window.__tableWatchObserver.observe(document.body, {{ childList: true, subtree: true }});
    return true;
}}
"""

DISCONNECT_SCRIPT = """
() => {
    if (window.__tableWatchObserver) {
        window.__tableWatchObserver.disconnect();
        window.__tableWatchObserver = null;
    }
}
"""


class PageWatcher:
    """
    Tracks the tables of a live page.
    """

    def __init__(self, page: Page, settings: Optional[Settings] = None):
        """
        Initialize the watcher.

        Args:
            page: Playwright page to watch
            settings: Application settings
        """
        self.page = page
        self.settings = settings or Settings()
        self.document = HostDocument(url=page.url)
        self.registry = DetectionRegistry(self.document, self.settings)
        self.scheduler = RescanScheduler(self.registry, self.settings, before_scan=self.refresh_snapshot)
        self.batch_grouper = BatchGrouper(self.registry, self.settings)
        self._exposed = False
        self._tasks: Set[asyncio.Task] = set()

    async def refresh_snapshot(self) -> None:
        """
        Reload the document from the page.

        Raises:
            BrowserError: If the page cannot be read
        """
        try:
            await self.page.evaluate(SNAPSHOT_SCRIPT)
            html = await self.page.content()
        except PlaywrightError as e:
            raise BrowserError(f"Could not snapshot page: {str(e)}", {"url": self.page.url})
        self.document.load(html, url=self.page.url)

    async def start(self) -> List[RegistryEvent]:
        """
        Start watching the page.

        Returns:
            Events of the initial scan
        """
        if not self._exposed:
            await self.page.expose_function(NOTIFY_BINDING, self._on_page_mutation)
            self._exposed = True

        await self._install_observer()
        self.page.on("load", self._on_load)

        events = await self.scheduler.start()
        logger.info(f"Watching {self.page.url}: {len(self.registry)} tables")
        return events

    async def stop(self) -> None:
        """Stop watching and disconnect the page observer."""
        self.page.remove_listener("load", self._on_load)
        await self.scheduler.stop()

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        try:
            await self.page.evaluate(DISCONNECT_SCRIPT)
        except PlaywrightError as e:
            logger.debug(f"Observer already gone: {str(e)}")

    async def rescan(self, reason: str = "manual") -> List[RegistryEvent]:
        return await self.scheduler.request_rescan(reason)

    def batch(self) -> BatchTableDetectionResult:
        """Current batch view of the page."""
        return self.batch_grouper.snapshot()

    def on_change(self, listener: RegistryListener) -> Callable[[], None]:
        return self.registry.add_listener(listener)

    async def _install_observer(self) -> None:
        try:
            installed = await self.page.evaluate(OBSERVER_SCRIPT)
        except PlaywrightError as e:
            raise BrowserError(f"Could not install mutation observer: {str(e)}", {"url": self.page.url})
        if installed:
            logger.debug("Mutation observer installed")

    def _on_page_mutation(self, added: int) -> None:
        logger.debug(f"Page reported {added} added table nodes")
        self.scheduler.schedule_rescan("mutation")

    def _on_load(self, page: Page) -> None:
        if self.scheduler.stopped:
            return
        task = asyncio.ensure_future(self._after_navigation())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _after_navigation(self) -> None:
        try:
            await self._install_observer()
        except BrowserError as e:
            logger.warning(str(e))
            return
        self.scheduler.schedule_rescan("navigation")
