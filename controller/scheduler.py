"""
Rescan scheduling module.

This module drives registry rescans from two triggers: document mutations
that add tables or code blocks (debounced) and a periodic fallback timer.
All rescans run on the event loop, one at a time.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set

from bs4 import Tag

from config.settings import Settings
from controller.registry import DetectionRegistry, RegistryEvent
from extraction.dom import MutationRecord

# Set up logger
logger = logging.getLogger(__name__)

RELEVANT_TAGS = ("table", "pre")

BeforeScanHook = Callable[[], Awaitable[None]]


def is_relevant_mutation(record: MutationRecord) -> bool:
    """
    Check whether a mutation may have added a table.

    Args:
        record: Mutation record

    Returns:
        True when an added node is a table or pre block, or contains one
    """
    for node in record.added_nodes:
        if not isinstance(node, Tag):
            continue
        if node.name in RELEVANT_TAGS or node.find(RELEVANT_TAGS) is not None:
            return True
    return False


class RescanScheduler:
    """
    Runs registry rescans on mutation and on a timer.
    """

    def __init__(
        self,
        registry: DetectionRegistry,
        settings: Optional[Settings] = None,
        before_scan: Optional[BeforeScanHook] = None
    ):
        """
        Initialize the scheduler.

        Args:
            registry: Registry to rescan
            settings: Settings holding the debounce delay and the rescan interval
            before_scan: Coroutine function awaited before every rescan
        """
        self.registry = registry
        self.settings = settings or registry.settings
        self.before_scan = before_scan
        self.running = False
        self.stopped = False

        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._periodic_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def start(self) -> List[RegistryEvent]:
        """
        Run the initial rescan, then start listening for mutations and
        the periodic timer.

        Returns:
            Events of the initial rescan
        """
        if self.running:
            return []
        if self.stopped:
            logger.warning("Scheduler was stopped and cannot be restarted")
            return []

        self._loop = asyncio.get_running_loop()
        self.running = True
        events = await self.rescan("initial")

        self._unsubscribe = self.registry.document.subscribe(self.on_mutations)
        self._periodic_task = self._loop.create_task(self._run_periodic())
        logger.info(
            f"Rescan scheduler started (debounce {self.settings.debounce_ms}ms, "
            f"interval {self.settings.rescan_interval_ms}ms)"
        )
        return events

    def on_mutations(self, records: List[MutationRecord]) -> None:
        """Mutation callback; arms the debounce timer for relevant records."""
        if not self.running:
            return
        if any(is_relevant_mutation(record) for record in records):
            self.schedule_rescan("mutation")

    def schedule_rescan(self, reason: str = "mutation") -> None:
        """
        Request a rescan after the debounce delay.

        Every call restarts the delay, so a burst of mutations gives one rescan.
        """
        if not self.running or self._loop is None:
            return
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = self._loop.call_later(
            self.settings.debounce_seconds, self._fire_debounced, reason
        )

    def _fire_debounced(self, reason: str) -> None:
        self._debounce_handle = None
        if not self.running:
            return
        task = self._loop.create_task(self.rescan(reason))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_periodic(self) -> None:
        while self.running:
            await asyncio.sleep(self.settings.rescan_interval_seconds)
            if not self.running:
                break
            await self.rescan("periodic")

    async def request_rescan(self, reason: str = "manual") -> List[RegistryEvent]:
        """
        Rescan immediately.

        Args:
            reason: Reason recorded in logs and events

        Returns:
            Events produced by the rescan
        """
        return await self.rescan(reason)

    async def rescan(self, reason: str) -> List[RegistryEvent]:
        """
        Run one rescan, after any rescan already in progress.

        Args:
            reason: Reason recorded in logs and events

        Returns:
            Events produced, empty when the scheduler was stopped
        """
        async with self._lock:
            if self.stopped:
                return []
            if self.before_scan is not None:
                try:
                    await self.before_scan()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Pre-scan hook failed, scanning current document: {str(e)}")
            return self.registry.rescan(reason)

    async def stop(self) -> None:
        """Stop listening and cancel every pending or running rescan."""
        self.stopped = True
        self.running = False

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

        tasks = list(self._pending)
        if self._periodic_task is not None:
            tasks.append(self._periodic_task)
            self._periodic_task = None

        current = asyncio.current_task()
        tasks = [task for task in tasks if task is not current and not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info("Rescan scheduler stopped")
