"""
Batch grouping module.

This module projects the registry into the batch view used for exporting
every table of a conversation at once.
"""

import logging
from typing import Callable, List, Optional

from config.settings import Settings
from controller.registry import DetectionRegistry, RegistryEvent
from extraction.models import BatchTableDetectionResult
from extraction.titles import extract_chat_title, sanitize_chat_title
from utils.helpers import generate_timestamp

# Set up logger
logger = logging.getLogger(__name__)

BatchCallback = Callable[[BatchTableDetectionResult], None]


class BatchGrouper:
    """
    Derived batch view over a registry. Holds no tables of its own.
    """

    def __init__(self, registry: DetectionRegistry, settings: Optional[Settings] = None):
        """
        Initialize the grouper.

        Args:
            registry: Registry to project
            settings: Settings holding the batch threshold
        """
        self.registry = registry
        self.settings = settings or registry.settings

    def snapshot(self) -> BatchTableDetectionResult:
        """
        Build the batch view of the tables tracked right now.

        Returns:
            Tables in registry order with the page source and chat title
        """
        document = self.registry.document
        source = self.registry.source
        return BatchTableDetectionResult(
            tables=self.registry.results(),
            source=source,
            timestamp=generate_timestamp(),
            chat_title=sanitize_chat_title(extract_chat_title(document, source)),
        )

    def is_batch_available(self, min_count: Optional[int] = None) -> bool:
        """
        Check whether enough tables are tracked to offer a batch export.

        Args:
            min_count: Threshold, the configured one when omitted

        Returns:
            True when the registry holds at least ``min_count`` tables
        """
        threshold = min_count if min_count is not None else self.settings.batch_min_tables
        return len(self.registry) >= threshold

    def watch(self, callback: BatchCallback) -> Callable[[], None]:
        """
        Deliver a fresh snapshot after every registry change.

        Args:
            callback: Called with the new batch view

        Returns:
            A callable that stops the delivery
        """
        def on_change(events: List[RegistryEvent]) -> None:
            batch = self.snapshot()
            logger.debug(f"Batch changed: {batch.count} tables after {len(events)} events")
            callback(batch)

        return self.registry.add_listener(on_change)
