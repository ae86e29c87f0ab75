"""
Detection registry module.

This module keeps track of the tables currently present on a page. Each
rescan reconciles what the detector finds with what is already tracked.
New tables are added and tracked tables whose content changed are replaced
in place. A tracked table is removed when its element left the page, stopped
rendering or no longer parses as a table, and when a table found in the
same scan overlaps it.
"""

import dataclasses
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from bs4 import Tag

from config.settings import Settings
from extraction.detector import TableDetector, build_table_data
from extraction.dom import HostDocument
from extraction.models import ParsedTable, TableData, TableDetectionResult
from extraction.selectors import classify_source
from utils.errors import DetachedElementError
from utils.helpers import generate_timestamp
from utils.logging import LogContext, PerformanceLogger

# Set up logger
logger = logging.getLogger(__name__)

# Event kinds
ADDED = "added"
UPDATED = "updated"
REMOVED = "removed"


@dataclass
class RegistryEvent:
    """
    A change to the set of tracked tables.

    Attributes:
        kind: "added", "updated" or "removed"
        key: Registry key of the element
        result: The tracked result (the last known one for removals)
        reason: What triggered the rescan
    """
    kind: str
    key: str
    result: TableDetectionResult
    reason: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "event": self.kind,
            "key": self.key,
            "reason": self.reason,
            "table": self.result.data.to_dict(),
            "position": dict(self.result.position),
        }


RegistryListener = Callable[[List[RegistryEvent]], None]


class DetectionRegistry:
    """
    The set of tables tracked on one document.

    Listeners are called once per rescan that changed something, with the
    list of events. Listener failures are logged and never propagate.
    """

    def __init__(
        self,
        document: HostDocument,
        settings: Optional[Settings] = None,
        detector: Optional[TableDetector] = None
    ):
        """
        Initialize the registry.

        Args:
            document: Document to watch
            settings: Detection settings
            detector: Detector to use, built from settings when omitted
        """
        self.document = document
        self.settings = settings or Settings()
        self.detector = detector or TableDetector(self.settings)
        self._entries: "OrderedDict[str, TableDetectionResult]" = OrderedDict()
        self._listeners: List[RegistryListener] = []
        self.performance = PerformanceLogger(logger)
        self.scan_count = 0

    @property
    def source(self) -> str:
        return classify_source(self.document.url)

    # Queries

    def __len__(self) -> int:
        return len(self._entries)

    def has_table(self, element: Tag) -> bool:
        """Check whether an element is currently tracked."""
        return self.document.key_for(element) in self._entries

    def get(self, element: Tag) -> Optional[TableData]:
        """
        Get the tracked table of an element.

        Args:
            element: Element to look up

        Returns:
            The table, or None when the element is not tracked
        """
        entry = self._entries.get(self.document.key_for(element))
        return entry.data if entry is not None else None

    def get_by_id(self, table_id: str) -> Optional[TableDetectionResult]:
        for entry in self._entries.values():
            if entry.data.id == table_id:
                return entry
        return None

    def results(self) -> List[TableDetectionResult]:
        """Tracked results in the order they were added."""
        return list(self._entries.values())

    def tables(self) -> List[TableData]:
        return [entry.data for entry in self._entries.values()]

    # Listeners

    def add_listener(self, listener: RegistryListener) -> Callable[[], None]:
        """
        Subscribe to registry changes.

        Args:
            listener: Called with the events of each rescan that changed something

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self, events: List[RegistryEvent]) -> None:
        if not events:
            return
        for listener in list(self._listeners):
            try:
                listener(events)
            except Exception as e:
                logger.error(f"Registry listener failed: {str(e)}", exc_info=True)

    # Reconciliation

    def rescan(self, reason: str = "manual") -> List[RegistryEvent]:
        """
        Reconcile tracked tables with the current document.

        Never raises; detector failures are logged and leave the tracked
        set as it was, minus elements that left the page.

        Args:
            reason: What triggered the rescan, used in logs and events

        Returns:
            The events produced by this rescan
        """
        events: List[RegistryEvent] = []
        source = self.source
        self.scan_count += 1

        with LogContext(logger, source=source, reason=reason, scan=self.scan_count):
            self.performance.start_timer("rescan")

            try:
                found = self.detector.find_tables(self.document, source)
            except Exception as e:
                logger.error(f"Table detection failed: {str(e)}", exc_info=True)
                found = []

            self._drop_stale(events, reason)
            found_keys = self._merge_found(found, source, events, reason)
            self._refresh_unreported(found, found_keys, source, events, reason)

            elapsed_ms = self.performance.end_timer("rescan")
            self.performance.log_metric("tracked_tables", len(self._entries), reason=reason)

            for event in events:
                if event.kind == UPDATED:
                    logger.debug(f"Table updated: {event.result.data.id}")
                else:
                    logger.info(f"Table {event.kind}: {event.result.data.id}")
            logger.debug(
                f"Rescan ({reason}) found {len(found)} candidates, tracking {len(self._entries)} "
                f"in {elapsed_ms:.1f}ms"
            )

        self._emit(events)
        return events

    def clear(self) -> List[RegistryEvent]:
        """Forget every tracked table, emitting a removal for each."""
        events = [RegistryEvent(REMOVED, key, entry, "clear") for key, entry in self._entries.items()]
        self._entries.clear()
        self._emit(events)
        return events

    def _drop_stale(self, events: List[RegistryEvent], reason: str) -> None:
        for key, entry in list(self._entries.items()):
            element = self.document.resolve(key, entry.element)
            if element is None or not self.document.is_rendered(element):
                self._remove(key, entry, events, reason)
            else:
                entry.element = element

    def _merge_found(self, found, source: str, events: List[RegistryEvent], reason: str) -> set:
        found_keys = set()
        timestamp = generate_timestamp()

        for candidate in found:
            element = candidate.element
            if not self.document.is_rendered(element):
                continue
            key = self.document.key_for(element)
            if key in found_keys:
                continue
            found_keys.add(key)

            entry = self._entries.get(key)
            if entry is None:
                entry = TableDetectionResult(
                    element=element,
                    data=build_table_data(self.document, element, candidate.table, source, timestamp),
                    position=self.document.position_of(element),
                    key=key,
                )
                self._entries[key] = entry
                events.append(RegistryEvent(ADDED, key, entry, reason))
                continue

            entry.element = element
            entry.position = self.document.position_of(element)
            if self._replace_if_changed(entry, candidate.table, timestamp):
                events.append(RegistryEvent(UPDATED, key, entry, reason))

        return found_keys

    def _refresh_unreported(self, found, found_keys: set, source: str, events: List[RegistryEvent],
                            reason: str) -> None:
        timestamp = generate_timestamp()
        found_elements = [candidate.element for candidate in found if self.document.is_rendered(candidate.element)]

        for key, entry in list(self._entries.items()):
            if key in found_keys:
                continue
            if self.document.overlaps_any(entry.element, found_elements):
                # superseded by an overlapping table found in this scan
                self._remove(key, entry, events, reason)
                continue
            try:
                parsed = self.detector.extract(self.document, entry.element)
            except DetachedElementError:
                self._remove(key, entry, events, reason)
                continue
            except Exception as e:
                logger.error(f"Re-extraction of {entry.data.id} failed: {str(e)}", exc_info=True)
                continue

            if parsed is None:
                logger.debug(f"{entry.data.id} no longer holds a table")
                self._remove(key, entry, events, reason)
            elif self._replace_if_changed(entry, parsed, timestamp):
                events.append(RegistryEvent(UPDATED, key, entry, reason))

    def _remove(self, key: str, entry: TableDetectionResult, events: List[RegistryEvent], reason: str) -> None:
        del self._entries[key]
        events.append(RegistryEvent(REMOVED, key, entry, reason))

    @staticmethod
    def _replace_if_changed(entry: TableDetectionResult, parsed: ParsedTable, timestamp: int) -> bool:
        # id is kept
        updated = dataclasses.replace(
            entry.data,
            headers=list(parsed.headers),
            rows=[list(row) for row in parsed.rows],
            timestamp=timestamp,
        )
        if updated.same_content(entry.data):
            return False
        entry.data = updated
        return True
