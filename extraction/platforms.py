"""
Platform-specific table detectors.

ChatGPT and Claude pages are scanned only inside assistant message
containers. Within each container, native tables come first, then pipe
tables in code blocks, then pipe tables written as prose. A later candidate
that overlaps an accepted element is skipped.
"""

import logging
from typing import Dict, List, Optional, Set

from bs4 import Tag

from config.settings import Settings
from extraction.dom import HostDocument
from extraction.models import TableCandidate, ParsedTable
from extraction.parsers import (
    BaseTableParser, ParserStrategy, build_parsers, has_pipe_table_shape
)
from extraction.selectors import PlatformProfile, CHATGPT_PROFILE, CLAUDE_PROFILE
from utils.helpers import content_fingerprint

# Set up logger
logger = logging.getLogger(__name__)


class PlatformDetector:
    """
    Base class for detectors scoped to message containers.
    """

    profile: PlatformProfile = None

    def __init__(
        self,
        settings: Optional[Settings] = None,
        parsers: Optional[Dict[ParserStrategy, BaseTableParser]] = None
    ):
        """
        Initialize the detector.

        Args:
            settings: Detection settings
            parsers: Parsers to use, built from settings when omitted
        """
        self.settings = settings or Settings()
        self.parsers = parsers or build_parsers(self.settings)

    def detect(self, document: HostDocument) -> List[TableCandidate]:
        """
        Find tables inside the message containers of a document.

        Args:
            document: Document to scan

        Returns:
            Accepted candidates in container order
        """
        self.begin_scan()
        accepted: List[TableCandidate] = []
        containers = self.containers(document)

        for container in containers:
            if not document.is_rendered(container):
                continue
            self._scan_tables(document, container, accepted)
            self._scan_code_blocks(document, container, accepted)
            self._scan_prose(document, container, accepted)

        logger.debug(
            f"{self.profile.display_name} scan: {len(containers)} containers, "
            f"{len(accepted)} candidates"
        )
        return accepted

    def begin_scan(self) -> None:
        """Reset per-scan state."""

    def containers(self, document: HostDocument) -> List[Tag]:
        """Message containers in document order, each listed once."""
        return document.select(", ".join(self.profile.container_selectors))

    def prose_candidates(self, document: HostDocument, container: Tag) -> List[Tag]:
        return document.select(self.profile.prose_selector, root=container)

    def prose_min_length(self) -> int:
        return self.settings.min_text_length

    def admit(self, element: Tag, text: str) -> bool:
        """Final per-candidate check before a candidate is accepted."""
        return True

    def _accept(self, document: HostDocument, element: Tag, parsed: Optional[ParsedTable],
                accepted: List[TableCandidate]) -> bool:
        if parsed is None:
            return False
        if not self.admit(element, document.text_of(element)):
            return False
        accepted.append(TableCandidate(element, parsed))
        return True

    def _is_free(self, document: HostDocument, element: Tag, accepted: List[TableCandidate]) -> bool:
        if not document.is_rendered(element):
            return False
        return not document.overlaps_any(element, (candidate.element for candidate in accepted))

    def _scan_tables(self, document: HostDocument, container: Tag, accepted: List[TableCandidate]) -> None:
        parser = self.parsers[ParserStrategy.HTML_TABLE]
        for table in document.select("table", root=container):
            if not self._is_free(document, table, accepted):
                continue
            self._accept(document, table, parser.parse_element(table), accepted)

    def _scan_code_blocks(self, document: HostDocument, container: Tag, accepted: List[TableCandidate]) -> None:
        parser = self.parsers[ParserStrategy.MARKDOWN_PIPE]
        for block in document.select("pre, code", root=container):
            if not self._is_free(document, block, accepted):
                continue
            parsed = parser.parse_element(block)
            if parsed is not None and parsed.headers:
                self._accept(document, block, parsed, accepted)

    def _scan_prose(self, document: HostDocument, container: Tag, accepted: List[TableCandidate]) -> None:
        parser = self.parsers[ParserStrategy.TEXT_BLOCK]
        for element in self.prose_candidates(document, container):
            if not self._is_free(document, element, accepted):
                continue
            text = document.text_of(element)
            if any(marker in text for marker in self.settings.noise_markers):
                continue
            if len(text.strip()) < self.prose_min_length():
                continue
            if not has_pipe_table_shape(text):
                continue
            self._accept(document, element, parser.parse(text), accepted)


class ChatGPTDetector(PlatformDetector):
    """
    Detector for ChatGPT conversations.
    """

    profile = CHATGPT_PROFILE

    def prose_min_length(self) -> int:
        return self.settings.prose_min_text_length


class ClaudeDetector(PlatformDetector):
    """
    Detector for Claude conversations.

    Claude repeats the same content across nested, class-churned wrappers,
    so candidates are also deduplicated by a fingerprint of their leading
    text. Two different tables that start with the same text are merged;
    the fingerprint set lives for one scan only.
    """

    profile = CLAUDE_PROFILE

    def __init__(self, settings: Optional[Settings] = None, parsers=None):
        super().__init__(settings, parsers)
        self._fingerprints: Set[str] = set()

    def begin_scan(self) -> None:
        self._fingerprints = set()

    def prose_candidates(self, document: HostDocument, container: Tag) -> List[Tag]:
        text = document.text_of(container)
        if "|" not in text or len(text.split("\n")) <= 2:
            return []
        return super().prose_candidates(document, container)

    def admit(self, element: Tag, text: str) -> bool:
        fingerprint = content_fingerprint(text, self.settings.fingerprint_length)
        if fingerprint in self._fingerprints:
            logger.debug(f"Skipping <{element.name}> with a fingerprint seen earlier in this scan")
            return False
        self._fingerprints.add(fingerprint)
        return True


PLATFORM_DETECTORS = {
    CHATGPT_PROFILE.source: ChatGPTDetector,
    CLAUDE_PROFILE.source: ClaudeDetector,
}
