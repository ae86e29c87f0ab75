"""
Table detector module.

This module picks the detector family for a page and turns accepted
candidates into ``TableData`` records.
"""

import logging
from typing import Dict, List, Optional

from bs4 import Tag

from config.settings import Settings
from extraction.dom import HostDocument
from extraction.models import ParsedTable, TableCandidate, TableData, TableDetectionResult
from extraction.parsers import BaseTableParser, ParserStrategy, build_parsers, parse_with_strategies
from extraction.platforms import PLATFORM_DETECTORS
from extraction.scanner import CandidateScanner
from extraction.selectors import classify_source
from utils.errors import DetachedElementError
from utils.helpers import generate_timestamp

# Set up logger
logger = logging.getLogger(__name__)

# Strategies used to re-read a single element, by tag name
REEXTRACT_STRATEGIES: Dict[str, List[ParserStrategy]] = {
    "table": [ParserStrategy.HTML_TABLE],
    "pre": [ParserStrategy.MARKDOWN_PIPE, ParserStrategy.TEXT_BLOCK],
    "code": [ParserStrategy.MARKDOWN_PIPE, ParserStrategy.TEXT_BLOCK],
    "div": [ParserStrategy.ARIA_ROLE, ParserStrategy.SIBLING_STRUCTURE, ParserStrategy.TEXT_BLOCK],
}
DEFAULT_REEXTRACT_STRATEGIES = [ParserStrategy.TEXT_BLOCK]


def build_table_data(
    document: HostDocument,
    element: Tag,
    parsed: ParsedTable,
    source: str,
    timestamp: Optional[int] = None,
    chat_title: Optional[str] = None
) -> TableData:
    """
    Create the exportable record for a parsed element.

    Args:
        document: Document holding the element
        element: The table element
        parsed: Normalized parser output
        source: Page source tag
        timestamp: Creation time in milliseconds, now when omitted
        chat_title: Title passed through to exporters

    Returns:
        A TableData whose id encodes the timestamp and the element position
    """
    timestamp = timestamp if timestamp is not None else generate_timestamp()
    return TableData(
        id=f"table_{timestamp}_{document.index_of(element)}",
        headers=list(parsed.headers),
        rows=[list(row) for row in parsed.rows],
        source=source,
        timestamp=timestamp,
        url=document.url,
        chat_title=chat_title,
    )


class TableDetector:
    """
    Entry point for table detection on a document.

    The platform detectors replace the generic scanner on ChatGPT and
    Claude pages; every other page gets the generic scan.
    """

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

    def find_tables(self, document: HostDocument, source: Optional[str] = None) -> List[TableCandidate]:
        """
        Run the detector family that matches the page.

        Args:
            document: Document to scan
            source: Source tag, classified from the document URL when omitted

        Returns:
            Accepted candidates
        """
        source = source or classify_source(document.url)
        detector_class = PLATFORM_DETECTORS.get(source)
        if detector_class is not None:
            # new instance per scan, so no per-scan state carries over
            return detector_class(self.settings, self.parsers).detect(document)
        return CandidateScanner(self.settings, self.parsers).scan(document)

    def detect(self, document: HostDocument, source: Optional[str] = None) -> List[TableDetectionResult]:
        """
        Find tables and build a result for each.

        Args:
            document: Document to scan
            source: Source tag, classified from the document URL when omitted

        Returns:
            Detection results in candidate order
        """
        source = source or classify_source(document.url)
        timestamp = generate_timestamp()
        results = []
        for candidate in self.find_tables(document, source):
            results.append(TableDetectionResult(
                element=candidate.element,
                data=build_table_data(document, candidate.element, candidate.table, source, timestamp),
                position=document.position_of(candidate.element),
                key=document.key_for(candidate.element),
            ))
        return results

    def extract(self, document: HostDocument, element: Tag) -> Optional[ParsedTable]:
        """
        Re-read one element with the strategies that fit its tag.

        Args:
            document: Document holding the element
            element: Element to parse

        Returns:
            The parsed table, or None when the element no longer holds one

        Raises:
            DetachedElementError: If the element left the document
        """
        if not document.is_attached(element):
            raise DetachedElementError(document.key_for(element))

        strategies = REEXTRACT_STRATEGIES.get(element.name, DEFAULT_REEXTRACT_STRATEGIES)
        return parse_with_strategies(element, self.parsers, strategies)


def extract_table_data(
    document: HostDocument,
    element: Tag,
    settings: Optional[Settings] = None,
    source: Optional[str] = None,
    chat_title: Optional[str] = None
) -> Optional[TableData]:
    """
    Extract a single table for export.

    Args:
        document: Document holding the element
        element: Element the user picked
        settings: Detection settings
        source: Source tag, classified from the document URL when omitted
        chat_title: Title passed through to exporters

    Returns:
        The table, or None when the element does not hold one

    Raises:
        DetachedElementError: If the element left the document
    """
    detector = TableDetector(settings)
    parsed = detector.extract(document, element)
    if parsed is None:
        logger.debug(f"No table found in <{element.name}>")
        return None
    return build_table_data(
        document, element, parsed, source or classify_source(document.url), chat_title=chat_title
    )
