"""
Generic candidate scanner.

This module walks a whole document looking for tables on pages that have no
dedicated platform detector: native tables first, then pipe tables in code
blocks, then div-based tables. A candidate that contains or sits inside an
already accepted element is discarded, so a table is never counted once for
its wrapper and again for its contents.
"""

import logging
from typing import Dict, List, Optional

from config.settings import Settings
from extraction.dom import HostDocument
from extraction.models import TableCandidate
from extraction.parsers import (
    BaseTableParser, ParserStrategy, build_parsers, is_ui_element, parse_with_strategies
)

# Set up logger
logger = logging.getLogger(__name__)

DIV_STRATEGIES = [ParserStrategy.ARIA_ROLE, ParserStrategy.SIBLING_STRUCTURE]


class CandidateScanner:
    """
    Platform-agnostic table scanner.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        parsers: Optional[Dict[ParserStrategy, BaseTableParser]] = None
    ):
        """
        Initialize the scanner.

        Args:
            settings: Detection settings
            parsers: Parsers to use, built from settings when omitted
        """
        self.settings = settings or Settings()
        self.parsers = parsers or build_parsers(self.settings)

    def scan(self, document: HostDocument) -> List[TableCandidate]:
        """
        Find every table candidate in a document.

        Args:
            document: Document to scan

        Returns:
            Accepted candidates, in pass order then document order
        """
        accepted: List[TableCandidate] = []
        self._scan_tables(document, accepted)
        self._scan_code_blocks(document, accepted)
        self._scan_divs(document, accepted)

        logger.debug(f"Generic scan accepted {len(accepted)} candidates")
        return accepted

    def _is_free(self, document: HostDocument, element, accepted: List[TableCandidate]) -> bool:
        if not document.is_rendered(element):
            return False
        return not document.overlaps_any(element, (candidate.element for candidate in accepted))

    def _scan_tables(self, document: HostDocument, accepted: List[TableCandidate]) -> None:
        parser = self.parsers[ParserStrategy.HTML_TABLE]
        for table in document.select("table"):
            if not self._is_free(document, table, accepted):
                continue
            parsed = parser.parse_element(table)
            if parsed is not None and parsed.rows:
                accepted.append(TableCandidate(table, parsed))

    def _scan_code_blocks(self, document: HostDocument, accepted: List[TableCandidate]) -> None:
        parser = self.parsers[ParserStrategy.MARKDOWN_PIPE]
        for block in document.select("pre, code"):
            if not self._is_free(document, block, accepted):
                continue
            parsed = parser.parse_element(block)
            if parsed is not None and parsed.headers:
                accepted.append(TableCandidate(block, parsed))

    def _scan_divs(self, document: HostDocument, accepted: List[TableCandidate]) -> None:
        text_parser = self.parsers[ParserStrategy.TEXT_BLOCK]
        for div in document.select("div"):
            if not self._is_free(document, div, accepted):
                continue
            if is_ui_element(div, self.settings):
                continue

            parsed = parse_with_strategies(div, self.parsers, DIV_STRATEGIES)
            if parsed is not None and len(parsed.headers) >= 2 and parsed.rows:
                accepted.append(TableCandidate(div, parsed))
                continue

            parsed = text_parser.parse(div)
            if parsed is not None:
                accepted.append(TableCandidate(div, parsed))
