"""
Extraction parsers module.

This module turns one candidate element, or one block of text, into a
``ParsedTable``. Each parser covers one way chat pages render tables:
native ``<table>`` markup, markdown pipe tables, ARIA ``div`` tables,
repeated sibling ``div`` grids and free text.

Parsers never raise on malformed input; they return None.
"""

import logging
import re
from collections import OrderedDict
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

import soupsieve
from bs4 import BeautifulSoup, Tag

from config.settings import Settings
from extraction.models import ParsedTable
from utils.helpers import non_empty_lines

# Set up logger
logger = logging.getLogger(__name__)

# Selector families for ARIA and class-hinted div tables
TABLE_CONTAINER_SELECTOR = '[role="table"], .table, [class*="table"]'
HEADER_ROW_SELECTOR = '[role="row"]:first-child, .table-header, [class*="header"]'
HEADER_CELL_SELECTOR = '[role="columnheader"], [role="cell"], .cell, [class*="cell"]'
DATA_ROW_SELECTOR = '[role="row"]:not(:first-child), .table-row, [class*="row"]:not([class*="header"])'
DATA_CELL_SELECTOR = '[role="cell"], [role="gridcell"], .cell, [class*="cell"]'

UI_ID_PATTERN = re.compile(r"(input|toolbar|menu|button)", re.IGNORECASE)
SPACE_SPLIT_PATTERN = re.compile(r"\s{2,}|\t")
SYMBOLS_ONLY_PATTERN = re.compile(r"^[^\w]*$")

# Sibling grids: allowed number of element children per row
MIN_SIBLING_COLUMNS = 2
MAX_SIBLING_COLUMNS = 10

ParserInput = Union[Tag, str]


class ParserStrategy(str, Enum):
    """Parsing strategies, in their default priority order."""
    HTML_TABLE = "html_table"
    MARKDOWN_PIPE = "markdown_pipe"
    ARIA_ROLE = "aria_role"
    SIBLING_STRUCTURE = "sibling_structure"
    TEXT_BLOCK = "text_block"


DEFAULT_STRATEGY_ORDER: List[ParserStrategy] = [
    ParserStrategy.HTML_TABLE,
    ParserStrategy.MARKDOWN_PIPE,
    ParserStrategy.ARIA_ROLE,
    ParserStrategy.SIBLING_STRUCTURE,
    ParserStrategy.TEXT_BLOCK,
]


def element_text(element: Optional[Tag]) -> str:
    """Trimmed text content of an element."""
    if element is None:
        return ""
    return element.get_text().strip()


def is_meaningful_text(text: str) -> bool:
    """True for text longer than one character that is not only symbols."""
    text = (text or "").strip()
    return len(text) > 1 and not SYMBOLS_ONLY_PATTERN.match(text)


def has_ui_class(element: Tag, settings: Optional[Settings] = None) -> bool:
    """Check the class list of an element against the UI class patterns."""
    settings = settings or Settings()
    classes = element.get("class") or []
    return any(pattern in classes for pattern in settings.ui_class_patterns)


def is_ui_element(element: Tag, settings: Optional[Settings] = None) -> bool:
    """
    Decide whether an element is page chrome rather than content.

    Args:
        element: Element to inspect
        settings: Settings holding the UI patterns and minimum text length

    Returns:
        True for inputs, toolbars, menus and similar, or for elements
        whose text is too short to hold a table
    """
    settings = settings or Settings()
    if has_ui_class(element, settings):
        return True

    element_id = element.get("id") or ""
    if element_id and UI_ID_PATTERN.search(element_id):
        return True

    text = element_text(element)
    if any(marker in text for marker in settings.ui_text_markers):
        return True
    return len(text) < settings.min_text_length


def split_pipe_line(line: str) -> List[str]:
    """
    Split a markdown table line into trimmed cells.

    One leading and one trailing pipe are removed before splitting.
    """
    line = line.strip()
    if line.startswith("|"):
        line = line[1:]
    if line.endswith("|"):
        line = line[:-1]
    return [cell.strip() for cell in line.split("|")]


def split_pipe_tokens(line: str) -> List[str]:
    """Split a line on pipes, dropping empty tokens."""
    return [cell.strip() for cell in line.split("|") if cell.strip()]


def has_pipe_table_shape(text: str) -> bool:
    """
    Check whether text looks like a pipe-delimited table.

    Args:
        text: Text to inspect

    Returns:
        True when at least two lines hold two or more pipes and two or
        more non-empty cells
    """
    qualifying = 0
    for line in non_empty_lines(text):
        if line.count("|") < 2:
            continue
        if len(split_pipe_tokens(line)) >= 2:
            qualifying += 1
            if qualifying >= 2:
                return True
    return False


def normalize_table(parsed: ParsedTable) -> ParsedTable:
    """
    Trim every cell and align rows to the header width.

    Rows without cells are dropped. When headers exist, short rows are
    padded with empty strings and long rows are truncated. Applying this
    twice gives the same result as applying it once.

    Args:
        parsed: Parser output

    Returns:
        A new, normalized ParsedTable
    """
    headers = [str(header).strip() for header in parsed.headers]
    width = len(headers)
    rows: List[List[str]] = []

    for index, row in enumerate(parsed.rows):
        cells = [str(cell).strip() for cell in row]
        if not cells:
            continue
        if width:
            if len(cells) < width:
                logger.debug(
                    f"Padding row {index} from {len(cells)} to {width} cells "
                    f"({parsed.strategy or 'unknown'})"
                )
                cells.extend([""] * (width - len(cells)))
            elif len(cells) > width:
                logger.debug(
                    f"Truncating row {index} from {len(cells)} to {width} cells "
                    f"({parsed.strategy or 'unknown'})"
                )
                cells = cells[:width]
        rows.append(cells)

    return ParsedTable(headers=headers, rows=rows, strategy=parsed.strategy)


def _as_element(source: ParserInput, names: Sequence[str]) -> Optional[Tag]:
    if isinstance(source, Tag):
        return source
    if isinstance(source, str) and source.strip():
        soup = BeautifulSoup(source, "lxml")
        return soup.find(list(names))
    return None


def _as_text(source: ParserInput) -> str:
    if isinstance(source, Tag):
        return source.get_text()
    return source or ""


def _count_meaningful(headers: List[str]) -> int:
    return sum(1 for header in headers if is_meaningful_text(header))


class BaseTableParser:
    """
    Base class for table parsers.

    Subclasses implement ``_parse`` returning raw ``(headers, rows)``;
    validation and normalization happen here.
    """

    strategy: ParserStrategy = None

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize the parser.

        Args:
            settings: Settings holding the text heuristics
        """
        self.settings = settings or Settings()

    def can_parse(self, element: Tag) -> bool:
        """Cheap check whether the element is worth parsing."""
        raise NotImplementedError

    def parse(self, source: ParserInput) -> Optional[ParsedTable]:
        """
        Parse an element or a block of text.

        Args:
            source: Element, or markup/text depending on the parser

        Returns:
            The normalized table, or None when nothing table-shaped was found
        """
        try:
            raw = self._parse(source)
        except Exception as e:
            logger.error(f"{self.strategy.value} parser failed: {str(e)}", exc_info=True)
            return None

        if raw is None:
            return None

        headers, rows = raw
        parsed = ParsedTable(headers=headers, rows=[row for row in rows if row], strategy=self.strategy.value)
        if parsed.is_empty():
            return None

        return normalize_table(parsed)

    def parse_element(self, element: Tag) -> Optional[ParsedTable]:
        """Parse an element only when ``can_parse`` accepts it."""
        if element is None or not self.can_parse(element):
            return None
        return self.parse(element)

    def _parse(self, source: ParserInput) -> Optional[Tuple[List[str], List[List[str]]]]:
        raise NotImplementedError


class HTMLTableParser(BaseTableParser):
    """
    Parser for native ``<table>`` elements.
    """

    strategy = ParserStrategy.HTML_TABLE

    def can_parse(self, element: Tag) -> bool:
        return element.name == "table"

    @staticmethod
    def own_rows(table: Tag) -> List[Tag]:
        """Rows of a table, excluding rows of nested tables."""
        return [row for row in table.find_all("tr") if row.find_parent("table") is table]

    @staticmethod
    def _cell_texts(row: Tag) -> List[str]:
        return [element_text(cell) for cell in row.find_all(["th", "td"], recursive=False)]

    def _parse(self, source: ParserInput):
        table = _as_element(source, ["table"])
        if table is None:
            return None
        if table.name != "table":
            table = table.find("table")
            if table is None:
                return None

        thead = next(
            (head for head in table.find_all("thead") if head.find_parent("table") is table),
            None
        )

        headers: List[str] = []
        if thead is not None:
            header_row = thead.find("tr")
            if header_row is not None:
                headers = self._cell_texts(header_row)

        rows: List[List[str]] = []
        for row in self.own_rows(table):
            if thead is not None and any(parent is thead for parent in row.parents):
                continue
            cells = self._cell_texts(row)
            if thead is None and not headers and not rows:
                headers = cells
                continue
            if cells:
                rows.append(cells)

        if not headers and rows:
            headers = rows.pop(0)

        logger.debug(f"HTML table parsed: {len(headers)} headers, {len(rows)} rows")
        return headers, rows


class MarkdownPipeTableParser(BaseTableParser):
    """
    Parser for markdown pipe tables, typically inside ``<pre>``/``<code>``.
    """

    strategy = ParserStrategy.MARKDOWN_PIPE

    def can_parse(self, element: Tag) -> bool:
        if element.name not in ("pre", "code"):
            return False
        text = element.get_text()
        return "|" in text and "\n" in text

    def _parse(self, source: ParserInput):
        lines = [line for line in non_empty_lines(_as_text(source)) if "|" in line]
        if not lines:
            return None

        headers = split_pipe_line(lines[0])
        start = 1
        if len(lines) > 1 and "---" in lines[1]:
            start = 2

        rows = [split_pipe_line(line) for line in lines[start:]]
        return headers, rows


class DivRoleTableParser(BaseTableParser):
    """
    Parser for ``div`` tables marked with ARIA roles or table-like classes.
    """

    strategy = ParserStrategy.ARIA_ROLE

    def can_parse(self, element: Tag) -> bool:
        if element.name != "div" or is_ui_element(element, self.settings):
            return False
        return self.find_table_container(element) is not None

    @staticmethod
    def find_table_container(element: Tag) -> Optional[Tag]:
        """The element itself when it is table-like, else its first table-like descendant."""
        if soupsieve.match(TABLE_CONTAINER_SELECTOR, element):
            return element
        return element.select_one(TABLE_CONTAINER_SELECTOR)

    def _parse(self, source: ParserInput):
        element = _as_element(source, ["div"])
        if element is None or is_ui_element(element, self.settings):
            return None

        container = self.find_table_container(element)
        if container is None:
            return None

        headers: List[str] = []
        header_row = container.select_one(HEADER_ROW_SELECTOR)
        if header_row is not None:
            for cell in header_row.select(HEADER_CELL_SELECTOR):
                text = element_text(cell)
                if text:
                    headers.append(text)

        rows: List[List[str]] = []
        for row in container.select(DATA_ROW_SELECTOR):
            if row is header_row:
                continue
            cells = [element_text(cell) for cell in row.select(DATA_CELL_SELECTOR)]
            if any(cells):
                rows.append(cells)

        if len(headers) >= 2 and _count_meaningful(headers) < 2:
            logger.debug(f"Rejecting div table with symbol-only headers: {headers}")
            return None

        return headers, rows


class SiblingStructureTableParser(BaseTableParser):
    """
    Fallback parser for grids of ``div`` elements without ARIA roles.

    Descendant ``div`` elements with the same number of element children
    are treated as rows of one table. This matches any repeated layout, so
    it runs after the other element parsers.
    """

    strategy = ParserStrategy.SIBLING_STRUCTURE

    def can_parse(self, element: Tag) -> bool:
        return element.name == "div" and not has_ui_class(element, self.settings)

    def _row_candidates(self, element: Tag) -> List[Tuple[Tag, List[Tag]]]:
        candidates = []
        for div in element.find_all("div"):
            if has_ui_class(div, self.settings):
                continue
            children = [child for child in div.children if isinstance(child, Tag)]
            if not MIN_SIBLING_COLUMNS <= len(children) <= MAX_SIBLING_COLUMNS:
                continue
            if any(is_meaningful_text(element_text(child)) for child in children):
                candidates.append((div, children))
        return candidates

    def _parse(self, source: ParserInput):
        element = _as_element(source, ["div"])
        if element is None:
            return None

        groups: "OrderedDict[int, List[Tuple[Tag, List[Tag]]]]" = OrderedDict()
        for div, children in self._row_candidates(element):
            groups.setdefault(len(children), []).append((div, children))

        best: List[Tuple[Tag, List[Tag]]] = []
        for members in groups.values():
            # a grid wrapper has as many children as its rows have cells
            members = [
                (div, children) for div, children in members
                if not any(other is not div and any(p is div for p in other.parents)
                           for other, _ in members)
            ]
            if len(members) > len(best):
                best = members

        if len(best) < 2:
            return None

        headers = [text for text in (element_text(child) for child in best[0][1]) if text]
        rows: List[List[str]] = []
        for _, children in best[1:]:
            cells = [element_text(child) for child in children]
            if any(cells):
                rows.append(cells)

        if len(headers) >= 2 and _count_meaningful(headers) < 2:
            logger.debug(f"Rejecting sibling grid with symbol-only headers: {headers}")
            return None

        return headers, rows


class TextBlockTableParser(BaseTableParser):
    """
    Parser for tables written as plain text inside any element.

    Pipe-delimited lines are tried first; otherwise columns separated by
    two or more spaces or a tab.
    """

    strategy = ParserStrategy.TEXT_BLOCK

    def can_parse(self, element: Tag) -> bool:
        return self.accepts_text(element.get_text())

    def accepts_text(self, text: str) -> bool:
        """Noise and length filter applied before any parsing."""
        if any(marker in text for marker in self.settings.noise_markers):
            return False
        return len(text.strip()) >= self.settings.min_text_length

    def _parse(self, source: ParserInput):
        text = _as_text(source)
        if not self.accepts_text(text):
            return None

        lines = non_empty_lines(text)
        parsed = self._parse_pipes(lines)
        if parsed is None:
            parsed = self._parse_spaces(lines)
        return parsed

    @staticmethod
    def _parse_pipes(lines: List[str]):
        pipe_lines = [line for line in lines if "|" in line]
        if len(pipe_lines) < 2:
            return None

        if len(split_pipe_tokens(pipe_lines[0])) < 2:
            return None
        headers = split_pipe_line(pipe_lines[0])

        body = pipe_lines[1:]
        if body and "---" in body[0]:
            body = body[1:]

        rows = []
        for line in body:
            cells = split_pipe_line(line)
            if any(cells):
                rows.append(cells)

        if not rows:
            return None
        return headers, rows

    @staticmethod
    def _parse_spaces(lines: List[str]):
        split_lines = []
        for line in lines:
            if "|" in line:
                continue
            cells = [cell.strip() for cell in SPACE_SPLIT_PATTERN.split(line) if cell.strip()]
            if len(cells) >= 2:
                split_lines.append(cells)

        if len(split_lines) < 2:
            return None

        headers = split_lines[0]
        rows = [cells for cells in split_lines[1:] if len(cells) == len(headers)]
        if not rows:
            return None
        return headers, rows


PARSER_CLASSES = {
    ParserStrategy.HTML_TABLE: HTMLTableParser,
    ParserStrategy.MARKDOWN_PIPE: MarkdownPipeTableParser,
    ParserStrategy.ARIA_ROLE: DivRoleTableParser,
    ParserStrategy.SIBLING_STRUCTURE: SiblingStructureTableParser,
    ParserStrategy.TEXT_BLOCK: TextBlockTableParser,
}


def build_parsers(settings: Optional[Settings] = None) -> Dict[ParserStrategy, BaseTableParser]:
    """
    Create one parser per strategy.

    Args:
        settings: Settings shared by every parser

    Returns:
        Mapping of strategy to parser
    """
    settings = settings or Settings()
    return {strategy: parser_class(settings) for strategy, parser_class in PARSER_CLASSES.items()}


def parse_with_strategies(
    element: Tag,
    parsers: Dict[ParserStrategy, BaseTableParser],
    order: Optional[Sequence[ParserStrategy]] = None
) -> Optional[ParsedTable]:
    """
    Try parsers in priority order and return the first accepted table.

    Args:
        element: Candidate element
        parsers: Strategy to parser mapping, see ``build_parsers``
        order: Strategies to try, defaults to ``DEFAULT_STRATEGY_ORDER``

    Returns:
        The first accepted table, or None
    """
    for strategy in order or DEFAULT_STRATEGY_ORDER:
        parser = parsers.get(strategy)
        if parser is None:
            continue
        parsed = parser.parse_element(element)
        if parsed is not None:
            logger.debug(f"Matched {strategy.value} on <{element.name}>: {parsed.shape}")
            return parsed
    return None
