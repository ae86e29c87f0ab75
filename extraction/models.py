"""
Data model for detected tables.

This module defines the records produced by the parsers, the detectors and
the batch view.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional

from bs4 import Tag

# Page sources recognised by the classifier
SOURCE_CHATGPT = "chatgpt"
SOURCE_CLAUDE = "claude"
SOURCE_GEMINI = "gemini"
SOURCE_OTHER = "other"


@dataclass
class ParsedTable:
    """
    Output of a single parser run.

    Attributes:
        headers: Column labels, possibly empty
        rows: Data rows, each a list of cell strings
        strategy: Name of the parsing strategy that produced the table
    """
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)
    strategy: str = ""

    def is_empty(self) -> bool:
        return not self.headers and not self.rows

    @property
    def shape(self) -> tuple:
        return (len(self.headers), len(self.rows))


@dataclass
class TableCandidate:
    """An element accepted by a detector, with its parsed table."""
    element: Tag
    table: ParsedTable


@dataclass
class TableData:
    """
    A normalized, exportable table.

    When ``headers`` is non-empty every row holds exactly ``len(headers)``
    cells. ``chat_title`` is carried through for exporters and never filled
    in by the detectors.
    """
    id: str
    headers: List[str]
    rows: List[List[str]]
    source: str
    timestamp: int
    url: str
    chat_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to a JSON-ready dictionary.

        Returns:
            Dictionary representation
        """
        data = {
            "id": self.id,
            "headers": list(self.headers),
            "rows": [list(row) for row in self.rows],
            "source": self.source,
            "timestamp": self.timestamp,
            "url": self.url,
        }
        if self.chat_title is not None:
            data["chatTitle"] = self.chat_title
        return data

    def same_content(self, other: "TableData") -> bool:
        """Compare headers and rows only."""
        return self.headers == other.headers and self.rows == other.rows


@dataclass
class TableDetectionResult:
    """
    A tracked table: the live element, its data and an overlay anchor.
    """
    element: Tag
    data: TableData
    position: Dict[str, float] = field(default_factory=lambda: {"x": 0.0, "y": 0.0})
    key: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = self.data.to_dict()
        data["position"] = dict(self.position)
        return data


@dataclass
class BatchTableDetectionResult:
    """
    Aggregate view over every table tracked on a page.

    ``count`` always equals ``len(tables)``.
    """
    tables: List[TableDetectionResult]
    source: str
    timestamp: int
    chat_title: str = ""

    @property
    def count(self) -> int:
        return len(self.tables)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tables": [table.to_dict() for table in self.tables],
            "count": self.count,
            "source": self.source,
            "chatTitle": self.chat_title,
            "timestamp": self.timestamp,
        }
