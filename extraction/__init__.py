"""
Table extraction package.

This package finds tables in chat page documents and turns them into
normalized records: parsers per rendering style, a generic scanner,
platform detectors for ChatGPT and Claude, and chat title extraction.
"""

from extraction.models import (
    ParsedTable, TableCandidate, TableData, TableDetectionResult, BatchTableDetectionResult
)
from extraction.dom import HostDocument, MutationRecord
from extraction.parsers import (
    ParserStrategy, DEFAULT_STRATEGY_ORDER, HTMLTableParser, MarkdownPipeTableParser,
    DivRoleTableParser, SiblingStructureTableParser, TextBlockTableParser,
    build_parsers, parse_with_strategies, normalize_table, has_pipe_table_shape, is_ui_element
)
from extraction.selectors import classify_source, get_platform_profile
from extraction.scanner import CandidateScanner
from extraction.platforms import ChatGPTDetector, ClaudeDetector
from extraction.detector import TableDetector, build_table_data, extract_table_data
from extraction.titles import extract_chat_title, sanitize_chat_title

__all__ = [
    'ParsedTable',
    'TableCandidate',
    'TableData',
    'TableDetectionResult',
    'BatchTableDetectionResult',
    'HostDocument',
    'MutationRecord',
    'ParserStrategy',
    'DEFAULT_STRATEGY_ORDER',
    'HTMLTableParser',
    'MarkdownPipeTableParser',
    'DivRoleTableParser',
    'SiblingStructureTableParser',
    'TextBlockTableParser',
    'build_parsers',
    'parse_with_strategies',
    'normalize_table',
    'has_pipe_table_shape',
    'is_ui_element',
    'classify_source',
    'get_platform_profile',
    'CandidateScanner',
    'ChatGPTDetector',
    'ClaudeDetector',
    'TableDetector',
    'build_table_data',
    'extract_table_data',
    'extract_chat_title',
    'sanitize_chat_title',
]
