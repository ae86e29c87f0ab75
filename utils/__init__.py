"""
Utilities package.

This package provides various utility functions and classes for the application.
"""

from utils.errors import (
    TableWatchError, BrowserError, NavigationError, ExtractionError,
    DetachedElementError, ValidationError, ConfigError,
    format_exception, error_to_user_message, log_exception
)

from utils.logging import (
    setup_logging, setup_structured_logging, JsonFormatter,
    LogContext, RequestLogger, PerformanceLogger
)

from utils.validation import (
    validate_url, validate_selector, require_html, require_url, require_selector
)

__all__ = [
    # Errors
    'TableWatchError', 'BrowserError', 'NavigationError', 'ExtractionError',
    'DetachedElementError', 'ValidationError', 'ConfigError',
    'format_exception', 'error_to_user_message', 'log_exception',

    # Logging
    'setup_logging', 'setup_structured_logging', 'JsonFormatter',
    'LogContext', 'RequestLogger', 'PerformanceLogger',

    # Validation
    'validate_url', 'validate_selector', 'require_html', 'require_url',
    'require_selector'
]
