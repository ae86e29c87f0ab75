"""
Error handling utilities module.

This module provides exception classes and error handling utilities for the application.
"""

import logging
import traceback
from typing import Dict, Any, Optional

# Set up logger
logger = logging.getLogger(__name__)


class TableWatchError(Exception):
    """Base exception class for the application."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Error message
            details: Additional error details
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)


class BrowserError(TableWatchError):
    """Exception raised for browser-related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Browser error: {message}", details)


class NavigationError(BrowserError):
    """Exception raised for navigation-related errors."""

    def __init__(self, message: str, url: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Error message
            url: The URL that failed to navigate
            details: Additional error details
        """
        details = details or {}
        details["url"] = url
        super().__init__(f"Navigation error: {message}", details)


class ExtractionError(TableWatchError):
    """Exception raised when no table can be extracted where one was requested."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Extraction error: {message}", details)


class DetachedElementError(TableWatchError):
    """Exception raised when an element left the document while it was being read."""

    def __init__(self, key: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            key: Registry key of the detached element
            details: Additional error details
        """
        details = details or {}
        details["key"] = key
        super().__init__(f"Element is no longer attached: {key}", details)


class ValidationError(TableWatchError):
    """Exception raised for validation errors."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Error message
            field: The field that failed validation
            details: Additional error details
        """
        details = details or {}
        if field is not None:
            details["field"] = field
        super().__init__(f"Validation error: {message}", details)


class ConfigError(TableWatchError):
    """Exception raised for configuration errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Configuration error: {message}", details)


def format_exception(
    exc: Exception,
    include_traceback: bool = True
) -> Dict[str, Any]:
    """
    Format an exception into a standardized dictionary.

    Args:
        exc: The exception to format
        include_traceback: Whether to include the traceback

    Returns:
        Dictionary with formatted exception details
    """
    result = {
        "type": exc.__class__.__name__,
        "message": str(exc)
    }

    if isinstance(exc, TableWatchError) and exc.details:
        result["details"] = exc.details

    if include_traceback:
        result["traceback"] = traceback.format_exc()

    return result


def error_to_user_message(error: Exception) -> str:
    """
    Convert an error to a user-friendly message.

    Args:
        error: The exception to convert

    Returns:
        User-friendly error message
    """
    if isinstance(error, NavigationError):
        url = getattr(error, "details", {}).get("url", "the requested page")
        return f"Could not open {url}. The page might be unavailable or taking too long to load."

    elif isinstance(error, BrowserError):
        return "The browser could not complete the request. Check that a browser is installed."

    elif isinstance(error, ExtractionError):
        return "No table could be extracted from the selected content."

    elif isinstance(error, DetachedElementError):
        return "The table disappeared from the page before it could be read."

    elif isinstance(error, ValidationError):
        field = getattr(error, "details", {}).get("field", "input")
        return f"There was a problem with the {field}. Please check it and try again."

    elif isinstance(error, ConfigError):
        return "There's a configuration issue. Please check your settings and try again."

    return f"An error occurred: {str(error)}"


def log_exception(
    error: Exception,
    level: str = "error",
    include_traceback: bool = True
) -> None:
    """
    Log an exception with appropriate formatting.

    Args:
        error: The exception to log
        level: Logging level ('debug', 'info', 'warning', 'error', 'critical')
        include_traceback: Whether to include the traceback
    """
    logger_method = getattr(logger, level.lower(), logger.error)

    error_type = error.__class__.__name__
    error_message = str(error)

    if isinstance(error, TableWatchError) and error.details:
        details_str = ", ".join([f"{k}={v}" for k, v in error.details.items()])
        log_message = f"{error_type}: {error_message} - {details_str}"
    else:
        log_message = f"{error_type}: {error_message}"

    if include_traceback:
        logger_method(log_message, exc_info=error)
    else:
        logger_method(log_message)
