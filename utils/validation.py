"""
Validation utilities module.

This module provides input validation for the CLI and the HTTP API.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

import soupsieve

from utils.errors import ValidationError

# Set up logger
logger = logging.getLogger(__name__)

# Upper bound for documents accepted over the API
MAX_HTML_LENGTH = 10 * 1024 * 1024


def validate_url(url: str, allow_relative: bool = False) -> bool:
    """
    Validate a URL.

    Args:
        url: The URL to validate
        allow_relative: Whether to allow relative URLs

    Returns:
        True if valid, False otherwise
    """
    if not url:
        return False

    if allow_relative and url.startswith('/'):
        return True

    try:
        result = urlparse(url)
        return all([result.scheme, result.netloc])
    except ValueError:
        return False


def validate_selector(selector: str) -> bool:
    """
    Check that a string is a CSS selector the tree can evaluate.

    Args:
        selector: CSS selector

    Returns:
        True if the selector compiles, False otherwise
    """
    if not selector or not selector.strip():
        return False
    try:
        soupsieve.compile(selector)
        return True
    except soupsieve.SelectorSyntaxError:
        return False


def require_html(html: Optional[str], field: str = "html") -> str:
    """
    Validate a document body.

    Args:
        html: Markup to validate
        field: Field name reported in the error

    Returns:
        The markup unchanged

    Raises:
        ValidationError: If the markup is empty or too large
    """
    if html is None or not html.strip():
        raise ValidationError("Document is empty", field=field)
    if len(html) > MAX_HTML_LENGTH:
        raise ValidationError(
            f"Document exceeds {MAX_HTML_LENGTH} characters",
            field=field,
            details={"length": len(html)}
        )
    return html


def require_url(url: Optional[str], field: str = "url", allow_empty: bool = True) -> str:
    """
    Validate a page URL.

    Args:
        url: URL to validate
        field: Field name reported in the error
        allow_empty: Whether an empty URL is accepted

    Returns:
        The URL, or an empty string when none was given

    Raises:
        ValidationError: If the URL is malformed
    """
    if not url:
        if allow_empty:
            return ""
        raise ValidationError("URL is required", field=field)
    if not validate_url(url):
        raise ValidationError(f"Invalid URL: {url}", field=field)
    return url


def require_selector(selector: Optional[str], field: str = "selector") -> str:
    """
    Validate a CSS selector.

    Raises:
        ValidationError: If the selector is empty or does not compile
    """
    if not validate_selector(selector or ""):
        logger.debug(f"Rejected selector: {selector!r}")
        raise ValidationError(f"Invalid CSS selector: {selector!r}", field=field)
    return selector
