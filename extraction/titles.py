"""
Chat title extraction.

Exporters name files after the conversation, so each platform is searched
for a title: navigation and header elements first, then the first user
message, the page title and any descriptive heading.
"""

import logging
import re
from typing import Optional

from extraction.dom import HostDocument
from extraction.parsers import element_text
from extraction.selectors import classify_source, get_platform_profile

# Set up logger
logger = logging.getLogger(__name__)

# Words that mark a heading as generic UI text rather than a title
GENERIC_TITLE_WORDS = [
    "chat", "conversation", "assistant", "ai", "对话", "新建",
    "menu", "settings", "welcome", "hello", "untitled",
]

MAX_TITLE_LENGTH = 50
MIN_FIRST_MESSAGE_TITLE = 6
INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


def is_valid_chat_title(title: Optional[str]) -> bool:
    """
    Check whether a heading reads like a conversation title.

    Args:
        title: Candidate text

    Returns:
        True for text of three or more characters without generic words
    """
    if not title or len(title) < 3:
        return False
    lower = title.lower()
    return not any(word in lower for word in GENERIC_TITLE_WORDS)


def sanitize_chat_title(title: Optional[str]) -> str:
    """
    Make a title safe to use in a file name.

    Args:
        title: Raw title

    Returns:
        Title without reserved characters, whitespace replaced by
        underscores, at most 50 characters, "Chat" when nothing is left
    """
    clean = INVALID_FILENAME_CHARS.sub("", title or "")
    clean = re.sub(r"\s+", "_", clean)
    clean = clean[:MAX_TITLE_LENGTH].strip()
    return clean or "Chat"


def extract_chat_title(document: HostDocument, source: Optional[str] = None) -> str:
    """
    Find the conversation title of a chat page.

    Args:
        document: Page document
        source: Source tag, classified from the document URL when omitted

    Returns:
        The best title found, or "<Platform>_Chat"
    """
    profile = get_platform_profile(source or classify_source(document.url))

    for group in profile.title_groups:
        for selector in group.selectors:
            text = element_text(document.select_one(selector))
            if text and not any(word in text.lower() for word in group.reject):
                logger.debug(f"Chat title from '{selector}': {text}")
                return text

    if profile.first_message_selector:
        text = element_text(document.select_one(profile.first_message_selector))
        short_title = text[:MAX_TITLE_LENGTH].strip()
        if len(short_title) >= MIN_FIRST_MESSAGE_TITLE:
            logger.debug(f"Chat title from first message: {short_title}")
            return short_title

    page_title = element_text(document.soup.title)
    for suffix in profile.title_suffixes:
        page_title = page_title.replace(suffix, "")
    page_title = page_title.strip()
    if page_title and page_title.lower() != profile.display_name.lower():
        logger.debug(f"Chat title from page title: {page_title}")
        return page_title

    for heading in document.select("h1, h2, h3"):
        text = element_text(heading)
        if is_valid_chat_title(text):
            logger.debug(f"Chat title from heading: {text}")
            return text

    return profile.default_title
