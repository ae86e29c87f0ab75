"""
Source classification and platform selectors.

This module maps a page URL to the chat platform that rendered it and holds
the CSS selectors each platform needs: assistant message containers, prose
blocks and chat title locations.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from extraction.models import SOURCE_CHATGPT, SOURCE_CLAUDE, SOURCE_GEMINI, SOURCE_OTHER

# Set up logger
logger = logging.getLogger(__name__)

# URL fragments per source, checked in order
SOURCE_URL_PATTERNS: List[Tuple[str, Tuple[str, ...]]] = [
    (SOURCE_CHATGPT, ("chat.openai.com", "chatgpt.com")),
    (SOURCE_CLAUDE, ("claude.ai",)),
    (SOURCE_GEMINI, ("gemini.google.com", "bard.google.com")),
]


def classify_source(url: Optional[str]) -> str:
    """
    Classify a page URL into a chat platform.

    Args:
        url: Page address, may be empty

    Returns:
        One of "chatgpt", "claude", "gemini" or "other"
    """
    if not url:
        return SOURCE_OTHER

    for source, fragments in SOURCE_URL_PATTERNS:
        if any(fragment in url for fragment in fragments):
            return source
    return SOURCE_OTHER


@dataclass
class TitleSelectorGroup:
    """
    Selectors tried in order for a chat title.

    Attributes:
        selectors: CSS selectors, first match with acceptable text wins
        reject: Lowercase fragments that disqualify a candidate
    """
    selectors: List[str]
    reject: List[str] = field(default_factory=list)


@dataclass
class PlatformProfile:
    """
    Everything platform-specific the detectors and title extraction need.
    """
    source: str
    display_name: str
    container_selectors: List[str] = field(default_factory=list)
    prose_selector: str = ""
    title_groups: List[TitleSelectorGroup] = field(default_factory=list)
    first_message_selector: str = ""
    title_suffixes: List[str] = field(default_factory=list)

    @property
    def default_title(self) -> str:
        return f"{self.display_name}_Chat"


CHATGPT_PROFILE = PlatformProfile(
    source=SOURCE_CHATGPT,
    display_name="ChatGPT",
    container_selectors=['[data-message-author-role="assistant"]'],
    prose_selector='.markdown, .prose, [class*="content"], p',
    title_groups=[
        TitleSelectorGroup(
            selectors=[
                '[class*="nav-conversation-title"]',
                '[class*="ConversationTitle"]',
                ".conversation-title",
                ".chat-title",
                "nav .active",
                'nav [aria-current="page"]',
            ],
            reject=["new chat"],
        ),
        TitleSelectorGroup(
            selectors=["main h1", '[class*="main-title"]', '[class*="chat-title"]', '[role="heading"]'],
            reject=["chatgpt"],
        ),
    ],
    first_message_selector='[data-message-author-role="user"], [data-message-author="user"]',
    title_suffixes=[" - ChatGPT"],
)

CLAUDE_PROFILE = PlatformProfile(
    source=SOURCE_CLAUDE,
    display_name="Claude",
    container_selectors=[
        '[data-testid="conversation-turn"]',
        '[class*="message"]',
        '[class*="assistant"]',
        ".prose",
        '[class*="content"]',
    ],
    prose_selector="div, p, span",
    title_groups=[
        TitleSelectorGroup(
            selectors=[
                '[class*="ConversationTitle"]',
                '[class*="chat-title"]',
                ".conversation-title",
                ".chat-title",
                "header h1",
                "header h2",
                '[role="heading"]',
            ],
            reject=["claude"],
        ),
        TitleSelectorGroup(
            selectors=[".sidebar .active", ".chat-list .selected", '[aria-current="page"]', ".conversation-item.active"],
            reject=["new chat"],
        ),
    ],
    first_message_selector=".user-message, .human-message",
    title_suffixes=[" - Claude"],
)

GEMINI_PROFILE = PlatformProfile(
    source=SOURCE_GEMINI,
    display_name="Gemini",
    title_groups=[
        TitleSelectorGroup(
            selectors=[
                '[class*="chat-title"]',
                '[class*="conversation-title"]',
                ".chat-header h1",
                ".chat-header h2",
                "header h1",
                "header h2",
                '[role="heading"]',
            ],
            reject=["gemini"],
        ),
        TitleSelectorGroup(
            selectors=["mat-tree-node.active", ".chat-list .selected", '[aria-current="page"]',
                       ".conversation-item.active", "nav .active"],
            reject=["new chat"],
        ),
    ],
    first_message_selector='.user-message, [data-message-author="user"]',
    title_suffixes=[" - Gemini", " - Google"],
)

OTHER_PROFILE = PlatformProfile(
    source=SOURCE_OTHER,
    display_name="AI",
    title_groups=[
        TitleSelectorGroup(selectors=["main h1", "header h1", '[role="heading"]']),
    ],
)

PLATFORM_PROFILES: Dict[str, PlatformProfile] = {
    profile.source: profile
    for profile in (CHATGPT_PROFILE, CLAUDE_PROFILE, GEMINI_PROFILE, OTHER_PROFILE)
}


def get_platform_profile(source: str) -> PlatformProfile:
    """
    Look up the selector profile for a source.

    Args:
        source: Source tag from ``classify_source``

    Returns:
        The matching profile, the generic one for unknown sources
    """
    profile = PLATFORM_PROFILES.get(source)
    if profile is None:
        logger.debug(f"No platform profile for source '{source}', using generic profile")
        return OTHER_PROFILE
    return profile
