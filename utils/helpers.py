"""
Helper utilities module.

Small text and time helpers shared by the detectors and the registry.
"""

import time
import hashlib
from typing import List


def generate_timestamp() -> int:
    """
    Generate a current timestamp in milliseconds.

    Returns:
        Current timestamp in milliseconds
    """
    return int(time.time() * 1000)


def content_fingerprint(text: str, length: int = 100) -> str:
    """
    Fingerprint a block of text by its leading characters.

    Two blocks whose trimmed text starts with the same ``length`` characters
    share a fingerprint.

    Args:
        text: Text to fingerprint
        length: Number of leading characters that are hashed

    Returns:
        SHA-1 hex digest of the trimmed prefix
    """
    prefix = (text or "").strip()[:length]
    return hashlib.sha1(prefix.encode()).hexdigest()


def non_empty_lines(text: str) -> List[str]:
    """
    Split text into trimmed lines, dropping blank ones.

    Args:
        text: Text to split

    Returns:
        List of non-empty trimmed lines
    """
    return [line.strip() for line in (text or "").split("\n") if line.strip()]
