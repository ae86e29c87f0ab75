"""
Browser package.

This package launches browsers, opens chat pages and watches them for
tables.
"""

from browser.manager import BrowserManager
from browser.navigation import navigate_to, wait_for_content
from browser.watcher import PageWatcher

__all__ = [
    'BrowserManager',
    'navigate_to',
    'wait_for_content',
    'PageWatcher'
]
