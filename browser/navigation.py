"""
Browser navigation module.

This module opens chat pages and waits for their content to settle.
"""

import logging
from typing import Dict, Any, Optional

from playwright.async_api import Page, Response, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from config.settings import Settings
from utils.errors import NavigationError

# Set up logger
logger = logging.getLogger(__name__)

# Elements that signal rendered table content
CONTENT_SELECTOR = "table, pre, [role='table']"


async def navigate_to(
    page: Page,
    url: str,
    settings: Settings,
    wait_until: str = "load",
    timeout: Optional[int] = None
) -> Dict[str, Any]:
    """
    Navigate to a URL.

    Args:
        page: The page to navigate
        url: The URL to navigate to
        settings: Application settings
        wait_until: When to consider navigation finished (load, domcontentloaded, networkidle)
        timeout: Optional navigation timeout in milliseconds

    Returns:
        Result of the navigation

    Raises:
        NavigationError: If the page cannot be loaded
    """
    logger.info(f"Navigating to {url}")

    if timeout is None:
        timeout = settings.navigation_timeout

    # Bare host names get https
    if not url.startswith(('http://', 'https://', 'file://')):
        url = f"https://{url}"

    try:
        response: Optional[Response] = await page.goto(
            url,
            wait_until=wait_until,
            timeout=timeout
        )
    except PlaywrightTimeoutError:
        logger.error(f"Navigation to {url} timed out after {timeout}ms")
        raise NavigationError(f"Timed out after {timeout}ms", url)
    except PlaywrightError as e:
        logger.error(f"Navigation error: {str(e)}")
        raise NavigationError(str(e), url)

    final_url = page.url
    status_code = response.status if response else None

    if response and not response.ok:
        logger.warning(f"Navigation received non-OK status code: {status_code}")
        return {
            "status": "warning",
            "url": final_url,
            "original_url": url,
            "redirected": final_url != url,
            "status_code": status_code,
            "message": f"Page loaded with status code {status_code}"
        }

    return {
        "status": "success",
        "url": final_url,
        "original_url": url,
        "redirected": final_url != url,
        "status_code": status_code,
        "message": f"Successfully navigated to {final_url}"
    }


async def wait_for_content(page: Page, timeout: Optional[int] = None) -> bool:
    """
    Wait until the page shows table-like content.

    Args:
        page: The page to wait on
        timeout: Timeout in milliseconds

    Returns:
        True if content appeared, False if the wait timed out
    """
    try:
        await page.wait_for_selector(CONTENT_SELECTOR, state="attached", timeout=timeout)
        return True
    except PlaywrightTimeoutError:
        logger.debug(f"No table content appeared within {timeout}ms")
        return False
