"""
CORS-safe HTTP transport
========================
Some endpoints reject requests that look like they come from a browser
origin. Models flagged with ``enable_cors`` send their traffic through an
``httpx.Client`` that strips browser origin headers before each request.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger("vault_copilot.safe_http")

_BROWSER_HEADERS = ("origin", "referer", "sec-fetch-mode", "sec-fetch-site")


def _strip_browser_headers(request: httpx.Request) -> None:
    for header in _BROWSER_HEADERS:
        if header in request.headers:
            del request.headers[header]


def create_safe_http_client(timeout: Optional[float] = None) -> httpx.Client:
    """Return an httpx client suitable for CORS-restricted endpoints."""
    logger.debug("Creating CORS-safe HTTP client (timeout=%s)", timeout)
    return httpx.Client(
        timeout=timeout,
        follow_redirects=True,
        event_hooks={"request": [_strip_browser_headers]},
    )
