"""Tests for the CORS-safe HTTP client."""

import httpx

from vault_copilot.safe_http import _strip_browser_headers, create_safe_http_client


def test_strips_browser_headers():
    request = httpx.Request(
        "POST", "https://example.com/v1/chat",
        headers={"Origin": "app://obsidian.md", "Referer": "x", "Authorization": "Bearer k"},
    )
    _strip_browser_headers(request)
    assert "origin" not in request.headers
    assert "referer" not in request.headers
    assert request.headers["authorization"] == "Bearer k"


def test_client_has_request_hook():
    client = create_safe_http_client(timeout=3.0)
    try:
        assert _strip_browser_headers in client.event_hooks["request"]
        assert client.timeout.read == 3.0
    finally:
        client.close()
