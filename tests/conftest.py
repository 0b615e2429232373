"""Shared fixtures and utilities for Tumblr client tests."""

import asyncio
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from tumblr_client.oauth.manager import AuthState, CredentialManager
from tumblr_client.platform import SystemOpener

CONSUMER_KEY = "test_consumer_key"
CONSUMER_SECRET = "test_consumer_secret"
API_BASE = "https://api.tumblr.test"


# ============================================================================
# Fakes
# ============================================================================


class FakeOpener(SystemOpener):
    """Opener that records URLs and optionally runs a hook instead of a browser."""

    name = "fake"

    def __init__(
        self,
        result: bool = True,
        on_open: Callable[[str], None] | None = None,
    ):
        self.result = result
        self.on_open = on_open
        self.opened: list[str] = []

    def open(self, url: str) -> bool:
        self.opened.append(url)
        if self.on_open:
            self.on_open(url)
        return self.result


async def send_get(port: int, target: str) -> str:
    """Make a raw GET request to the local listener and return the response."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(f"GET {target} HTTP/1.1\r\nHost: localhost\r\n\r\n".encode())
    await writer.drain()
    response = await reader.read()
    writer.close()
    await writer.wait_closed()
    return response.decode("utf-8")


def posts_page(ids: list[int], next_href: str | None = None) -> dict[str, Any]:
    """Build a list-endpoint response body."""
    response: dict[str, Any] = {"posts": [{"id": i, "type": "text"} for i in ids]}
    if next_href is not None:
        response["_links"] = {"next": {"href": next_href, "method": "GET"}}
    return {"meta": {"status": 200, "msg": "OK"}, "response": response}


def json_response(status_code: int, body: Any) -> httpx.Response:
    return httpx.Response(status_code, text=json.dumps(body))


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def opener() -> FakeOpener:
    """An opener that never launches a real browser."""
    return FakeOpener()


@pytest.fixture
def requests_log() -> list[httpx.Request]:
    """Requests seen by a mock transport."""
    return []


@pytest.fixture
def authenticated_manager(opener: FakeOpener) -> CredentialManager:
    """A manager that already holds an access token."""
    manager = CredentialManager(
        CONSUMER_KEY,
        CONSUMER_SECRET,
        httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
        opener=opener,
    )
    manager.credential.set_token("access_token", "access_secret")
    manager._state = AuthState.AUTHENTICATED
    return manager
