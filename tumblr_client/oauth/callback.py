"""Localhost listener that captures the OAuth 1.0a grant redirect.

After the user approves (or denies) access on the authorization page, the
browser is redirected to a local URL carrying `oauth_token` and
`oauth_verifier`. This module provides an ephemeral HTTP server that:
- Binds exactly the host/port of the redirect URL
- Captures the first request made to the redirect path
- Returns a user-friendly HTML page for the grant or the denial
- Ignores favicon and unrelated requests
"""

import asyncio
import html
import logging
import socket
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any
from urllib.parse import parse_qs, urlsplit

from ..platform import SystemOpener, get_system_opener

logger = logging.getLogger(__name__)

# Default time to wait for the user to act on the authorization page
DEFAULT_TIMEOUT = 60  # seconds

REDIRECT_PATH = "/authenticationredirect/"

# Time allowed for a connection to send its request line and headers
READ_TIMEOUT = 10  # seconds


class GrantError(Exception):
    """Error while waiting for the authorization redirect."""

    pass


class GrantTimeoutError(GrantError):
    """No redirect arrived before the timeout."""

    pass


@dataclass
class GrantResult:
    """Parameters captured from the authorization redirect.

    Attributes:
        verifier: The oauth_verifier, present only when the user granted access
        token: The oauth_token echoed back by the provider
    """

    verifier: str | None = None
    token: str | None = None

    def is_granted(self) -> bool:
        """Check if the user granted access."""
        return self.verifier is not None


GRANTED_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Tumblr Authorization Successful</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: #001935;
        }}
        .card {{
            background: white;
            padding: 40px 60px;
            border-radius: 16px;
            text-align: center;
        }}
        h1 {{ color: #1a1a1a; margin: 0 0 8px 0; font-size: 24px; }}
        p {{ color: #666; margin: 0 0 8px 0; }}
        code {{ font-size: 13px; }}
    </style>
</head>
<body>
    <div class="card">
        <h1>Tumblr Authorization Successful</h1>
        <p>Token: <code>{token}</code></p>
        <p>You can close this window and return to the terminal.</p>
    </div>
</body>
</html>"""

DENIED_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Tumblr Authorization Failed</title>
    <style>
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: #c0392b;
        }
        .card {
            background: white;
            padding: 40px 60px;
            border-radius: 16px;
            text-align: center;
        }
        h1 { color: #1a1a1a; margin: 0 0 8px 0; font-size: 24px; }
        p { color: #666; margin: 0; }
    </style>
</head>
<body>
    <div class="card">
        <h1>Tumblr Authorization Failed</h1>
        <p>Access was not granted. You can close this window now.</p>
    </div>
</body>
</html>"""


def find_available_port() -> int:
    """Find a free loopback port.

    Binds port 0 so the OS picks a free port, reads it back and releases
    the socket straight away. The port is only reserved for as long as
    the socket is open.

    Returns:
        An available port number
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port: int = s.getsockname()[1]
    return port


def build_redirect_url(port: int, host: str = "127.0.0.1") -> str:
    """Build the local redirect URL for a port."""
    return f"http://{host}:{port}{REDIRECT_PATH}"


def parse_callback_url(url: str) -> GrantResult:
    """Parse the authorization redirect's query parameters.

    Args:
        url: The request target, e.g. "/authenticationredirect/?oauth_token=..."

    Returns:
        GrantResult with the first value of each parameter
    """
    params = parse_qs(urlsplit(url).query, keep_blank_values=True)

    def get_param(name: str) -> str | None:
        values = params.get(name, [])
        return values[0] if values else None

    return GrantResult(
        verifier=get_param("oauth_verifier"),
        token=get_param("oauth_token"),
    )


class LocalGrantListener:
    """Ephemeral HTTP server bound to the grant redirect URL.

    Usage:
        async with LocalGrantListener(redirect_url, timeout=60) as listener:
            # Send the user to the authorization page
            result = await listener.wait_for_grant()
    """

    def __init__(self, redirect_url: str, timeout: float = DEFAULT_TIMEOUT):
        """Initialize the listener.

        Args:
            redirect_url: The exact URL the provider redirects to
            timeout: Seconds to wait for the redirect
        """
        parts = urlsplit(redirect_url)
        if parts.scheme != "http" or not parts.hostname or parts.port is None:
            raise GrantError(f"Unsupported redirect URL: {redirect_url}")

        self.redirect_url = redirect_url
        self.timeout = timeout
        self.host: str = parts.hostname
        self.port: int = parts.port
        self.path: str = parts.path or "/"

        self._server: asyncio.Server | None = None
        self._result: GrantResult | None = None
        self._result_event: asyncio.Event | None = None
        self._connections: set[asyncio.StreamWriter] = set()

    @property
    def is_running(self) -> bool:
        return self._server is not None

    async def start(self) -> None:
        """Start listening on the redirect URL's host and port."""
        self._result = None
        self._result_event = asyncio.Event()

        self._server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            self.port,
        )
        logger.debug(f"Started grant listener on {self.redirect_url}")

    async def stop(self) -> None:
        """Stop the listener.

        Open connections, such as idle browser preconnects, are closed
        before waiting on the server.
        """
        if self._server:
            self._server.close()
            for writer in list(self._connections):
                writer.close()
            await self._server.wait_closed()
            self._server = None
            logger.debug(f"Stopped grant listener on {self.redirect_url}")

    async def wait_for_grant(self) -> GrantResult:
        """Wait for the authorization redirect.

        Returns:
            GrantResult from the first redirect request

        Raises:
            GrantTimeoutError: If no redirect arrives within the timeout
        """
        if self._result_event is None:
            raise GrantError("Listener not started")

        try:
            await asyncio.wait_for(self._result_event.wait(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise GrantTimeoutError(
                f"Timeout waiting for authorization after {self.timeout} seconds"
            ) from None

        if self._result is None:
            raise GrantError("No authorization result received")

        return self._result

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle one incoming HTTP connection."""
        self._connections.add(writer)
        try:
            try:
                request_line = await asyncio.wait_for(
                    self._read_request_head(reader), timeout=READ_TIMEOUT
                )
            except asyncio.TimeoutError:
                logger.debug("Dropping idle connection to grant listener")
                return

            if not request_line:
                # Closed without sending anything
                return

            parts = request_line.decode("utf-8", errors="replace").strip().split(" ")
            if len(parts) < 2:
                await self._send_response(writer, HTTPStatus.BAD_REQUEST, "Invalid request")
                return

            method, target = parts[0], parts[1]

            if method != "GET":
                await self._send_response(
                    writer, HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed"
                )
                return

            if urlsplit(target).path != self.path:
                # Browsers also ask for /favicon.ico
                await self._send_response(writer, HTTPStatus.NOT_FOUND, "Not found")
                return

            if self._result is not None:
                await self._send_response(writer, HTTPStatus.GONE, "Already handled")
                return

            result = parse_callback_url(target)
            self._result = result

            if result.is_granted():
                logger.info("Permissions grant allowed by user")
                page = GRANTED_HTML.format(token=html.escape(result.token or ""))
            else:
                logger.critical("Permissions grant denied by user")
                page = DENIED_HTML
            await self._send_html_response(writer, HTTPStatus.OK, page)

            if self._result_event:
                self._result_event.set()

        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.warning(f"Error handling grant redirect: {e}")

        finally:
            self._connections.discard(writer)
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _read_request_head(self, reader: asyncio.StreamReader) -> bytes:
        """Read the request line, discarding the headers that follow."""
        request_line = await reader.readline()
        while request_line:
            header_line = await reader.readline()
            if header_line in (b"\r\n", b"\n", b""):
                break
        return request_line

    async def _send_response(
        self,
        writer: asyncio.StreamWriter,
        status: HTTPStatus,
        body: str,
    ) -> None:
        """Send a plain text HTTP response."""
        payload = body.encode("utf-8")
        headers = (
            f"HTTP/1.1 {status.value} {status.phrase}\r\n"
            f"Content-Type: text/plain\r\n"
            f"Content-Length: {len(payload)}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(headers.encode("utf-8") + payload)
        await writer.drain()

    async def _send_html_response(
        self,
        writer: asyncio.StreamWriter,
        status: HTTPStatus,
        html_content: str,
    ) -> None:
        """Send an HTML HTTP response with security headers."""
        body = html_content.encode("utf-8")
        headers = (
            f"HTTP/1.1 {status.value} {status.phrase}\r\n"
            f"Content-Type: text/html; charset=utf-8\r\n"
            f"Content-Length: {len(body)}\r\n"
            f"X-Content-Type-Options: nosniff\r\n"
            f"X-Frame-Options: DENY\r\n"
            f"Content-Security-Policy: default-src 'none'; style-src 'unsafe-inline'\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(headers.encode("utf-8") + body)
        await writer.drain()

    async def __aenter__(self) -> "LocalGrantListener":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()


async def await_grant(
    redirect_url: str,
    authorize_url: str,
    timeout: float = DEFAULT_TIMEOUT,
    opener: SystemOpener | None = None,
) -> str | None:
    """Send the user to the authorization page and capture the verifier.

    The listener is stopped on every exit path. A browser that cannot be
    launched is not fatal: the URL is logged so the user can open it by hand.

    Args:
        redirect_url: Local URL the provider redirects to
        authorize_url: Provider authorization page, including oauth_token
        timeout: Seconds to wait for the redirect
        opener: Browser launch strategy (defaults to the platform's)

    Returns:
        The oauth_verifier, or None on denial or timeout
    """
    opener = opener or get_system_opener()

    async with LocalGrantListener(redirect_url, timeout=timeout) as listener:
        logger.debug(f"Opening browser for user permission grant: {authorize_url}")
        if not opener.open(authorize_url):
            logger.warning(
                f"Could not open browser. Please open this URL manually:\n{authorize_url}"
            )

        try:
            result = await listener.wait_for_grant()
        except GrantTimeoutError:
            logger.critical("Permissions grant timed out")
            return None

    return result.verifier
