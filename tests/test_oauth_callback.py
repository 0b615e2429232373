"""Tests for the OAuth grant redirect listener."""

import asyncio
import socket

import pytest

from tests.conftest import FakeOpener, send_get
from tumblr_client.oauth.callback import (
    REDIRECT_PATH,
    GrantError,
    GrantResult,
    GrantTimeoutError,
    LocalGrantListener,
    await_grant,
    build_redirect_url,
    find_available_port,
    parse_callback_url,
)


def port_is_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True


class TestParseCallbackUrl:
    """Tests for parse_callback_url function."""

    def test_parse_granted_redirect(self) -> None:
        """Test parsing a redirect after the user allowed access."""
        result = parse_callback_url(f"{REDIRECT_PATH}?oauth_token=T1&oauth_verifier=V1")

        assert result.token == "T1"
        assert result.verifier == "V1"
        assert result.is_granted()

    def test_parse_denied_redirect(self) -> None:
        """Test parsing a redirect without a verifier."""
        result = parse_callback_url(f"{REDIRECT_PATH}?oauth_token=T1")

        assert result.token == "T1"
        assert result.verifier is None
        assert not result.is_granted()

    def test_parse_empty_params(self) -> None:
        """Test parsing a redirect with no parameters."""
        result = parse_callback_url(REDIRECT_PATH)

        assert result == GrantResult()

    def test_parse_multiple_values_takes_first(self) -> None:
        """Test that multiple values for the same parameter use the first."""
        result = parse_callback_url("/x?oauth_verifier=first&oauth_verifier=second")

        assert result.verifier == "first"


class TestFindAvailablePort:
    """Tests for find_available_port function."""

    def test_returns_valid_port(self) -> None:
        """Test that a valid port number is returned."""
        port = find_available_port()
        assert 0 < port < 65536

    def test_port_is_released(self) -> None:
        """Test that the discovery socket is not held open."""
        assert port_is_free(find_available_port())


class TestBuildRedirectUrl:
    def test_format(self) -> None:
        assert build_redirect_url(5000) == "http://127.0.0.1:5000/authenticationredirect/"


class TestLocalGrantListener:
    """Tests for LocalGrantListener class."""

    def test_rejects_url_without_port(self) -> None:
        """Test that the redirect URL must name a port."""
        with pytest.raises(GrantError):
            LocalGrantListener("http://127.0.0.1/authenticationredirect/")

    def test_rejects_https(self) -> None:
        """Test that only plain http redirect URLs are served."""
        with pytest.raises(GrantError):
            LocalGrantListener("https://127.0.0.1:5000/authenticationredirect/")

    @pytest.mark.asyncio
    async def test_binds_exactly_the_redirect_url(self) -> None:
        """Test that the listener uses the redirect URL's host, port and path."""
        port = find_available_port()
        listener = LocalGrantListener(build_redirect_url(port), timeout=5)

        await listener.start()
        try:
            assert listener.is_running
            assert listener.port == port
            assert listener.path == REDIRECT_PATH
            assert not port_is_free(port)
        finally:
            await listener.stop()

        assert not listener.is_running
        assert port_is_free(port)

    @pytest.mark.asyncio
    async def test_wait_before_start_raises(self) -> None:
        """Test that waiting on a listener that never started is an error."""
        listener = LocalGrantListener(build_redirect_url(find_available_port()))

        with pytest.raises(GrantError):
            await listener.wait_for_grant()

    @pytest.mark.asyncio
    async def test_timeout_raises_error(self) -> None:
        """Test that no redirect within the timeout raises GrantTimeoutError."""
        port = find_available_port()
        async with LocalGrantListener(build_redirect_url(port), timeout=0.2) as listener:
            with pytest.raises(GrantTimeoutError) as exc_info:
                await listener.wait_for_grant()

        assert "Timeout" in str(exc_info.value)
        assert port_is_free(port)

    @pytest.mark.asyncio
    async def test_granted_redirect(self) -> None:
        """Test receiving a redirect with a verifier."""
        port = find_available_port()
        async with LocalGrantListener(build_redirect_url(port), timeout=5) as listener:
            response = await send_get(port, f"{REDIRECT_PATH}?oauth_token=T1&oauth_verifier=V1")
            result = await listener.wait_for_grant()

        assert result.verifier == "V1"
        assert result.token == "T1"
        assert "200 OK" in response
        assert "Authorization Successful" in response
        assert "T1" in response

    @pytest.mark.asyncio
    async def test_denied_redirect(self) -> None:
        """Test receiving a redirect without a verifier."""
        port = find_available_port()
        async with LocalGrantListener(build_redirect_url(port), timeout=5) as listener:
            response = await send_get(port, f"{REDIRECT_PATH}?oauth_token=T1")
            result = await listener.wait_for_grant()

        assert not result.is_granted()
        assert "Authorization Failed" in response

    @pytest.mark.asyncio
    async def test_token_is_html_escaped(self) -> None:
        """Test that echoed values cannot inject markup."""
        port = find_available_port()
        async with LocalGrantListener(build_redirect_url(port), timeout=5) as listener:
            response = await send_get(
                port, f"{REDIRECT_PATH}?oauth_token=%3Cscript%3E&oauth_verifier=V1"
            )
            await listener.wait_for_grant()

        assert "<script>" not in response
        assert "&lt;script&gt;" in response

    @pytest.mark.asyncio
    async def test_favicon_and_other_paths_ignored(self) -> None:
        """Test that requests outside the redirect path do not count."""
        port = find_available_port()
        async with LocalGrantListener(build_redirect_url(port), timeout=0.5) as listener:
            favicon = await send_get(port, "/favicon.ico")
            other = await send_get(port, "/elsewhere?oauth_verifier=V1")

            assert "404" in favicon
            assert "404" in other
            with pytest.raises(GrantTimeoutError):
                await listener.wait_for_grant()

    @pytest.mark.asyncio
    async def test_first_redirect_wins(self) -> None:
        """Test that a second redirect does not replace the first result."""
        port = find_available_port()
        async with LocalGrantListener(build_redirect_url(port), timeout=5) as listener:
            await send_get(port, f"{REDIRECT_PATH}?oauth_verifier=first")
            second = await send_get(port, f"{REDIRECT_PATH}?oauth_verifier=second")
            result = await listener.wait_for_grant()

        assert result.verifier == "first"
        assert "410" in second


class TestAwaitGrant:
    """Tests for the await_grant helper."""

    @pytest.mark.asyncio
    async def test_returns_verifier(self) -> None:
        """Test the full redirect capture with a simulated browser."""
        port = find_available_port()
        redirect_url = build_redirect_url(port)
        tasks: list[asyncio.Task[str]] = []

        def browser(url: str) -> None:
            tasks.append(
                asyncio.get_running_loop().create_task(
                    send_get(port, f"{REDIRECT_PATH}?oauth_token=T1&oauth_verifier=V1")
                )
            )

        opener = FakeOpener(on_open=browser)
        verifier = await await_grant(
            redirect_url,
            "https://www.tumblr.com/oauth/authorize?oauth_token=T1",
            timeout=5,
            opener=opener,
        )
        await asyncio.gather(*tasks)

        assert verifier == "V1"
        assert opener.opened == ["https://www.tumblr.com/oauth/authorize?oauth_token=T1"]

    @pytest.mark.asyncio
    async def test_denial_returns_none(self) -> None:
        """Test that a redirect without a verifier yields None."""
        port = find_available_port()
        tasks: list[asyncio.Task[str]] = []

        def browser(url: str) -> None:
            tasks.append(
                asyncio.get_running_loop().create_task(
                    send_get(port, f"{REDIRECT_PATH}?oauth_token=T1")
                )
            )

        verifier = await await_grant(
            build_redirect_url(port),
            "https://auth.test/authorize",
            timeout=5,
            opener=FakeOpener(on_open=browser),
        )
        await asyncio.gather(*tasks)

        assert verifier is None

    @pytest.mark.asyncio
    async def test_timeout_returns_none_and_releases_port(self) -> None:
        """Test that a stalled grant returns None instead of raising."""
        port = find_available_port()

        verifier = await await_grant(
            build_redirect_url(port),
            "https://auth.test/authorize",
            timeout=0.2,
            opener=FakeOpener(),
        )

        assert verifier is None
        assert port_is_free(port)

    @pytest.mark.asyncio
    async def test_browser_launch_failure_is_not_fatal(self) -> None:
        """Test that the wait continues when no browser can be opened."""
        port = find_available_port()
        tasks: list[asyncio.Task[str]] = []

        def user_navigates_manually(url: str) -> None:
            tasks.append(
                asyncio.get_running_loop().create_task(
                    send_get(port, f"{REDIRECT_PATH}?oauth_verifier=V9")
                )
            )

        verifier = await await_grant(
            build_redirect_url(port),
            "https://auth.test/authorize",
            timeout=5,
            opener=FakeOpener(result=False, on_open=user_navigates_manually),
        )
        await asyncio.gather(*tasks)

        assert verifier == "V9"


class TestIdleConnections:
    """Tests for connections that open but never send a request."""

    @pytest.mark.asyncio
    async def test_timeout_with_idle_connection(self) -> None:
        """Test that an idle preconnect does not keep the listener alive."""
        port = find_available_port()
        idle: list[asyncio.StreamWriter] = []

        async def preconnect() -> None:
            _, writer = await asyncio.open_connection("127.0.0.1", port)
            idle.append(writer)

        tasks: list[asyncio.Task[None]] = []
        opener = FakeOpener(
            on_open=lambda url: tasks.append(asyncio.get_running_loop().create_task(preconnect()))
        )

        try:
            verifier = await asyncio.wait_for(
                await_grant(build_redirect_url(port), "https://auth.test/authorize",
                            timeout=1, opener=opener),
                timeout=6,
            )
        finally:
            await asyncio.gather(*tasks)
            for writer in idle:
                writer.close()

        assert verifier is None
        assert idle
        assert port_is_free(port)

    @pytest.mark.asyncio
    async def test_grant_with_idle_connection(self) -> None:
        """Test that the grant completes while another connection sits idle."""
        port = find_available_port()
        idle: list[asyncio.StreamWriter] = []
        tasks: list[asyncio.Task[None]] = []

        async def browser() -> None:
            _, writer = await asyncio.open_connection("127.0.0.1", port)
            idle.append(writer)
            await send_get(port, f"{REDIRECT_PATH}?oauth_token=T1&oauth_verifier=v")

        opener = FakeOpener(
            on_open=lambda url: tasks.append(asyncio.get_running_loop().create_task(browser()))
        )

        try:
            verifier = await asyncio.wait_for(
                await_grant(build_redirect_url(port), "https://auth.test/authorize",
                            timeout=5, opener=opener),
                timeout=6,
            )
        finally:
            await asyncio.gather(*tasks)
            for writer in idle:
                writer.close()

        assert verifier == "v"

    @pytest.mark.asyncio
    async def test_stop_closes_idle_connection(self) -> None:
        """Test that stopping the listener disconnects idle clients."""
        port = find_available_port()
        listener = LocalGrantListener(build_redirect_url(port), timeout=5)
        await listener.start()

        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        await asyncio.sleep(0.05)
        await asyncio.wait_for(listener.stop(), timeout=5)

        assert await asyncio.wait_for(reader.read(), timeout=5) == b""
        writer.close()
