"""OAuth 1.0a credential manager.

This module owns the token state of a client and drives the three-legged
OAuth 1.0a exchange:
1. Discover a free loopback port for the redirect URL
2. Obtain a temporary token from the request-token endpoint
3. Send the user to the authorization page and capture the verifier
4. Exchange the verifier for the access token and secret

It also builds the per-request Authorization header.
"""

import logging
from enum import Enum
from typing import Callable
from urllib.parse import urlsplit

import httpx

from ..platform import SystemOpener
from .callback import DEFAULT_TIMEOUT, await_grant, build_redirect_url, find_available_port
from .credentials import OAuthCredential
from .params import ParameterSet
from .signature import SIGNATURE_METHOD, generate_nonce, generate_timestamp, percent_encode, sign

logger = logging.getLogger(__name__)

REQUEST_TOKEN_URL = "https://www.tumblr.com/oauth/request_token"
AUTHORIZE_URL = "https://www.tumblr.com/oauth/authorize"
ACCESS_TOKEN_URL = "https://www.tumblr.com/oauth/access_token"

AUTH_SCHEME = "OAuth"
OAUTH_VERSION = "1.0a"

OAUTH_CONSUMER_KEY = "oauth_consumer_key"
OAUTH_CALLBACK = "oauth_callback"
OAUTH_VERSION_KEY = "oauth_version"
OAUTH_SIGNATURE_METHOD = "oauth_signature_method"
OAUTH_SIGNATURE = "oauth_signature"
OAUTH_TIMESTAMP = "oauth_timestamp"
OAUTH_NONCE = "oauth_nonce"
OAUTH_TOKEN = "oauth_token"
OAUTH_TOKEN_SECRET = "oauth_token_secret"
OAUTH_VERIFIER = "oauth_verifier"


class OAuthFlowError(Exception):
    """Error during the OAuth 1.0a flow."""

    pass


class TokenRequestError(OAuthFlowError):
    """A token endpoint rejected the request or returned no token."""

    pass


class GrantDeniedError(OAuthFlowError):
    """The user denied access or never completed the grant."""

    pass


class AuthState(str, Enum):
    """Progress of the three-legged exchange."""

    UNAUTHENTICATED = "unauthenticated"
    REQUESTING_TOKEN = "requesting_token"
    AWAITING_USER_GRANT = "awaiting_user_grant"
    EXCHANGING_TOKEN = "exchanging_token"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class CredentialManager:
    """Owns the OAuth credentials of one client and signs its requests.

    Not safe for concurrent use; callers serialise access.

    Usage:
        manager = CredentialManager(key, secret, http_client)
        if await manager.authenticate_user():
            header = manager.build_authorization_header("GET", url)
    """

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        http_client: httpx.AsyncClient,
        *,
        request_token_url: str = REQUEST_TOKEN_URL,
        authorize_url: str = AUTHORIZE_URL,
        access_token_url: str = ACCESS_TOKEN_URL,
        callback_timeout: float = DEFAULT_TIMEOUT,
        opener: SystemOpener | None = None,
        on_status: Callable[[str], None] | None = None,
    ):
        """Initialize the manager.

        Args:
            consumer_key: OAuth consumer key (also used as the API key)
            consumer_secret: OAuth consumer secret
            http_client: HTTP client used for the token endpoints
            request_token_url: Temporary credential endpoint
            authorize_url: Resource owner authorization page
            access_token_url: Token credential endpoint
            callback_timeout: Seconds to wait for the user's grant
            opener: Browser launch strategy (defaults to the platform's)
            on_status: Optional callback for progress messages
        """
        self.credential = OAuthCredential(consumer_key, consumer_secret)
        self.http_client = http_client
        self.request_token_url = request_token_url
        self.authorize_url = authorize_url
        self.access_token_url = access_token_url
        self.callback_timeout = callback_timeout
        self.opener = opener
        self.on_status = on_status or (lambda msg: None)

        self._params = ParameterSet()
        self._state = AuthState.UNAUTHENTICATED
        self._reset_parameters()

    @property
    def api_key(self) -> str:
        return self.credential.consumer_key

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        """Whether a user grant has completed in this process."""
        return self._state == AuthState.AUTHENTICATED

    def _emit_status(self, message: str) -> None:
        """Emit a status message."""
        logger.info(message)
        self.on_status(message)

    def _reset_parameters(self) -> None:
        """Reset the parameter set to the protocol skeleton."""
        self._params.clear()
        self._params.set(OAUTH_VERSION_KEY, OAUTH_VERSION)
        self._params.set(OAUTH_SIGNATURE_METHOD, SIGNATURE_METHOD)
        self._params.set(OAUTH_CONSUMER_KEY, self.credential.consumer_key)

    def _fail(self) -> None:
        """Drop all token state after a failed attempt."""
        self.credential.clear_token()
        self._params.clear()
        self._state = AuthState.FAILED

    def build_authorization_header(
        self,
        method: str,
        url: str,
        body: str | None = None,
    ) -> str:
        """Build the Authorization header for a request.

        The version, signature method and consumer key are set first. Query
        parameters of url are merged next, so a query oauth_nonce or
        oauth_timestamp wins over the generated one.

        Args:
            method: HTTP method
            url: Absolute request URL, including any query string
            body: Form-encoded body to include in the signature (optional)

        Returns:
            Header value such as 'OAuth oauth_consumer_key="...", ...'
        """
        self._reset_parameters()
        self._params.parse_and_merge(urlsplit(url).query)
        self._params.set(OAUTH_NONCE, generate_nonce())
        self._params.set(OAUTH_TIMESTAMP, generate_timestamp())
        if self.credential.has_token():
            self._params.set(OAUTH_TOKEN, self.credential.token)  # type: ignore[arg-type]
        if body:
            self._params.parse_and_merge(body)

        signature = sign(
            method,
            url,
            self._params,
            self.credential.consumer_secret,
            self.credential.token_secret,
        )
        self._params.set(OAUTH_SIGNATURE, signature)

        return f"{AUTH_SCHEME} {self._params.canonical(', ', quoted=True)}"

    async def authenticate_user(self) -> bool:
        """Run the interactive three-legged exchange.

        Returns:
            True if an access token was obtained, False otherwise. On failure
            all token state is cleared so the next call starts from scratch.

        Raises:
            httpx.TransportError: If a token endpoint cannot be reached
        """
        self._reset_parameters()
        self.credential.clear_token()

        try:
            self._state = AuthState.REQUESTING_TOKEN
            redirect_url = build_redirect_url(find_available_port())
            token, token_secret = await self._request_token(redirect_url)
            self.credential.set_token(token, token_secret)

            self._state = AuthState.AWAITING_USER_GRANT
            self._emit_status("Opening browser for authorization...")
            self._emit_status(f"Waiting for authorization on {redirect_url}")
            verifier = await await_grant(
                redirect_url,
                f"{self.authorize_url}?{OAUTH_TOKEN}={token}",
                timeout=self.callback_timeout,
                opener=self.opener,
            )
            if verifier is None:
                raise GrantDeniedError("Authorization was denied or timed out")

            self._state = AuthState.EXCHANGING_TOKEN
            self._emit_status("Exchanging verifier for access token...")
            token, token_secret = await self._exchange_verifier(verifier)

        except OAuthFlowError as e:
            logger.critical(f"Authentication failed: {e}")
            self._fail()
            return False
        except BaseException:
            self._fail()
            raise

        self.credential.set_token(token, token_secret)
        self._state = AuthState.AUTHENTICATED
        self._emit_status("Successfully authenticated!")
        return True

    async def _request_token(self, redirect_url: str) -> tuple[str, str | None]:
        """Obtain temporary credentials for the redirect URL."""
        body = f"{OAUTH_CALLBACK}={percent_encode(redirect_url)}"
        logger.debug(f"Requesting temporary token: {self.request_token_url}")

        return await self._post_for_token(
            self.request_token_url,
            body=body,
            step="initial token",
        )

    async def _exchange_verifier(self, verifier: str) -> tuple[str, str | None]:
        """Exchange the verifier for the access token and secret."""
        url = f"{self.access_token_url}?{OAUTH_VERIFIER}={verifier}"
        logger.debug(f"Requesting access token: {self.access_token_url}")

        return await self._post_for_token(url, step="final token")

    async def _post_for_token(
        self,
        url: str,
        step: str,
        body: str | None = None,
    ) -> tuple[str, str | None]:
        """POST a signed request to a token endpoint and parse the reply.

        Raises:
            TokenRequestError: On a non-success status or a reply without a token
        """
        headers = {"Authorization": self.build_authorization_header("POST", url, body)}
        if body is not None:
            headers["Content-Type"] = "application/x-www-form-urlencoded"

        response = await self.http_client.post(url, content=body, headers=headers)

        if not response.is_success:
            raise TokenRequestError(
                f"Token request failed ({step}): HTTP {response.status_code}"
            )

        reply = ParameterSet(response.text)
        token = reply.get(OAUTH_TOKEN)
        if not token:
            raise TokenRequestError(f"Token response missing {OAUTH_TOKEN} ({step})")

        return token, reply.get(OAUTH_TOKEN_SECRET)
