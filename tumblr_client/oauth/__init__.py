"""OAuth 1.0a authentication support for the Tumblr client.

This package implements the three-legged OAuth 1.0a flow (RFC 5849) with
HMAC-SHA1 request signing.

Main Components:
    CredentialManager: Token state, the interactive grant, request signing
    ParameterSet: Ordered first-write-wins protocol parameters
    sign: HMAC-SHA1 signature over a normalized request
    LocalGrantListener: Ephemeral localhost server capturing the grant redirect

Quick Start:
    from tumblr_client.oauth import CredentialManager

    manager = CredentialManager(consumer_key, consumer_secret, http_client)

    if not manager.is_authenticated:
        await manager.authenticate_user()

    header = manager.build_authorization_header("GET", url)
"""

from .callback import (
    GrantError,
    GrantResult,
    GrantTimeoutError,
    LocalGrantListener,
    await_grant,
    find_available_port,
)
from .credentials import OAuthCredential
from .manager import (
    AuthState,
    CredentialManager,
    GrantDeniedError,
    OAuthFlowError,
    TokenRequestError,
)
from .params import ParameterSet
from .signature import normalize_url, percent_encode, sign

__all__ = [
    # Manager (main entry point)
    "CredentialManager",
    "AuthState",
    "OAuthFlowError",
    "TokenRequestError",
    "GrantDeniedError",
    # Credentials
    "OAuthCredential",
    # Signing
    "ParameterSet",
    "sign",
    "percent_encode",
    "normalize_url",
    # Grant listener
    "LocalGrantListener",
    "GrantResult",
    "GrantError",
    "GrantTimeoutError",
    "await_grant",
    "find_available_port",
]
