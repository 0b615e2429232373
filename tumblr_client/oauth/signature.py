"""HMAC-SHA1 request signing per RFC 5849 (OAuth 1.0a).

The signature is computed over a base string made of the upper-cased HTTP
method, the normalized request URL and the canonical parameter string, each
percent-encoded and joined with "&". The signing key is the percent-encoded
consumer secret and token secret joined with "&".
"""

import base64
import hashlib
import hmac
import secrets
import time
from urllib.parse import quote, urlsplit

from .params import ParameterSet

SIGNATURE_METHOD = "HMAC-SHA1"

# Ports omitted from the normalized URL (RFC 5849 Section 3.4.1.2)
DEFAULT_PORTS = {"http": 80, "https": 443}


def percent_encode(value: str) -> str:
    """Percent-encode a value per RFC 5849 Section 3.6.

    The unreserved characters A-Z, a-z, 0-9, "-", ".", "_" and "~" are kept;
    every other UTF-8 byte is encoded as %XX with uppercase hex digits.

    Args:
        value: The string to encode

    Returns:
        The encoded string
    """
    return quote(value, safe="")


def normalize_url(url: str) -> str:
    """Normalize a request URL for the signature base string.

    Keeps scheme, host, non-default port and path. Query and fragment
    are dropped.

    Args:
        url: Absolute request URL

    Returns:
        Normalized base string URI
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()

    normalized = f"{scheme}://{host}"
    if parts.port is not None and parts.port != DEFAULT_PORTS.get(scheme):
        normalized += f":{parts.port}"

    return normalized + (parts.path or "/")


def build_base_string(method: str, url: str, params: ParameterSet) -> str:
    """Build the signature base string.

    Args:
        method: HTTP method
        url: Request URL (query parameters must already be in params)
        params: Every parameter to sign, excluding oauth_signature

    Returns:
        The base string
    """
    return "&".join(
        (
            method.upper(),
            percent_encode(normalize_url(url)),
            percent_encode(params.canonical("&")),
        )
    )


def build_signing_key(consumer_secret: str, token_secret: str | None = None) -> str:
    """Build the HMAC key from the consumer and token secrets."""
    return f"{percent_encode(consumer_secret)}&{percent_encode(token_secret or '')}"


def sign(
    method: str,
    url: str,
    params: ParameterSet,
    consumer_secret: str,
    token_secret: str | None = None,
) -> str:
    """Compute the HMAC-SHA1 signature for a request.

    Pure function: identical inputs always produce the same signature.

    Args:
        method: HTTP method
        url: Request URL
        params: Parameters to sign (must not contain oauth_signature)
        consumer_secret: The consumer secret
        token_secret: The token secret, if a token is in use

    Returns:
        Percent-encoded base64 signature, ready to be placed in the header
    """
    key = build_signing_key(consumer_secret, token_secret)
    base_string = build_base_string(method, url, params)

    digest = hmac.new(
        key.encode("utf-8"),
        base_string.encode("utf-8"),
        hashlib.sha1,
    ).digest()

    return percent_encode(base64.b64encode(digest).decode("ascii"))


def generate_nonce() -> str:
    """Generate a single-use random nonce.

    Returns:
        32-character random hex string
    """
    return secrets.token_hex(16)


def generate_timestamp() -> str:
    """Return the current Unix time in seconds as a string."""
    return str(int(time.time()))
