"""Config discovery and loading for the Tumblr client."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .client import API_BASE
from .oauth.callback import DEFAULT_TIMEOUT
from .oauth.manager import ACCESS_TOKEN_URL, AUTHORIZE_URL, REQUEST_TOKEN_URL

CONSUMER_KEY_VAR = "TUMBLR_CONSUMER_KEY"
CONSUMER_SECRET_VAR = "TUMBLR_CONSUMER_SECRET"
API_BASE_VAR = "TUMBLR_API_BASE"
CALLBACK_TIMEOUT_VAR = "TUMBLR_CALLBACK_TIMEOUT"

# Env file search paths in priority order
ENV_SEARCH_PATHS = [
    Path(".env"),
    Path.home() / ".tumblr" / ".env",
]


class ConfigError(Exception):
    """Missing or invalid configuration."""

    def __init__(self, message: str, help_text: str = ""):
        super().__init__(message)
        self.help_text = help_text


@dataclass
class TumblrConfig:
    """Complete client configuration."""

    consumer_key: str
    consumer_secret: str
    api_base: str = API_BASE
    request_token_url: str = REQUEST_TOKEN_URL
    authorize_url: str = AUTHORIZE_URL
    access_token_url: str = ACCESS_TOKEN_URL
    callback_timeout: int = DEFAULT_TIMEOUT
    env_path: Path | None = None


def find_env_file(explicit_path: Path | None = None) -> Path | None:
    """Find the .env file, checking project then user level."""
    if explicit_path:
        if explicit_path.exists():
            return explicit_path
        return None

    for path in ENV_SEARCH_PATHS:
        if path.exists():
            return path
    return None


def load_config(env_path: Path | None = None) -> TumblrConfig:
    """Load configuration from the environment.

    A .env file, if found, is loaded first; variables already set in the
    environment take precedence over it.

    Args:
        env_path: Explicit path to .env file (optional)

    Returns:
        TumblrConfig built from the environment

    Raises:
        ConfigError: If the consumer credentials are missing or a value is invalid
    """
    env_file = find_env_file(env_path)
    if env_file:
        load_dotenv(env_file)

    consumer_key = os.environ.get(CONSUMER_KEY_VAR, "")
    consumer_secret = os.environ.get(CONSUMER_SECRET_VAR, "")
    if not consumer_key or not consumer_secret:
        searched = ", ".join(str(p) for p in ENV_SEARCH_PATHS)
        raise ConfigError(
            f"Missing {CONSUMER_KEY_VAR} or {CONSUMER_SECRET_VAR}",
            help_text=(
                f"Register an application at https://www.tumblr.com/oauth/apps and set\n"
                f"{CONSUMER_KEY_VAR} and {CONSUMER_SECRET_VAR} in the environment\n"
                f"or in a .env file ({searched})."
            ),
        )

    raw_timeout = os.environ.get(CALLBACK_TIMEOUT_VAR)
    try:
        callback_timeout = int(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
    except ValueError:
        raise ConfigError(
            f"{CALLBACK_TIMEOUT_VAR} must be a whole number of seconds, got {raw_timeout!r}"
        ) from None

    return TumblrConfig(
        consumer_key=consumer_key,
        consumer_secret=consumer_secret,
        api_base=os.environ.get(API_BASE_VAR) or API_BASE,
        callback_timeout=callback_timeout,
        env_path=env_file,
    )
