"""Tumblr client - OAuth 1.0a signing and paginated access to the Tumblr API."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("tumblr-client")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development

__all__ = [
    "__version__",
    # Core modules
    "TumblrClient",
    "CredentialManager",
    "TumblrConfig",
    "load_config",
    "OutputHandler",
]

# Lazy imports to avoid circular dependencies
def __getattr__(name: str) -> object:
    """Lazy import module components."""
    if name == "TumblrClient":
        from .client import TumblrClient
        return TumblrClient
    elif name == "CredentialManager":
        from .oauth.manager import CredentialManager
        return CredentialManager
    elif name in ("TumblrConfig", "load_config"):
        from .config import TumblrConfig, load_config
        return {"TumblrConfig": TumblrConfig, "load_config": load_config}[name]
    elif name == "OutputHandler":
        from .output import OutputHandler
        return OutputHandler
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
