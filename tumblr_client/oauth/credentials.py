"""OAuth 1.0a credential data structure."""

from dataclasses import dataclass


@dataclass
class OAuthCredential:
    """Consumer credentials plus the current token pair.

    Tokens live only in memory for the lifetime of the owning
    CredentialManager; nothing here is persisted.

    Attributes:
        consumer_key: The application's consumer key (also the API key)
        consumer_secret: The application's consumer secret
        token: Temporary or access token, if any
        token_secret: Secret matching token
    """

    consumer_key: str
    consumer_secret: str
    token: str | None = None
    token_secret: str | None = None

    def has_token(self) -> bool:
        """Check if a non-empty token is set."""
        return bool(self.token)

    def set_token(self, token: str | None, token_secret: str | None) -> None:
        """Replace the token pair."""
        self.token = token
        self.token_secret = token_secret

    def clear_token(self) -> None:
        """Drop the token pair, keeping the consumer credentials."""
        self.token = None
        self.token_secret = None

    def __repr__(self) -> str:
        # Secrets stay out of reprs and logs
        return (
            f"OAuthCredential(consumer_key={self.consumer_key!r}, "
            f"has_token={self.has_token()})"
        )
