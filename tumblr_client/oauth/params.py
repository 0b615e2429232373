"""Ordered OAuth protocol parameter collection.

ParameterSet holds the parameters of a single signed request. Inserts are
first-write-wins: setting a key that is already present is a no-op, so
parameters merged in earlier (for example from the request URL's query
string) take precedence over protocol values set later.

Canonicalisation sorts on read, so the rendered string never depends on
insertion order.
"""

from typing import Iterator


class ParameterSet:
    """Ordered mapping of OAuth parameter names to string values.

    Usage:
        params = ParameterSet("?page=2&npf=true")
        params.set("oauth_nonce", nonce)
        params.canonical("&")   # "npf=true&oauth_nonce=...&page=2"
    """

    def __init__(self, initial: str | None = None):
        """Initialize the set, optionally merging a raw query/form string.

        Args:
            initial: Raw `key=value&...` string to merge (optional)
        """
        self._params: dict[str, str] = {}
        if initial:
            self.parse_and_merge(initial)

    def set(self, key: str, value: str) -> None:
        """Insert a parameter unless the key is already present."""
        if key not in self._params:
            self._params[key] = value

    def get(self, key: str) -> str | None:
        """Return the value stored for key, or None."""
        return self._params.get(key)

    def parse_and_merge(self, raw: str | None) -> None:
        """Merge parameters from a query string or form body.

        A leading "?" is ignored. Segments are split on the first "=";
        a segment without "=" becomes a key with an empty value. Values
        are merged as-is (no decoding) using first-write-wins.

        Args:
            raw: String such as "?a=1&b=2" or "oauth_token=T&oauth_token_secret=S"
        """
        if not raw:
            return

        if raw.startswith("?"):
            raw = raw[1:]

        for segment in raw.split("&"):
            if not segment:
                continue
            key, _, value = segment.partition("=")
            self.set(key, value)

    def canonical(self, separator: str, quoted: bool = False) -> str:
        """Render the parameters sorted ascending by key.

        Args:
            separator: String placed between pairs ("&" for signing, "," for headers)
            quoted: Wrap values in double quotes (header rendering)

        Returns:
            The canonical `key=value` string
        """
        template = '{}="{}"' if quoted else "{}={}"
        return separator.join(
            template.format(key, self._params[key]) for key in sorted(self._params)
        )

    def clear(self) -> None:
        """Remove every parameter."""
        self._params.clear()

    def to_dict(self) -> dict[str, str]:
        """Return a copy of the parameters in insertion order."""
        return dict(self._params)

    def __contains__(self, key: object) -> bool:
        return key in self._params

    def __len__(self) -> int:
        return len(self._params)

    def __iter__(self) -> Iterator[str]:
        return iter(self._params)

    def __repr__(self) -> str:
        return f"ParameterSet({self.canonical('&')!r})"
