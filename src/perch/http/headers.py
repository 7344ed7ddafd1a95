"""Request headers, looked up case-insensitively or by server variable name.

Besides the header name itself (``"User-Agent"``, ``"user-agent"``),
the CGI-style names used for server variables are accepted:
``"HTTP_USER_AGENT"``, ``"CONTENT_TYPE"``.
"""

from collections.abc import Iterator, Mapping


def normalize_header_name(name: str) -> str:
    """``HTTP_X_FORWARDED_FOR`` -> ``x-forwarded-for``; ``Content-Type`` -> ``content-type``."""
    key = name.lower()
    if "_" in key:
        if key.startswith("http_"):
            key = key[5:]
        key = key.replace("_", "-")
    return key


class Headers(Mapping[str, str]):
    """Immutable request headers built from the raw ASGI byte pairs.

    ``headers["Accept"]`` returns the first value; ``get_list`` returns
    every value sent under a name. Iteration yields lowercased names in
    the order they were first sent.
    """

    __slots__ = ("_index", "_raw")

    def __init__(self, raw: tuple[tuple[bytes, bytes], ...] = ()) -> None:
        self._raw = raw
        self._index: dict[str, list[str]] = {}
        for name, value in raw:
            self._index.setdefault(name.decode("latin-1").lower(), []).append(
                value.decode("latin-1")
            )

    def __getitem__(self, key: str) -> str:
        values = self._index.get(normalize_header_name(key))
        if not values:
            raise KeyError(key)
        return values[0]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and normalize_header_name(key) in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        values = self._index.get(normalize_header_name(key))
        return values[0] if values else default

    def get_list(self, key: str) -> list[str]:
        return list(self._index.get(normalize_header_name(key), ()))

    def to_dict(self) -> dict[str, str]:
        """Header names in ``Title-Case`` mapped to their first value."""
        return {
            "-".join(part.capitalize() for part in name.split("-")): values[0]
            for name, values in self._index.items()
        }

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        return self._raw
