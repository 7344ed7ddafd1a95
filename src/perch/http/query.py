"""Query string and form field parameters.

Bracketed field names build structure: ``tag[]`` collects every value
into a list under ``tag`` and ``user[name]`` sets ``name`` inside a
``user`` mapping. Any other repeated field keeps its first value. When
a plain field and a bracketed one share a name, the list or mapping
is kept.
"""

import re
from collections.abc import Iterator, Mapping
from typing import Any
from urllib.parse import parse_qs

_BRACKETED = re.compile(r"([^\[\]]+)((?:\[[^\[\]]*\])+)")
_SEGMENT = re.compile(r"\[([^\[\]]*)\]")


def _path(key: str) -> list[str] | None:
    """``user[address][city]`` -> ``["user", "address", "city"]``."""
    match = _BRACKETED.fullmatch(key)
    if match is None:
        return None
    segments = _SEGMENT.findall(match.group(2))
    # An empty segment only means "append" at the end
    if "" in segments[:-1]:
        return None
    return [match.group(1), *segments]


def flatten_params(data: Mapping[str, list[str]]) -> dict[str, Any]:
    """Collapse parsed multi-values into plain values, lists and mappings.

    ::

        flatten_params({"tag[]": ["a", "b"], "q": ["x", "y"], "user[name]": ["Ada"]})
        # {"tag": ["a", "b"], "q": "x", "user": {"name": "Ada"}}
    """
    flat: dict[str, Any] = {}
    for key, values in data.items():
        if not values:
            continue
        path = _path(key)
        if path is None:
            if not isinstance(flat.get(key), (list, dict)):
                flat[key] = values[0]
            continue

        appending = path[-1] == ""
        *parents, leaf = path[:-1] if appending else path
        node = flat
        for name in parents:
            child = node.get(name)
            if not isinstance(child, dict):
                child = node[name] = {}
            node = child

        if appending:
            items = node.get(leaf)
            if not isinstance(items, list):
                items = node[leaf] = []
            items.extend(values)
        elif not isinstance(node.get(leaf), (list, dict)):
            node[leaf] = values[0]
    return flat


class QueryParams(Mapping[str, Any]):
    """Immutable query string parameters."""

    __slots__ = ("_data", "_flat", "_raw")

    def __init__(self, query_string: bytes = b"") -> None:
        self._raw = query_string
        self._data = parse_qs(query_string.decode("latin-1"), keep_blank_values=True)
        self._flat = flatten_params(self._data)

    def __getitem__(self, key: str) -> Any:
        return self._flat[key]

    def __contains__(self, key: object) -> bool:
        return key in self._flat

    def __iter__(self) -> Iterator[str]:
        return iter(self._flat)

    def __len__(self) -> int:
        return len(self._flat)

    def __repr__(self) -> str:
        return f"QueryParams({self._flat!r})"

    def get_list(self, key: str) -> list[str]:
        """Every raw value sent under *key*."""
        return list(self._data.get(key, []))

    @property
    def raw(self) -> bytes:
        return self._raw
