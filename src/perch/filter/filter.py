"""Filter — a registry of named sanitizers.

Usage::

    f = Filter()
    f.sanitize("  Hello <b>World</b> ", ["striptags", "trim", "lower"])  # "hello world"
    f.sanitize(["1a", "-2"], "absint")                                   # [1, 2]

    f.set("slug", lambda v: re.sub(r"[^a-z0-9]+", "-", v.lower()))
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, TypeAlias

from perch.errors import FilterError
from perch.filter.sanitizers import BUILTIN_SANITIZERS

Sanitizer: TypeAlias = Callable[[Any], Any]


class Filter:
    """Applies sanitizers by name, lists of names, or callables."""

    __slots__ = ("_mapping",)

    def __init__(self, mapping: Mapping[str, Sanitizer] | None = None) -> None:
        self._mapping: dict[str, Sanitizer] = dict(BUILTIN_SANITIZERS)
        if mapping:
            self._mapping.update(mapping)

    def set(self, name: str, handler: Sanitizer) -> Filter:
        if not callable(handler):
            msg = f"Sanitizer {name!r} must be callable"
            raise FilterError(msg)
        self._mapping[name] = handler
        return self

    def has(self, name: str) -> bool:
        return name in self._mapping

    def get(self, name: str) -> Sanitizer:
        try:
            return self._mapping[name]
        except KeyError:
            msg = f"Sanitizer {name!r} is not registered"
            raise FilterError(msg) from None

    def sanitize(self, value: Any, sanitizers: Any, no_recursive: bool = False) -> Any:
        """Run *value* through one or more sanitizers, in order.

        Lists, tuples, and dicts are sanitized element by element unless
        *no_recursive* is set. ``None`` passes through untouched.
        """
        if isinstance(sanitizers, (list, tuple)):
            for sanitizer in sanitizers:
                value = self.sanitize(value, sanitizer, no_recursive)
            return value

        handler = sanitizers if callable(sanitizers) else self.get(sanitizers)

        if not no_recursive:
            if isinstance(value, (list, tuple)):
                return [self.sanitize(item, handler) for item in value]
            if isinstance(value, dict):
                return {key: self.sanitize(item, handler) for key, item in value.items()}
        return self._apply(handler, value)

    @staticmethod
    def _apply(handler: Sanitizer, value: Any) -> Any:
        if value is None:
            return None
        return handler(value)
