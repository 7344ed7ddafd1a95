"""Bag — a namespaced dict stored under one session key."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from perch.di.injectable import Injectable


class Bag(Injectable):
    """A group of session values under a single key.

    Usage::

        cart = Bag("cart")
        cart.set("sku-1", 2)
        cart.get("sku-1")   # 2
        session.get("cart") # {"sku-1": 2}
    """

    __slots__ = ("_data", "_name")

    def __init__(self, name: str) -> None:
        self._name = name
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            stored = self.session.get(self._name)
            self._data = dict(stored) if isinstance(stored, dict) else {}
        return self._data

    def _save(self) -> None:
        self.session.set(self._name, dict(self._load()))

    def get_name(self) -> str:
        return self._name

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._load()[key] = value
        self._save()

    def has(self, key: str) -> bool:
        return key in self._load()

    def remove(self, key: str) -> bool:
        data = self._load()
        if key not in data:
            return False
        del data[key]
        self._save()
        return True

    def clear(self) -> None:
        self._data = {}
        self.session.remove(self._name)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._load())

    def __getitem__(self, key: str) -> Any:
        return self._load()[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __delitem__(self, key: str) -> None:
        if not self.remove(key):
            raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._load()))

    def __len__(self) -> int:
        return len(self._load())
