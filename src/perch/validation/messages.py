"""Validation messages — one failure per ``Message``, grouped in ``Messages``."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from dataclasses import field as dc_field
from typing import Any, overload


@dataclass(slots=True)
class Message:
    """A single validation failure.

    ``field`` is the field name (or the list of fields for multi-field
    validators); ``type`` is the validator class name.
    """

    message: str
    field: str | list[str] | None = None
    type: str = ""
    code: int = 0
    metadata: dict[str, Any] = dc_field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


class Messages:
    """An ordered group of messages.

    Usage::

        messages = validation.validate(form)
        if messages:
            for message in messages.filter("email"):
                print(message)
            errors = messages.to_dict()  # {"email": ["Field email is required"]}
    """

    __slots__ = ("_messages",)

    def __init__(self, messages: Iterable[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or ())

    def __repr__(self) -> str:
        return f"Messages({self._messages!r})"

    def __len__(self) -> int:
        return len(self._messages)

    def __bool__(self) -> bool:
        return bool(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    @overload
    def __getitem__(self, index: int) -> Message: ...

    @overload
    def __getitem__(self, index: slice) -> list[Message]: ...

    def __getitem__(self, index: int | slice) -> Message | list[Message]:
        return self._messages[index]

    def append_message(self, message: Message) -> None:
        self._messages.append(message)

    def append_messages(self, messages: Iterable[Message]) -> None:
        self._messages.extend(messages)

    def filter(self, field_name: str) -> list[Message]:
        """Messages raised for *field_name* (including multi-field messages that name it)."""
        result = []
        for message in self._messages:
            target = message.field
            if target == field_name or (isinstance(target, list) and field_name in target):
                result.append(message)
        return result

    def to_dict(self) -> dict[str, list[str]]:
        """Field name -> message texts, in the order they were raised."""
        grouped: dict[str, list[str]] = {}
        for message in self._messages:
            target = message.field
            names = target if isinstance(target, list) else [target or ""]
            for name in names:
                grouped.setdefault(name, []).append(message.message)
        return grouped
