"""Typed ASGI definitions and receive-side helpers."""

from collections.abc import AsyncGenerator, Awaitable, Callable, MutableMapping
from typing import Any, TypeAlias

# Raw ASGI 3.0 types
Message: TypeAlias = MutableMapping[str, Any]
Scope: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[Message]]
Send: TypeAlias = Callable[[Message], Awaitable[None]]


async def iter_body(receive: Receive) -> AsyncGenerator[bytes]:
    """Yield the non-empty body chunks of ``http.request`` messages.

    Stops after the last chunk (``more_body`` false) or when the client
    disconnects.
    """
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return
        chunk = message.get("body", b"")
        if chunk:
            yield chunk
        if not message.get("more_body", False):
            return
