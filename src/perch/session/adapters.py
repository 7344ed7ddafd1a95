"""Session storage adapters.

An adapter stores one dict per session id. ``read`` returns ``None``
for ids it doesn't know (or that expired), so the manager can issue a
fresh id instead of adopting one chosen by the client.
"""

from __future__ import annotations

import copy
import threading
import time
from typing import Any, Protocol


class SessionAdapter(Protocol):
    """Storage backend for ``SessionManager``."""

    def read(self, session_id: str) -> dict[str, Any] | None: ...

    def write(self, session_id: str, data: dict[str, Any]) -> bool: ...

    def destroy(self, session_id: str) -> bool: ...

    def gc(self, max_lifetime: int) -> int: ...


class MemoryAdapter:
    """Process-local session store.

    Data is deep-copied on the way in and out, so a request never
    mutates another request's view of the same session. Suitable for
    tests and single-process deployments.
    """

    __slots__ = ("_lock", "_store", "_ttl")

    def __init__(self, ttl: int | None = None) -> None:
        self._store: dict[str, tuple[float, dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._ttl = ttl

    def __len__(self) -> int:
        return len(self._store)

    def _expired(self, written_at: float, max_lifetime: int | None) -> bool:
        return max_lifetime is not None and time.time() - written_at > max_lifetime

    def read(self, session_id: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._store.get(session_id)
            if entry is None:
                return None
            written_at, data = entry
            if self._expired(written_at, self._ttl):
                del self._store[session_id]
                return None
            return copy.deepcopy(data)

    def write(self, session_id: str, data: dict[str, Any]) -> bool:
        with self._lock:
            self._store[session_id] = (time.time(), copy.deepcopy(data))
        return True

    def destroy(self, session_id: str) -> bool:
        with self._lock:
            self._store.pop(session_id, None)
        return True

    def gc(self, max_lifetime: int) -> int:
        """Drop sessions not written for *max_lifetime* seconds; returns the count."""
        with self._lock:
            expired = [
                sid for sid, (written_at, _) in self._store.items()
                if self._expired(written_at, max_lifetime)
            ]
            for sid in expired:
                del self._store[sid]
        return len(expired)
