"""SessionManager — server-side sessions keyed by a signed id cookie.

The session starts lazily on first access. Its id travels in a cookie
set through the ``cookies`` service and is always signed, whatever the
bag's own signing setting. With ``max_age`` the cookie expires that many
seconds after the id is issued; without it, it lasts for the browser
session.
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from collections.abc import Iterator
from typing import Any

from perch.di.injectable import Injectable
from perch.errors import SessionError
from perch.session.adapters import SessionAdapter

logger = logging.getLogger("perch.session")

STATUS_DISABLED = 0
STATUS_NONE = 1
STATUS_ACTIVE = 2

_ID_RE = re.compile(r"[A-Za-z0-9_\-]{16,128}")


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionManager(Injectable):
    """Per-request session state over a shared adapter.

    Usage::

        session = SessionManager(MemoryAdapter(), name="app_session")
        session.set("user_id", 42)
        session.get("user_id")          # 42
        session.regenerate_id()         # after login
        session.write_close()           # the app calls this after each request
    """

    __slots__ = ("_adapter", "_data", "_id", "_max_age", "_name", "_started")

    def __init__(
        self,
        adapter: SessionAdapter | None = None,
        name: str = "perch_session",
        max_age: int | None = None,
    ) -> None:
        self._adapter = adapter
        self._name = name
        self._max_age = max_age
        self._id = ""
        self._data: dict[str, Any] = {}
        self._started = False

    def __repr__(self) -> str:
        return f"<SessionManager {self._name!r} status={self.status()}>"

    # -- Lifecycle --

    def get_adapter(self) -> SessionAdapter | None:
        return self._adapter

    def set_adapter(self, adapter: SessionAdapter) -> SessionManager:
        self._adapter = adapter
        return self

    def exists(self) -> bool:
        """Whether the session has been started."""
        return self._started

    def status(self) -> int:
        if self._adapter is None:
            return STATUS_DISABLED
        return STATUS_ACTIVE if self._started else STATUS_NONE

    def start(self) -> bool:
        """Load the session named by the request cookie, or begin a new one."""
        if self._started:
            return True
        if self._adapter is None:
            msg = "The session adapter is not set"
            raise SessionError(msg)

        data = None
        session_id = self._id or self._read_cookie()
        if session_id and _ID_RE.fullmatch(session_id):
            data = self._adapter.read(session_id)

        if data is None:
            self._id = generate_session_id()
            self._data = {}
            self._send_cookie()
            logger.debug("Started new session")
        else:
            self._id = session_id
            self._data = data

        self._started = True
        return True

    def _ensure_started(self) -> None:
        if not self._started:
            self.start()

    def _cookie(self) -> Any:
        cookie = self.cookies.get(self._name)
        cookie.use_signing(True)
        return cookie

    def _read_cookie(self) -> str | None:
        di = self.get_di()
        if not di.has("request"):
            return None
        value = self._cookie().get_value()
        return value if isinstance(value, str) else None

    def _send_cookie(self) -> None:
        if not self.get_di().has("request"):
            return
        expire = int(time.time()) + self._max_age if self._max_age else 0
        self.cookies.set(self._name, self._id, expire=expire)
        self._cookie()

    def write_close(self) -> None:
        """Persist the session data and close the session for this request."""
        if not self._started:
            return
        self._adapter.write(self._id, self._data)
        self._started = False

    def destroy(self) -> bool:
        """Drop the stored data and expire the session cookie."""
        if self._adapter is not None and self._id:
            self._adapter.destroy(self._id)
        self._data = {}
        self._id = ""
        self._started = False
        if self.get_di().has("request"):
            self.cookies.delete(self._name)
        return True

    def regenerate_id(self, delete_old: bool = True) -> SessionManager:
        """Move the session data under a new id (call after login)."""
        self._ensure_started()
        old_id = self._id
        self._id = generate_session_id()
        if delete_old and old_id:
            self._adapter.destroy(old_id)
        self._send_cookie()
        return self

    # -- Identity --

    def get_id(self) -> str:
        return self._id

    def set_id(self, session_id: str) -> SessionManager:
        if self._started:
            msg = "The session has already been started. To change the id, use regenerate_id()"
            raise SessionError(msg)
        self._id = session_id
        return self

    def get_name(self) -> str:
        return self._name

    def set_name(self, name: str) -> SessionManager:
        if self._started:
            msg = "Cannot set session name after a session has started"
            raise SessionError(msg)
        if not re.fullmatch(r"[A-Za-z0-9_]+", name):
            msg = "The name contains non alphanum characters"
            raise SessionError(msg)
        self._name = name
        return self

    # -- Data --

    def get(self, key: str, default: Any = None, remove: bool = False) -> Any:
        self._ensure_started()
        if remove:
            return self._data.pop(key, default)
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._ensure_started()
        self._data[key] = value

    def has(self, key: str) -> bool:
        self._ensure_started()
        return key in self._data

    def remove(self, key: str) -> None:
        self._ensure_started()
        self._data.pop(key, None)

    def to_dict(self) -> dict[str, Any]:
        self._ensure_started()
        return dict(self._data)

    def __getitem__(self, key: str) -> Any:
        self._ensure_started()
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __delitem__(self, key: str) -> None:
        self._ensure_started()
        del self._data[key]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __iter__(self) -> Iterator[str]:
        self._ensure_started()
        return iter(list(self._data))

    def __len__(self) -> int:
        self._ensure_started()
        return len(self._data)
