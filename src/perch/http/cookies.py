"""Cookies — per-cookie objects, the cookie bag, and Set-Cookie serialization.

The read side (``parse_cookies``) feeds ``Request``. The write side is
the ``Cookies`` bag: cookies set during a request are turned into
``SetCookie`` directives when the ``Response`` is sent.

Usage::

    class SessionController(Controller):
        def login_action(self):
            self.cookies.set("remember", "1", expire=int(time.time()) + 86400)

        def show_action(self):
            return self.cookies.get("remember").get_value()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from email.utils import formatdate
from typing import Any
from urllib.parse import quote, unquote

from perch.di.injectable import Injectable
from perch.errors import CryptError

logger = logging.getLogger("perch.http")

# Session key prefix for cookie definitions kept across requests
_SESSION_PREFIX = "_PERCHCOOKIE_"

# Deleted cookies expire this far in the past (8 days)
_DELETE_OFFSET = 691200


def parse_cookies(header: str) -> dict[str, str]:
    """Parse a ``Cookie`` header value into a name-value dict.

    Returns an empty dict for empty or missing headers.
    """
    if not header:
        return {}
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        pair = pair.strip()
        if "=" in pair:
            key, _, value = pair.partition("=")
            cookies[key.strip()] = unquote(value.strip().strip('"'))
    return cookies


@dataclass(frozen=True, slots=True)
class SetCookie:
    """A ``Set-Cookie`` directive attached to a response."""

    name: str
    value: str
    expires: int | None = None
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str | None = "lax"

    def to_header_value(self) -> str:
        """Serialize to a ``Set-Cookie`` header value string."""
        parts = [f"{self.name}={quote(self.value, safe='')}"]
        if self.expires is not None:
            parts.append(f"Expires={formatdate(self.expires, usegmt=True)}")
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite}")
        return "; ".join(parts)


class Cookie(Injectable):
    """One cookie: its value and the attributes it is sent with.

    The value is read lazily from the current request on first access.
    When signing is on, values go out signed through the ``crypt``
    service and come back verified; a tampered value reads as the
    default.
    """

    __slots__ = (
        "_deleted",
        "_dirty",
        "_domain",
        "_expire",
        "_httponly",
        "_name",
        "_path",
        "_read",
        "_restored",
        "_samesite",
        "_secure",
        "_signed",
        "_value",
    )

    def __init__(
        self,
        name: str,
        value: Any = None,
        expire: int = 0,
        path: str = "/",
        secure: bool | None = None,
        domain: str | None = None,
        httponly: bool | None = None,
        samesite: str | None = "lax",
    ) -> None:
        self._name = name
        self._value: Any = None
        self._read = False
        self._restored = False
        self._signed = False
        self._deleted = False
        self._dirty = False
        self._expire = expire
        self._path = path
        self._secure = bool(secure)
        self._domain = domain
        self._httponly = True if httponly is None else httponly
        self._samesite = samesite
        if value is not None:
            self.set_value(value)

    def __repr__(self) -> str:
        return f"<Cookie {self._name!r}>"

    def __str__(self) -> str:
        value = self.get_value()
        return "" if value is None else str(value)

    # -- Value --

    def get_name(self) -> str:
        return self._name

    def set_value(self, value: Any) -> Cookie:
        self._value = value
        self._read = True
        self._deleted = False
        self._dirty = True
        return self

    def get_value(self, filters: Any = None, default: Any = None) -> Any:
        """The cookie value, read from the request on first access.

        *filters* are applied through the ``filter`` service.
        """
        if not self._restored:
            self.restore()

        if not self._read:
            raw = self.request.get_cookie(self._name)
            if raw is None:
                return default
            if self._signed:
                try:
                    raw = self.crypt.unsign(raw)
                except CryptError:
                    logger.warning("Cookie %r failed signature verification", self._name)
                    return default
            self._value = raw
            self._read = True

        value = self._value
        if value is None:
            return default
        if filters is not None:
            value = self.filter.sanitize(value, filters)
        return value

    # -- Attributes --

    def set_expiration(self, expire: int) -> Cookie:
        """Expiry as epoch seconds; ``0`` makes a session cookie."""
        self._restore_once()
        self._expire = expire
        self._dirty = True
        return self

    def get_expiration(self) -> int:
        self._restore_once()
        return self._expire

    def set_path(self, path: str) -> Cookie:
        self._restore_once()
        self._path = path
        self._dirty = True
        return self

    def get_path(self) -> str:
        self._restore_once()
        return self._path

    def set_domain(self, domain: str | None) -> Cookie:
        self._restore_once()
        self._domain = domain
        self._dirty = True
        return self

    def get_domain(self) -> str | None:
        self._restore_once()
        return self._domain

    def set_secure(self, secure: bool) -> Cookie:
        self._restore_once()
        self._secure = secure
        self._dirty = True
        return self

    def get_secure(self) -> bool:
        self._restore_once()
        return self._secure

    def set_http_only(self, httponly: bool) -> Cookie:
        self._restore_once()
        self._httponly = httponly
        self._dirty = True
        return self

    def get_http_only(self) -> bool:
        self._restore_once()
        return self._httponly

    def set_samesite(self, samesite: str | None) -> Cookie:
        self._samesite = samesite
        self._dirty = True
        return self

    def use_signing(self, signed: bool) -> Cookie:
        self._signed = signed
        return self

    def is_using_signing(self) -> bool:
        return self._signed

    def is_dirty(self) -> bool:
        """Whether the cookie needs a ``Set-Cookie`` header this request."""
        return self._dirty

    # -- Persistence --

    def _restore_once(self) -> None:
        if not self._restored:
            self.restore()

    def _session(self, start: bool = False) -> Any:
        """The session service, when it is running or *start* may begin it.

        A session the client has not opened yet is left alone unless
        there is a definition to store.
        """
        di = self.get_di()
        if not di.has("session"):
            return None
        session = di.get_shared("session")
        if session.get_name() == self._name:
            return None
        if session.exists():
            return session
        if session.get_adapter() is None:
            return None
        if start:
            return session
        if di.has("request") and di.get_shared("request").has_cookie(session.get_name()):
            return session
        return None

    def restore(self) -> Cookie:
        """Reload the attributes stored in the session when the cookie was sent."""
        if self._restored:
            return self
        self._restored = True
        session = self._session()
        if session is None:
            return self
        definition = session.get(_SESSION_PREFIX + self._name)
        if isinstance(definition, dict):
            self._expire = definition.get("expire", self._expire)
            self._domain = definition.get("domain", self._domain)
            self._path = definition.get("path", self._path)
            self._secure = definition.get("secure", self._secure)
            self._httponly = definition.get("httponly", self._httponly)
        return self

    def delete(self) -> None:
        """Expire the cookie on the client and forget its stored attributes."""
        self._restored = True
        session = self._session()
        if session is not None:
            session.remove(_SESSION_PREFIX + self._name)
        self._value = None
        self._read = True
        self._deleted = True
        self._dirty = True

    def to_set_cookie(self) -> SetCookie:
        """Build the ``Set-Cookie`` directive for the current state."""
        if self._deleted:
            return SetCookie(
                name=self._name,
                value="",
                expires=int(time.time()) - _DELETE_OFFSET,
                max_age=0,
                path=self._path,
                domain=self._domain,
                secure=self._secure,
                httponly=self._httponly,
                samesite=self._samesite,
            )

        value = "" if self._value is None else str(self._value)
        if self._signed and value:
            value = self.crypt.sign(value)
        return SetCookie(
            name=self._name,
            value=value,
            expires=self._expire or None,
            path=self._path,
            domain=self._domain,
            secure=self._secure,
            httponly=self._httponly,
            samesite=self._samesite,
        )

    def send(self) -> SetCookie:
        """Store non-default attributes in the session and return the directive."""
        if not self._deleted:
            definition: dict[str, Any] = {}
            if self._expire:
                definition["expire"] = self._expire
            if self._path and self._path != "/":
                definition["path"] = self._path
            if self._domain:
                definition["domain"] = self._domain
            if self._secure:
                definition["secure"] = self._secure
            if not self._httponly:
                definition["httponly"] = self._httponly
            if definition:
                session = self._session(start=True)
                if session is not None:
                    session.set(_SESSION_PREFIX + self._name, definition)
        return self.to_set_cookie()


class Cookies(Injectable):
    """The per-request cookie bag.

    The first ``set()``/``delete()`` registers the bag with the
    ``response`` service, which asks it for ``Set-Cookie`` directives
    when it is sent.
    """

    __slots__ = (
        "_cookies",
        "_domain",
        "_httponly",
        "_path",
        "_registered",
        "_samesite",
        "_secure",
        "_use_signing",
    )

    def __init__(
        self,
        use_signing: bool = True,
        *,
        path: str = "/",
        domain: str | None = None,
        secure: bool = False,
        httponly: bool = True,
        samesite: str | None = "lax",
    ) -> None:
        self._cookies: dict[str, Cookie] = {}
        self._registered = False
        self._use_signing = use_signing
        self._path = path
        self._domain = domain
        self._secure = secure
        self._httponly = httponly
        self._samesite = samesite

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __len__(self) -> int:
        return len(self._cookies)

    def use_signing(self, use_signing: bool) -> Cookies:
        self._use_signing = use_signing
        return self

    def is_using_signing(self) -> bool:
        return self._use_signing

    def _new_cookie(self, name: str, **kwargs: Any) -> Cookie:
        cookie = Cookie(name, samesite=self._samesite, **kwargs)
        cookie.set_di(self.get_di())
        cookie.use_signing(self._use_signing)
        return cookie

    def _register(self) -> None:
        if not self._registered:
            self.response.set_cookies(self)
            self._registered = True

    def set(
        self,
        name: str,
        value: Any = None,
        expire: int = 0,
        path: str | None = None,
        secure: bool | None = None,
        domain: str | None = None,
        httponly: bool | None = None,
    ) -> Cookies:
        """Create or update a cookie to be sent with the response."""
        path = self._path if path is None else path
        secure = self._secure if secure is None else secure
        domain = self._domain if domain is None else domain
        httponly = self._httponly if httponly is None else httponly

        cookie = self._cookies.get(name)
        if cookie is None:
            cookie = self._new_cookie(
                name,
                expire=expire,
                path=path,
                secure=secure,
                domain=domain,
                httponly=httponly,
            )
            # A fresh cookie is always sent, even with no value yet
            cookie.set_value(value)
            self._cookies[name] = cookie
        else:
            cookie.set_value(value)
            cookie.set_expiration(expire)
            cookie.set_path(path)
            cookie.set_secure(secure)
            cookie.set_domain(domain)
            cookie.set_http_only(httponly)

        self._register()
        return self

    def get(self, name: str) -> Cookie:
        """The cookie named *name*, from the bag or the current request."""
        cookie = self._cookies.get(name)
        if cookie is None:
            cookie = self._new_cookie(
                name,
                path=self._path,
                secure=self._secure,
                domain=self._domain,
                httponly=self._httponly,
            )
            self._cookies[name] = cookie
        return cookie

    def has(self, name: str) -> bool:
        if name in self._cookies:
            return True
        di = self.get_di()
        return di.has("request") and di.get_shared("request").has_cookie(name)

    def delete(self, name: str) -> bool:
        """Expire *name* on the client. Returns ``False`` if it isn't known."""
        if not self.has(name):
            return False
        self.get(name).delete()
        self._register()
        return True

    def send(self) -> list[SetCookie]:
        """``Set-Cookie`` directives for every cookie changed this request."""
        directives: dict[str, SetCookie] = {}
        pending = [cookie for cookie in self._cookies.values() if cookie.is_dirty()]
        while pending:
            for cookie in pending:
                directives[cookie.get_name()] = cookie.send()
            # Storing a definition can start the session, which sets its own cookie.
            pending = [
                cookie
                for name, cookie in list(self._cookies.items())
                if cookie.is_dirty() and name not in directives
            ]
        return list(directives.values())

    def reset(self) -> Cookies:
        self._cookies = {}
        self._registered = False
        return self

    def get_cookies(self) -> dict[str, Cookie]:
        return dict(self._cookies)
