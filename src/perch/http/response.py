"""HTTP response — mutable, shared per request through the container.

Controllers and components write to the same ``response`` service; the
app sends it once at the end of the request.

Usage::

    class ApiController(Controller):
        def status_action(self):
            self.response.set_status_code(202)
            self.response.set_json_content({"queued": True})
            return self.response
"""

from __future__ import annotations

import json
import logging
import mimetypes
import time
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from email.utils import format_datetime
from http import HTTPStatus
from pathlib import Path
from typing import TYPE_CHECKING, Any

from perch._internal.asgi import Send
from perch.di.injectable import Injectable
from perch.errors import PerchError

if TYPE_CHECKING:
    from perch.http.cookies import Cookies, SetCookie

logger = logging.getLogger("perch.http")


def _body_allowed(status: int) -> bool:
    """Whether an HTTP status code permits a response body."""
    # RFC: 1xx, 204, and 304 responses do not include a message body.
    return not (100 <= status < 200 or status in {204, 304})


def _http_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return format_datetime(value.astimezone(UTC), usegmt=True)


class Response(Injectable):
    """A mutable HTTP response."""

    __slots__ = (
        "_content",
        "_cookies",
        "_file",
        "_headers",
        "_reason",
        "_sent",
        "_set_cookies",
        "_status",
    )

    def __init__(
        self,
        content: str | bytes | None = None,
        status: int | None = None,
        reason: str | None = None,
    ) -> None:
        self._content: str | bytes | None = content
        self._status: int | None = None
        self._reason: str | None = None
        # lowercased name -> (name as set, value)
        self._headers: dict[str, tuple[str, str]] = {}
        self._cookies: Cookies | None = None
        self._set_cookies: list[SetCookie] | None = None
        self._file: tuple[Path, str | None] | None = None
        self._sent = False
        if status is not None:
            self.set_status_code(status, reason)

    def __repr__(self) -> str:
        return f"<Response {self.get_status_code()}>"

    # -- Status --

    def set_status_code(self, code: int, message: str | None = None) -> Response:
        """Set the status; *message* is required for non-standard codes."""
        if message is None:
            try:
                message = HTTPStatus(code).phrase
            except ValueError:
                msg = f"Non-standard status code {code} given without a message"
                raise PerchError(msg) from None
        self._status = code
        self._reason = message
        return self

    def get_status_code(self) -> int:
        return self._status if self._status is not None else 200

    def get_reason_phrase(self) -> str:
        if self._reason is not None:
            return self._reason
        return HTTPStatus(self.get_status_code()).phrase

    # -- Headers --

    def set_header(self, name: str, value: str) -> Response:
        self._headers[name.lower()] = (name, str(value))
        return self

    def get_header(self, name: str) -> str | None:
        entry = self._headers.get(name.lower())
        return entry[1] if entry is not None else None

    def has_header(self, name: str) -> bool:
        return name.lower() in self._headers

    def remove_header(self, name: str) -> Response:
        self._headers.pop(name.lower(), None)
        return self

    def reset_headers(self) -> Response:
        self._headers = {}
        return self

    def get_headers(self) -> dict[str, str]:
        return dict(self._headers.values())

    def set_raw_header(self, header: str) -> Response:
        """Set a header from a ``"Name: value"`` line."""
        name, sep, value = header.partition(":")
        if not sep:
            msg = f"Malformed header line {header!r}"
            raise PerchError(msg)
        return self.set_header(name.strip(), value.strip())

    def set_content_type(self, content_type: str, charset: str | None = None) -> Response:
        if charset:
            content_type = f"{content_type}; charset={charset}"
        return self.set_header("Content-Type", content_type)

    def get_content_type(self) -> str | None:
        return self.get_header("Content-Type")

    def set_content_length(self, length: int) -> Response:
        return self.set_header("Content-Length", str(length))

    # -- Content --

    def set_content(self, content: str | bytes) -> Response:
        self._content = content
        return self

    def append_content(self, content: str | bytes) -> Response:
        current = self._content
        if current is None:
            self._content = content
        elif isinstance(current, bytes) or isinstance(content, bytes):
            left = current.encode("utf-8") if isinstance(current, str) else current
            right = content.encode("utf-8") if isinstance(content, str) else content
            self._content = left + right
        else:
            self._content = current + content
        return self

    def get_content(self) -> str | bytes:
        return self._content if self._content is not None else ""

    def set_json_content(self, content: Any, **dumps_options: Any) -> Response:
        """Serialize *content* to JSON and set the JSON content type."""
        self.set_content_type("application/json", "UTF-8")
        self._content = json.dumps(content, default=str, **dumps_options)
        return self

    # -- Redirects and caching --

    def redirect(self, location: str, status: int = 302) -> Response:
        if not 300 <= status < 400:
            status = 302
        self.set_status_code(status)
        self.set_header("Location", location)
        return self

    def set_not_modified(self) -> Response:
        return self.set_status_code(304)

    def set_etag(self, etag: str) -> Response:
        return self.set_header("ETag", etag)

    def set_last_modified(self, value: datetime) -> Response:
        return self.set_header("Last-Modified", _http_date(value))

    def set_expires(self, value: datetime) -> Response:
        return self.set_header("Expires", _http_date(value))

    def set_cache(self, minutes: int) -> Response:
        """Allow caching for *minutes*: ``Expires`` plus ``Cache-Control: max-age``."""
        self.set_expires(datetime.now(UTC) + timedelta(minutes=minutes))
        return self.set_header("Cache-Control", f"max-age={minutes * 60}")

    def set_file_to_send(self, path: str | Path, attachment_name: str | None = None, attachment: bool = True) -> Response:
        """Send the file at *path* as the body."""
        path = Path(path)
        name = attachment_name or path.name
        self._file = (path, name if attachment else None)
        if not self.has_header("Content-Type"):
            guessed, _ = mimetypes.guess_type(name)
            self.set_content_type(guessed or "application/octet-stream")
        return self

    # -- Cookies --

    def set_cookies(self, cookies: Cookies) -> Response:
        self._cookies = cookies
        return self

    def get_cookies(self) -> Cookies | None:
        return self._cookies

    def send_cookies(self) -> list[SetCookie]:
        """Collect the bag's ``Set-Cookie`` directives, once per response.

        Runs before the session is closed: collecting stores cookie
        definitions in the session.
        """
        if self._set_cookies is None:
            self._set_cookies = self._cookies.send() if self._cookies is not None else []
        return self._set_cookies

    # -- Sending --

    def is_sent(self) -> bool:
        return self._sent

    def _body_bytes(self) -> bytes:
        if self._file is not None:
            return self._file[0].read_bytes()
        content = self.get_content()
        return content.encode("utf-8") if isinstance(content, str) else content

    def _raw_headers(self, body_length: int) -> Iterator[tuple[bytes, bytes]]:
        headers = dict(self._headers)
        if "content-type" not in headers:
            headers["content-type"] = ("Content-Type", "text/html; charset=utf-8")
        if self._file is not None and self._file[1] is not None:
            headers["content-disposition"] = (
                "Content-Disposition",
                f'attachment; filename="{self._file[1]}"',
            )
        headers["content-length"] = ("Content-Length", str(body_length))
        for name, value in headers.values():
            yield name.lower().encode("latin-1"), value.encode("latin-1")
        for cookie in self.send_cookies():
            yield b"set-cookie", cookie.to_header_value().encode("latin-1")

    async def send(self, send: Send) -> None:
        """Emit the ASGI start and body messages.

        Raises:
            PerchError: If the response was already sent.
        """
        if self._sent:
            msg = "Response was already sent"
            raise PerchError(msg)
        self._sent = True

        status = self.get_status_code()
        body = self._body_bytes() if _body_allowed(status) else b""
        started = time.perf_counter()
        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": list(self._raw_headers(len(body))),
            }
        )
        await send({"type": "http.response.body", "body": body})
        logger.debug(
            "Sent %d (%d bytes) in %.2fms", status, len(body), (time.perf_counter() - started) * 1000
        )
