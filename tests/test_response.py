"""Tests for perch.http.response — status, headers, content, and sending."""

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from perch.di import Di
from perch.errors import PerchError
from perch.http.response import Response


class Capture:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def __call__(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    @property
    def status(self) -> int:
        return self.messages[0]["status"]

    @property
    def headers(self) -> dict[str, str]:
        return {k.decode(): v.decode() for k, v in self.messages[0]["headers"]}

    def header_list(self, name: str) -> list[str]:
        return [v.decode() for k, v in self.messages[0]["headers"] if k.decode() == name]

    @property
    def body(self) -> bytes:
        return self.messages[1]["body"]


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


class TestStatus:
    def test_default_status(self) -> None:
        response = Response()
        assert response.get_status_code() == 200
        assert response.get_reason_phrase() == "OK"

    def test_constructor_status(self) -> None:
        assert Response("gone", 410).get_reason_phrase() == "Gone"

    def test_custom_reason(self) -> None:
        response = Response().set_status_code(299, "Custom")
        assert response.get_status_code() == 299
        assert response.get_reason_phrase() == "Custom"

    def test_non_standard_code_needs_message(self) -> None:
        with pytest.raises(PerchError, match="Non-standard status code"):
            Response().set_status_code(299)


class TestHeaders:
    def test_case_insensitive(self) -> None:
        response = Response().set_header("X-Trace", "abc")
        assert response.get_header("x-trace") == "abc"
        assert response.has_header("X-TRACE")
        response.remove_header("x-trace")
        assert not response.has_header("X-Trace")

    def test_raw_header(self) -> None:
        response = Response().set_raw_header("X-Powered-By: perch")
        assert response.get_headers() == {"X-Powered-By": "perch"}

    def test_malformed_raw_header(self) -> None:
        with pytest.raises(PerchError, match="Malformed header"):
            Response().set_raw_header("no colon")

    def test_content_type_with_charset(self) -> None:
        response = Response().set_content_type("text/plain", "utf-8")
        assert response.get_content_type() == "text/plain; charset=utf-8"

    def test_reset_headers(self) -> None:
        response = Response().set_header("A", "1").reset_headers()
        assert response.get_headers() == {}


class TestContent:
    def test_append_content(self) -> None:
        response = Response("Hello")
        response.append_content(", world")
        assert response.get_content() == "Hello, world"

    def test_append_mixed_bytes(self) -> None:
        response = Response("a").append_content(b"b")
        assert response.get_content() == b"ab"

    def test_json_content(self) -> None:
        response = Response().set_json_content({"ok": True})
        assert response.get_content() == '{"ok": true}'
        assert response.get_content_type() == "application/json; charset=UTF-8"

    def test_redirect(self) -> None:
        response = Response().redirect("/login")
        assert response.get_status_code() == 302
        assert response.get_header("Location") == "/login"

    def test_redirect_invalid_status_falls_back(self) -> None:
        assert Response().redirect("/x", 200).get_status_code() == 302

    def test_cache_headers(self) -> None:
        response = Response()
        response.set_last_modified(datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC))
        response.set_cache(10)
        response.set_etag('"v1"')
        assert response.get_header("Last-Modified") == "Tue, 02 Jan 2024 03:04:05 GMT"
        assert response.get_header("Cache-Control") == "max-age=600"
        assert response.get_header("ETag") == '"v1"'
        assert response.get_header("Expires").endswith("GMT")

    def test_not_modified(self) -> None:
        assert Response().set_not_modified().get_status_code() == 304


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------


class TestSend:
    async def test_send_html_by_default(self) -> None:
        capture = Capture()
        await Response("<h1>Hi</h1>").send(capture)
        assert capture.status == 200
        assert capture.headers["content-type"] == "text/html; charset=utf-8"
        assert capture.headers["content-length"] == str(len(b"<h1>Hi</h1>"))
        assert capture.body == b"<h1>Hi</h1>"

    async def test_no_body_for_204(self) -> None:
        capture = Capture()
        await Response("ignored", 204).send(capture)
        assert capture.body == b""
        assert capture.headers["content-length"] == "0"

    async def test_send_twice_raises(self) -> None:
        response = Response("x")
        await response.send(Capture())
        assert response.is_sent()
        with pytest.raises(PerchError, match="already sent"):
            await response.send(Capture())

    async def test_file_attachment(self, tmp_path: Path) -> None:
        path = tmp_path / "report.csv"
        path.write_text("a,b\n1,2\n")
        response = Response().set_file_to_send(path, "export.csv")
        capture = Capture()
        await response.send(capture)
        assert capture.body == b"a,b\n1,2\n"
        assert capture.headers["content-type"] == "text/csv"
        assert capture.headers["content-disposition"] == 'attachment; filename="export.csv"'

    async def test_set_cookie_headers(self, di: Di) -> None:
        response = di.get_shared("response")
        cookies = di.get_shared("cookies")
        cookies.use_signing(False)
        cookies.set("theme", "dark")
        cookies.set("lang", "en")
        capture = Capture()
        await response.send(capture)
        set_cookies = capture.header_list("set-cookie")
        assert len(set_cookies) == 2
        assert set_cookies[0].startswith("theme=dark; Path=/; HttpOnly")
