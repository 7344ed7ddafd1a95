"""Tests for perch.http.cookies — the cookie bag, signing, and Set-Cookie output."""

from collections.abc import Callable

from perch.crypt import Crypt
from perch.di import Di
from perch.http.cookies import Cookie, Cookies, SetCookie, parse_cookies
from perch.http.request import Request
from perch.session import MemoryAdapter, SessionManager

SECRET = "test-secret-key"


def signed(value: str) -> str:
    return Crypt(SECRET).sign(value)


# ---------------------------------------------------------------------------
# Parsing and serialization
# ---------------------------------------------------------------------------


class TestParseCookies:
    def test_pairs(self) -> None:
        assert parse_cookies("a=1; b=two") == {"a": "1", "b": "two"}

    def test_quoted_and_encoded(self) -> None:
        assert parse_cookies('name="hello%20world"') == {"name": "hello world"}

    def test_empty(self) -> None:
        assert parse_cookies("") == {}

    def test_skips_bare_tokens(self) -> None:
        assert parse_cookies("flag; a=1") == {"a": "1"}


class TestSetCookie:
    def test_defaults(self) -> None:
        assert SetCookie("id", "42").to_header_value() == "id=42; Path=/; HttpOnly; SameSite=lax"

    def test_all_attributes(self) -> None:
        header = SetCookie(
            "id",
            "a b",
            expires=0,
            max_age=60,
            path="/admin",
            domain="example.com",
            secure=True,
            httponly=False,
            samesite="strict",
        ).to_header_value()
        assert header == (
            "id=a%20b; Expires=Thu, 01 Jan 1970 00:00:00 GMT; Max-Age=60; "
            "Path=/admin; Domain=example.com; Secure; SameSite=strict"
        )


# ---------------------------------------------------------------------------
# The bag
# ---------------------------------------------------------------------------


class TestCookiesBag:
    def test_set_registers_with_response(self, di: Di) -> None:
        cookies = di.get_shared("cookies")
        response = di.get_shared("response")
        assert response.get_cookies() is None
        cookies.set("theme", "dark")
        assert response.get_cookies() is cookies
        assert "theme" in cookies
        assert len(cookies) == 1

    def test_set_value_is_signed_on_send(self, di: Di) -> None:
        cookies = di.get_shared("cookies")
        cookies.set("user", "42")
        [directive] = cookies.send()
        assert directive.name == "user"
        assert directive.value.startswith("42.")
        assert di.get_shared("crypt").unsign(directive.value) == "42"

    def test_unsigned_bag(self, di: Di) -> None:
        cookies = di.get_shared("cookies").use_signing(False)
        cookies.set("user", "42", expire=2_000_000_000, secure=True)
        [directive] = cookies.send()
        assert directive.value == "42"
        assert directive.expires == 2_000_000_000
        assert directive.secure is True

    def test_update_existing_cookie(self, di: Di) -> None:
        cookies = di.get_shared("cookies").use_signing(False)
        cookies.set("a", "1")
        cookies.set("a", "2", path="/app")
        [directive] = cookies.send()
        assert directive.value == "2"
        assert directive.path == "/app"

    def test_only_dirty_cookies_are_sent(self, di: Di, make_request: Callable[..., Request]) -> None:
        di.set_shared("request", make_request(headers={"Cookie": "seen=1"}))
        cookies = di.get_shared("cookies").use_signing(False)
        assert cookies.get("seen").get_value() == "1"
        assert cookies.send() == []

    def test_read_signed_cookie_from_request(self, di: Di, make_request: Callable[..., Request]) -> None:
        di.set_shared("request", make_request(headers={"Cookie": f"user={signed('42')}"}))
        cookies = di.get_shared("cookies")
        assert cookies.has("user")
        assert cookies.get("user").get_value() == "42"

    def test_tampered_cookie_reads_as_default(self, di: Di, make_request: Callable[..., Request]) -> None:
        forged = signed("42").replace("42", "1", 1)
        di.set_shared("request", make_request(headers={"Cookie": f"user={forged}"}))
        cookie = di.get_shared("cookies").get("user")
        assert cookie.get_value(default="anonymous") == "anonymous"

    def test_value_filters(self, di: Di, make_request: Callable[..., Request]) -> None:
        di.set_shared("request", make_request(headers={"Cookie": "count=12abc"}))
        cookies = di.get_shared("cookies").use_signing(False)
        assert cookies.get("count").get_value("int") == 12

    def test_missing_cookie(self, di: Di) -> None:
        cookies = di.get_shared("cookies")
        assert not cookies.has("nope")
        assert cookies.get("nope").get_value() is None

    def test_delete_known_from_request(self, di: Di, make_request: Callable[..., Request]) -> None:
        di.set_shared("request", make_request(headers={"Cookie": "old=1"}))
        cookies = di.get_shared("cookies")
        assert cookies.delete("old") is True
        [directive] = cookies.send()
        assert directive.value == ""
        assert directive.max_age == 0
        assert directive.expires is not None
        assert di.get_shared("response").get_cookies() is cookies

    def test_delete_unknown(self, di: Di) -> None:
        assert di.get_shared("cookies").delete("ghost") is False

    def test_reset(self, di: Di) -> None:
        cookies = di.get_shared("cookies")
        cookies.set("a", "1")
        cookies.reset()
        assert cookies.get_cookies() == {}

    def test_bag_defaults_apply(self, di: Di) -> None:
        bag = Cookies(False, path="/shop", domain="shop.test", secure=True, samesite="strict")
        bag.set_di(di)
        bag.set("cart", "3")
        [directive] = bag.send()
        assert directive.path == "/shop"
        assert directive.domain == "shop.test"
        assert directive.secure is True
        assert directive.samesite == "strict"


class TestCookie:
    def test_str(self, di: Di) -> None:
        cookie = Cookie("a", "1")
        cookie.set_di(di)
        assert str(cookie) == "1"

    def test_attribute_setters_mark_dirty(self, di: Di, make_request: Callable[..., Request]) -> None:
        di.set_shared("request", make_request(headers={"Cookie": "a=1"}))
        cookie = di.get_shared("cookies").get("a")
        assert not cookie.is_dirty()
        cookie.set_http_only(False)
        assert cookie.is_dirty()
        assert cookie.get_http_only() is False

    def test_storing_attributes_starts_session(self, di: Di) -> None:
        di.set_shared("session", SessionManager(MemoryAdapter()))
        cookies = di.get_shared("cookies").use_signing(False)
        cookies.set("pref", "x", path="/account")
        assert [c.name for c in cookies.send()] == ["pref", "perch_session"]
        assert di.get_shared("session").get("_PERCHCOOKIE_pref") == {"path": "/account"}

    def test_default_attributes_leave_session_alone(self, di: Di) -> None:
        di.set_shared("session", SessionManager(MemoryAdapter()))
        cookies = di.get_shared("cookies").use_signing(False)
        cookies.set("theme", "dark")
        assert [c.name for c in cookies.send()] == ["theme"]
        assert not di.get_shared("session").exists()

    def test_attributes_persist_through_session(self, di: Di, make_request: Callable[..., Request]) -> None:
        adapter = MemoryAdapter()
        di.set_shared("session", SessionManager(adapter))
        di.get_shared("session").start()
        cookies = di.get_shared("cookies").use_signing(False)
        cookies.set("pref", "x", path="/account", secure=True)
        cookies.send()
        session = di.get_shared("session")
        assert session.get("_PERCHCOOKIE_pref") == {"path": "/account", "secure": True}

        # A later cookie object with the same name restores the attributes
        restored = Cookie("pref")
        restored.set_di(di)
        assert restored.get_path() == "/account"
        assert restored.get_secure() is True
