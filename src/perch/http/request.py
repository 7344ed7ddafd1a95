"""HTTP request — ASGI scope metadata, loaded body, and sanitized accessors.

Metadata (method, path, headers, query) is fixed at creation. The body
is read once with ``await request.load()``, after which the synchronous
accessors (``get_post``, ``get_put``, ``get_raw_body``...) work from the
cached bytes.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import AsyncGenerator, Iterable, Mapping
from typing import Any

from perch._internal.asgi import Receive, Scope, iter_body
from perch.di.injectable import Injectable
from perch.errors import HTTPError, PerchError
from perch.http.cookies import parse_cookies
from perch.http.forms import FormData, UploadFile, is_form_content_type, parse_form_data
from perch.http.headers import Headers
from perch.http.query import QueryParams

logger = logging.getLogger("perch.http")

HTTP_METHODS = frozenset(
    {"GET", "POST", "PUT", "DELETE", "HEAD", "OPTIONS", "PATCH", "PURGE", "TRACE", "CONNECT"}
)


def _is_empty(value: Any) -> bool:
    """Empty for ``not_allow_empty``: ``None``, blank strings, empty collections."""
    if value is None:
        return True
    if isinstance(value, (str, bytes)):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return not value
    return False


class Request(Injectable):
    """An HTTP request.

    Usage::

        request = Request.from_asgi(scope, receive)
        await request.load()

        request.get_method()                        # "POST"
        request.get_post("email", "email")          # sanitized through the filter service
        request.get_query("page", "absint", 1)
    """

    __slots__ = (
        "_cache",
        "_client",
        "_cookies",
        "_files",
        "_loaded",
        "_method_override",
        "_post",
        "_put",
        "_receive",
        "_root_path",
        "_scheme",
        "_server",
        "headers",
        "http_version",
        "method",
        "path",
        "query",
    )

    def __init__(
        self,
        method: str,
        path: str,
        headers: Headers | None = None,
        query: QueryParams | None = None,
        *,
        scheme: str = "http",
        http_version: str = "1.1",
        server: tuple[str, int] | None = None,
        client: tuple[str, int] | None = None,
        root_path: str = "",
        receive: Receive | None = None,
        http_method_parameter_override: bool = False,
    ) -> None:
        self.method = method.upper()
        self.path = path
        self.headers = headers if headers is not None else Headers()
        self.query = query if query is not None else QueryParams()
        self.http_version = http_version
        self._scheme = scheme
        self._server = server
        self._client = client
        self._root_path = root_path
        self._receive = receive
        self._method_override = http_method_parameter_override
        self._cookies = parse_cookies(self.headers.get("cookie", ""))
        self._cache: dict[str, Any] = {}
        self._post: dict[str, Any] = {}
        self._put: dict[str, Any] = {}
        self._files: list[UploadFile] = []
        self._loaded = False

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.path!r}>"

    # -- Factory --

    @classmethod
    def from_asgi(
        cls,
        scope: Scope,
        receive: Receive,
        *,
        http_method_parameter_override: bool = False,
    ) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        server = scope.get("server")
        client = scope.get("client")
        return cls(
            method=scope["method"],
            path=scope["path"],
            headers=Headers(tuple(scope.get("headers", ()))),
            query=QueryParams(scope.get("query_string", b"")),
            scheme=scope.get("scheme", "http"),
            http_version=scope.get("http_version", "1.1"),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
            root_path=scope.get("root_path", ""),
            receive=receive,
            http_method_parameter_override=http_method_parameter_override,
        )

    # -- Body --

    async def load(self, max_content_length: int | None = None) -> Request:
        """Read and parse the body once.

        Form bodies fill ``get_post`` (POST) or ``get_put`` (other
        methods); JSON objects fill them too.

        Raises:
            HTTPError: 413 when the body exceeds *max_content_length*,
                400 when a form body cannot be parsed.
        """
        if self._loaded:
            return self
        self._loaded = True

        declared = self.content_length
        if max_content_length is not None and declared is not None and declared > max_content_length:
            raise HTTPError(status=413, detail="Request body too large")

        raw = await self.body()
        if max_content_length is not None and len(raw) > max_content_length:
            raise HTTPError(status=413, detail="Request body too large")
        if not raw:
            return self

        content_type = self.get_content_type()
        values: dict[str, Any] = {}
        if is_form_content_type(content_type):
            try:
                form = await self.form()
            except ValueError as exc:
                logger.debug("Rejected form body: %s", exc)
                raise HTTPError(status=400, detail=str(exc)) from exc
            values = dict(form)
            self._files = form.files
        elif content_type.lower().split(";")[0].strip() == "application/json":
            data = self.get_json_raw_body()
            if isinstance(data, dict):
                values = data

        if self.method == "POST":
            self._post = values
        else:
            self._put = values
        return self

    async def body(self) -> bytes:
        """The full request body, read once from ASGI receive."""
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks = [chunk async for chunk in self.stream()]
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        """Stream the request body in chunks."""
        if "_body" in self._cache:
            if self._cache["_body"]:
                yield self._cache["_body"]
            return
        if self._receive is None:
            return
        async for chunk in iter_body(self._receive):
            yield chunk

    async def json(self) -> Any:
        return json.loads(await self.body())

    async def text(self) -> str:
        return (await self.body()).decode("utf-8")

    async def form(self) -> FormData:
        """Parse the body as form data (URL-encoded or multipart), once."""
        if "_form" in self._cache:
            return self._cache["_form"]
        ct = self.get_content_type() or "application/x-www-form-urlencoded"
        result = await parse_form_data(await self.body(), ct)
        self._cache["_form"] = result
        return result

    def get_raw_body(self) -> bytes:
        """The body bytes read by ``load()`` (empty before it)."""
        return self._cache.get("_body", b"")

    def get_json_raw_body(self) -> Any:
        """The body decoded as JSON, or ``None`` when it is not valid JSON."""
        if "_json" not in self._cache:
            try:
                self._cache["_json"] = json.loads(self.get_raw_body())
            except ValueError:
                self._cache["_json"] = None
        return self._cache["_json"]

    # -- Parameters --

    def _get_helper(
        self,
        source: Mapping[str, Any],
        name: str | None,
        filters: Any,
        default: Any,
        not_allow_empty: bool,
        no_recursive: bool,
    ) -> Any:
        if name is None:
            return dict(source)
        if name not in source:
            return default
        value = source[name]
        if filters is not None:
            value = self.filter.sanitize(value, filters, no_recursive)
        if not_allow_empty and _is_empty(value):
            return default
        return value

    def get(
        self,
        name: str | None = None,
        filters: Any = None,
        default: Any = None,
        not_allow_empty: bool = False,
        no_recursive: bool = False,
    ) -> Any:
        """A value from the query string or body; body values win."""
        merged = {**self.query, **self._post, **self._put}
        return self._get_helper(merged, name, filters, default, not_allow_empty, no_recursive)

    def get_post(
        self,
        name: str | None = None,
        filters: Any = None,
        default: Any = None,
        not_allow_empty: bool = False,
        no_recursive: bool = False,
    ) -> Any:
        return self._get_helper(self._post, name, filters, default, not_allow_empty, no_recursive)

    def get_put(
        self,
        name: str | None = None,
        filters: Any = None,
        default: Any = None,
        not_allow_empty: bool = False,
        no_recursive: bool = False,
    ) -> Any:
        return self._get_helper(self._put, name, filters, default, not_allow_empty, no_recursive)

    def get_query(
        self,
        name: str | None = None,
        filters: Any = None,
        default: Any = None,
        not_allow_empty: bool = False,
        no_recursive: bool = False,
    ) -> Any:
        return self._get_helper(self.query, name, filters, default, not_allow_empty, no_recursive)

    def has(self, name: str) -> bool:
        return name in self.query or name in self._post or name in self._put

    def has_post(self, name: str) -> bool:
        return name in self._post

    def has_put(self, name: str) -> bool:
        return name in self._put

    def has_query(self, name: str) -> bool:
        return name in self.query

    # -- Cookies --

    def get_cookie(self, name: str, default: str | None = None) -> str | None:
        """The raw value the client sent for cookie *name*."""
        return self._cookies.get(name, default)

    def has_cookie(self, name: str) -> bool:
        return name in self._cookies

    def get_cookie_values(self) -> dict[str, str]:
        return dict(self._cookies)

    # -- Method --

    def get_method(self) -> str:
        """The effective method.

        A POST may carry ``X-HTTP-Method-Override``; with parameter
        override enabled a ``_method`` field is honoured too. Unknown
        methods read as ``GET``.
        """
        method = self.method
        if method == "POST":
            override = self.headers.get("x-http-method-override")
            if override:
                method = override.upper()
            elif self._method_override:
                spoofed = self._post.get("_method") or self.query.get("_method")
                if isinstance(spoofed, str) and spoofed:
                    method = spoofed.upper()
        if method not in HTTP_METHODS:
            return "GET"
        return method

    def is_method(self, methods: str | Iterable[str], strict: bool = False) -> bool:
        """Whether the effective method is *methods* (or one of them).

        With *strict*, unknown method names raise ``PerchError``.
        """
        current = self.get_method()
        if isinstance(methods, str):
            methods = [methods]
        for method in methods:
            upper = method.upper()
            if strict and upper not in HTTP_METHODS:
                msg = f"Invalid HTTP method: {method}"
                raise PerchError(msg)
            if upper == current:
                return True
        return False

    def is_get(self) -> bool:
        return self.get_method() == "GET"

    def is_post(self) -> bool:
        return self.get_method() == "POST"

    def is_put(self) -> bool:
        return self.get_method() == "PUT"

    def is_patch(self) -> bool:
        return self.get_method() == "PATCH"

    def is_delete(self) -> bool:
        return self.get_method() == "DELETE"

    def is_head(self) -> bool:
        return self.get_method() == "HEAD"

    def is_options(self) -> bool:
        return self.get_method() == "OPTIONS"

    # -- Connection --

    def is_ajax(self) -> bool:
        return self.headers.get("x-requested-with") == "XMLHttpRequest"

    def get_scheme(self) -> str:
        return self._scheme

    def is_secure(self) -> bool:
        return self._scheme in ("https", "wss")

    def get_http_host(self) -> str:
        """The ``Host`` header (with port, if sent), else the server name."""
        host = self.headers.get("host")
        if host:
            return host.strip().lower()
        return self.get_server_name()

    def get_server_name(self) -> str:
        if self._server:
            return self._server[0]
        return "localhost"

    def get_port(self) -> int:
        host = self.headers.get("host", "") or ""
        if ":" in host and not host.endswith("]"):
            port = host.rsplit(":", 1)[1]
            if port.isdigit():
                return int(port)
        if self._server:
            return self._server[1]
        return 443 if self.is_secure() else 80

    def get_uri(self) -> str:
        """Path plus query string, as the client sent it."""
        qs = self.query.raw
        if qs:
            return f"{self.path}?{qs.decode('latin-1')}"
        return self.path

    def get_client_address(self, trust_forwarded_header: bool = False) -> str | None:
        if trust_forwarded_header:
            forwarded = self.headers.get("x-forwarded-for") or self.headers.get("client-ip")
            if forwarded:
                return forwarded.split(",")[0].strip()
        if self._client:
            return self._client[0]
        return None

    # -- Headers --

    @property
    def content_length(self) -> int | None:
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def get_header(self, name: str) -> str:
        """A header value, or ``""``. Server variable names work too (``HTTP_USER_AGENT``)."""
        return self.headers.get(name) or ""

    def get_headers(self) -> dict[str, str]:
        return self.headers.to_dict()

    def get_content_type(self) -> str:
        return self.headers.get("content-type") or ""

    def get_user_agent(self) -> str:
        return self.headers.get("user-agent") or ""

    def get_http_referer(self) -> str:
        return self.headers.get("referer") or ""

    def get_basic_auth(self) -> dict[str, str] | None:
        """``{"username": ..., "password": ...}`` from a Basic ``Authorization`` header."""
        header = self.headers.get("authorization") or ""
        scheme, _, encoded = header.partition(" ")
        if scheme.lower() != "basic" or not encoded:
            return None
        try:
            decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None
        username, sep, password = decoded.partition(":")
        if not sep:
            return None
        return {"username": username, "password": password}

    # -- Content negotiation --

    def _quality_list(self, header: str, key: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for part in (self.headers.get(header) or "").split(","):
            pieces = [piece.strip() for piece in part.split(";")]
            if not pieces[0]:
                continue
            item: dict[str, Any] = {key: pieces[0], "quality": 1.0}
            for param in pieces[1:]:
                name, _, value = param.partition("=")
                if name.strip() == "q":
                    try:
                        item["quality"] = float(value)
                    except ValueError:
                        item["quality"] = 0.0
                else:
                    item[name.strip()] = value.strip()
            items.append(item)
        return items

    def _best(self, items: list[dict[str, Any]], key: str) -> str:
        best = ""
        best_quality = 0.0
        for item in items:
            if item["quality"] > best_quality:
                best = item[key]
                best_quality = item["quality"]
        return best

    def get_acceptable_content(self) -> list[dict[str, Any]]:
        """``Accept`` entries as ``{"accept": ..., "quality": ...}`` dicts."""
        return self._quality_list("accept", "accept")

    def get_best_accept(self) -> str:
        return self._best(self.get_acceptable_content(), "accept")

    def get_languages(self) -> list[dict[str, Any]]:
        return self._quality_list("accept-language", "language")

    def get_best_language(self) -> str:
        return self._best(self.get_languages(), "language")

    def get_client_charsets(self) -> list[dict[str, Any]]:
        return self._quality_list("accept-charset", "charset")

    def get_best_charset(self) -> str:
        return self._best(self.get_client_charsets(), "charset")

    # -- Files --

    def has_files(self) -> int:
        """Number of uploaded files."""
        return len(self._files)

    def get_uploaded_files(self, only_successful: bool = False) -> list[UploadFile]:
        if only_successful:
            return [file for file in self._files if file.size > 0]
        return list(self._files)
