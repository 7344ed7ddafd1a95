"""End-to-end tests for perch.App driven through the TestClient."""

from typing import Any

import pytest

from perch import App, AppConfig, ConfigurationError, Controller, HTTPError, NotFound
from perch.context import get_request, get_session
from perch.http.request import Request
from perch.http.response import Response
from perch.routing import Group
from perch.session import MemoryAdapter
from perch.testing import TestClient

SECRET = "test-secret-key"


def make_app(**config: Any) -> App:
    return App(AppConfig(secret_key=SECRET, **config))


# ---------------------------------------------------------------------------
# Micro handlers
# ---------------------------------------------------------------------------


class TestMicroRoutes:
    async def test_string_result(self) -> None:
        app = make_app()

        @app.route("/hello")
        def hello() -> str:
            return "Hello, World!"

        async with TestClient(app) as client:
            response = await client.get("/hello")
        assert response.status == 200
        assert response.text == "Hello, World!"
        assert response.content_type == "text/html; charset=utf-8"

    async def test_params_and_placeholders(self) -> None:
        app = make_app()

        @app.route("/posts/{year:[0-9]{4}}/{slug}", methods=["GET"])
        def show(year: str, slug: str) -> str:
            return f"{year}: {slug}"

        async with TestClient(app) as client:
            response = await client.get("/posts/2024/hello")
        assert response.text == "2024: hello"

    async def test_json_result(self) -> None:
        app = make_app()

        @app.route("/api/ping")
        async def ping() -> dict[str, bool]:
            return {"pong": True}

        async with TestClient(app) as client:
            response = await client.get("/api/ping")
        assert response.json() == {"pong": True}
        assert response.content_type == "application/json; charset=UTF-8"

    async def test_tuple_results(self) -> None:
        app = make_app()

        @app.route("/created")
        def created() -> tuple[str, int, dict[str, str]]:
            return "made", 201, {"X-Id": "7"}

        @app.route("/teapot")
        def teapot() -> tuple[str, int]:
            return "short and stout", 418

        async with TestClient(app) as client:
            created_response = await client.get("/created")
            teapot_response = await client.get("/teapot")
        assert created_response.status == 201
        assert created_response.header("x-id") == "7"
        assert teapot_response.status == 418

    async def test_shared_response(self) -> None:
        app = make_app()

        @app.route("/redirect")
        def redirect() -> Response:
            return get_request().response.redirect("/login")

        async with TestClient(app) as client:
            response = await client.get("/redirect")
        assert response.status == 302
        assert response.header("location") == "/login"

    async def test_method_mismatch_is_not_found(self) -> None:
        app = make_app()

        @app.route("/only-get", methods=["GET"])
        def only_get() -> str:
            return "ok"

        async with TestClient(app) as client:
            response = await client.post("/only-get")
        assert response.status == 404

    async def test_request_body(self) -> None:
        app = make_app()

        @app.route("/echo", methods=["POST"])
        def echo() -> dict[str, Any]:
            request = get_request()
            return {"name": request.get_post("name"), "page": request.get("page", "int")}

        async with TestClient(app) as client:
            response = await client.post("/echo?page=2", data={"name": "Ada"})
        assert response.json() == {"name": "Ada", "page": 2}

    async def test_url_for(self) -> None:
        app = make_app()

        @app.route("/posts/{slug}", name="post")
        def show(slug: str) -> str:
            return app.router.url_for("post", slug="other")

        async with TestClient(app) as client:
            response = await client.get("/posts/one")
        assert response.text == "/posts/other"


# ---------------------------------------------------------------------------
# Controllers
# ---------------------------------------------------------------------------


class TestControllers:
    async def test_controller_route(self) -> None:
        app = make_app()

        @app.controller("posts")
        class PostsController(Controller):
            def show_action(self, slug: str) -> str:
                return f"<h1>{slug}</h1>"

        app.add_route("/articles/{slug}", "posts::show")

        async with TestClient(app) as client:
            response = await client.get("/articles/hello")
        assert response.text == "<h1>hello</h1>"

    async def test_default_routes(self) -> None:
        app = make_app()

        @app.controller("posts")
        class PostsController(Controller):
            def index_action(self) -> str:
                return "index"

            def show_action(self, slug: str) -> str:
                return f"show {slug}"

        async with TestClient(app) as client:
            assert (await client.get("/posts")).text == "index"
            assert (await client.get("/posts/show/hello")).text == "show hello"
            assert (await client.get("/posts/missing")).status == 404

    async def test_root_uses_default_controller(self) -> None:
        app = make_app()

        @app.controller("index")
        class IndexController(Controller):
            def index_action(self) -> str:
                return "home"

        async with TestClient(app) as client:
            response = await client.get("/")
        assert response.text == "home"

    async def test_unknown_controller(self) -> None:
        async with TestClient(make_app()) as client:
            response = await client.get("/nothing-here")
        assert response.status == 404
        assert response.content_type == "text/plain; charset=utf-8"

    async def test_controller_uses_services(self) -> None:
        app = make_app()

        @app.controller("account")
        class AccountController(Controller):
            def whoami_action(self) -> Response:
                self.response.set_header("X-User", self.request.get_query("user", "string", "anon"))
                self.response.set_json_content({"ok": True})
                return self.response

        async with TestClient(app) as client:
            response = await client.get("/account/whoami", query={"user": "ada"})
        assert response.header("x-user") == "ada"
        assert response.json() == {"ok": True}

    async def test_mounted_group(self) -> None:
        app = make_app()

        @app.controller("admin_users")
        class AdminUsersController(Controller):
            def list_action(self) -> str:
                return "users"

        group = Group({"controller": "admin_users"}).set_prefix("/admin")
        group.add("/users", {"action": "list"})
        app.mount(group)

        async with TestClient(app) as client:
            response = await client.get("/admin/users")
        assert response.text == "users"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    async def test_http_error_default(self) -> None:
        app = make_app()

        @app.route("/forbidden")
        def forbidden() -> None:
            raise HTTPError(status=403, detail="No entry", headers=(("X-Reason", "test"),))

        async with TestClient(app) as client:
            response = await client.get("/forbidden")
        assert response.status == 403
        assert response.text == "No entry"
        assert response.header("x-reason") == "test"

    async def test_status_handler(self) -> None:
        app = make_app()

        @app.error(404)
        def not_found(request: Request) -> str:
            return f"Nothing at {request.path}"

        async with TestClient(app) as client:
            response = await client.get("/missing")
        assert response.status == 404
        assert response.text == "Nothing at /missing"

    async def test_exception_type_handler(self) -> None:
        app = make_app()

        class Gone(HTTPError):
            def __init__(self) -> None:
                super().__init__(status=410, detail="gone")

        @app.route("/old")
        def old() -> None:
            raise Gone

        @app.error(Gone)
        def gone(request: Request, exc: HTTPError) -> tuple[str, int]:
            return f"handled {exc.detail}", 410

        async with TestClient(app) as client:
            response = await client.get("/old")
        assert response.status == 410
        assert response.text == "handled gone"

    async def test_internal_error(self) -> None:
        app = make_app()

        @app.route("/boom")
        def boom() -> None:
            raise RuntimeError("kaboom")

        async with TestClient(app) as client:
            response = await client.get("/boom")
        assert response.status == 500
        assert response.text == "Internal Server Error"
        assert "kaboom" not in response.text

    async def test_internal_error_debug(self) -> None:
        app = make_app(debug=True)

        @app.route("/boom")
        def boom() -> None:
            raise RuntimeError("<kaboom>")

        async with TestClient(app) as client:
            response = await client.get("/boom")
        assert response.status == 500
        assert "&lt;kaboom&gt;" in response.text

    async def test_internal_error_handler(self) -> None:
        app = make_app()

        @app.route("/boom")
        def boom() -> None:
            raise RuntimeError("kaboom")

        @app.error(500)
        def oops() -> dict[str, str]:
            return {"error": "oops"}

        async with TestClient(app) as client:
            response = await client.get("/boom")
        assert response.status == 500
        assert response.json() == {"error": "oops"}

    async def test_exception_handler_wins_over_500_handler(self) -> None:
        app = make_app()

        @app.route("/key")
        def key() -> None:
            raise KeyError("missing")

        @app.route("/boom")
        def boom() -> None:
            raise RuntimeError("kaboom")

        @app.error(KeyError)
        def missing_key(request: Request, exc: Exception) -> tuple[str, int]:
            return "no such key", 400

        @app.error(500)
        def oops() -> str:
            return "oops"

        async with TestClient(app) as client:
            keyed = await client.get("/key")
            other = await client.get("/boom")
        assert (keyed.status, keyed.text) == (400, "no such key")
        assert (other.status, other.text) == (500, "oops")

    async def test_body_too_large(self) -> None:
        app = make_app(max_content_length=10)

        @app.route("/upload", methods=["POST"])
        def upload() -> str:
            return "ok"

        async with TestClient(app) as client:
            response = await client.post("/upload", body=b"x" * 100)
        assert response.status == 413

    async def test_unsupported_result(self) -> None:
        app = make_app()

        @app.route("/weird")
        def weird() -> object:
            return object()

        async with TestClient(app) as client:
            response = await client.get("/weird")
        assert response.status == 500


# ---------------------------------------------------------------------------
# Sessions, cookies, CSRF
# ---------------------------------------------------------------------------


class TestState:
    async def test_session_survives_requests(self) -> None:
        app = make_app()

        @app.route("/count")
        def count() -> str:
            session = get_session()
            session.set("count", session.get("count", 0) + 1)
            return str(session.get("count"))

        async with TestClient(app) as client:
            assert (await client.get("/count")).text == "1"
            assert "perch_session" in client.cookies
            assert (await client.get("/count")).text == "2"

        async with TestClient(app) as other:
            assert (await other.get("/count")).text == "1"

    async def test_custom_session_adapter(self) -> None:
        adapter = MemoryAdapter()
        app = App(AppConfig(secret_key=SECRET), session_adapter=adapter)

        @app.route("/login")
        def login() -> str:
            get_session().set("user_id", 1)
            return "ok"

        async with TestClient(app) as client:
            await client.get("/login")
        assert len(adapter) == 1
        assert app.session_adapter is adapter

    async def test_signed_cookie_round_trip(self) -> None:
        app = make_app()

        @app.route("/set")
        def set_cookie() -> str:
            get_request().cookies.set("theme", "dark")
            return "set"

        @app.route("/get")
        def get_cookie() -> str:
            return get_request().cookies.get("theme").get_value(default="none")

        async with TestClient(app) as client:
            await client.get("/set")
            assert client.cookies["theme"] != "dark"
            assert (await client.get("/get")).text == "dark"
            client.cookies["theme"] = "dark"
            assert (await client.get("/get")).text == "none"

    async def test_cookie_attributes_restored_next_request(self) -> None:
        app = make_app()

        @app.route("/set")
        def set_cookie() -> str:
            get_request().cookies.set("pref", "x", path="/account")
            return "set"

        @app.route("/stored")
        def stored() -> dict[str, Any]:
            return {
                "definition": get_session().get("_PERCHCOOKIE_pref"),
                "path": get_request().cookies.get("pref").get_path(),
            }

        async with TestClient(app) as client:
            await client.get("/set")
            assert "perch_session" in client.cookies
            body = (await client.get("/stored")).json()
        assert body == {"definition": {"path": "/account"}, "path": "/account"}

    async def test_cookies_kept_on_error_response(self) -> None:
        app = make_app()

        @app.route("/fail")
        def fail() -> None:
            get_request().cookies.set("seen", "1")
            raise NotFound

        async with TestClient(app) as client:
            response = await client.get("/fail")
        assert response.status == 404
        assert any(c.startswith("seen=") for c in response.header_list("set-cookie"))

    async def test_csrf_form_flow(self) -> None:
        app = make_app()

        @app.route("/form", methods=["GET"])
        def form() -> dict[str, str]:
            security = get_request().security
            return {"key": security.get_token_key(), "value": security.get_token()}

        @app.route("/form", methods=["POST"])
        def submit() -> tuple[str, int] | str:
            if not get_request().security.check_token():
                return "bad token", 403
            return "accepted"

        async with TestClient(app) as client:
            token = (await client.get("/form")).json()
            accepted = await client.post("/form", data={token["key"]: token["value"]})
            replayed = await client.post("/form", data={token["key"]: token["value"]})
        assert accepted.text == "accepted"
        assert replayed.status == 403

    async def test_sessions_disabled(self) -> None:
        app = make_app(session_enabled=False)
        assert not app.di.has("session")

        @app.route("/plain")
        def plain() -> str:
            return "ok"

        async with TestClient(app) as client:
            await client.get("/plain")
        assert client.cookies == {}


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_frozen_after_first_request(self) -> None:
        app = make_app()

        @app.route("/")
        def index() -> str:
            return "ok"

        async with TestClient(app) as client:
            await client.get("/")

        with pytest.raises(RuntimeError, match="Cannot modify the app"):
            app.add_route("/late", "posts::late")

    async def test_hooks_run(self) -> None:
        app = make_app()
        events: list[str] = []

        @app.on_startup
        async def start() -> None:
            events.append("start")

        @app.on_shutdown
        def stop() -> None:
            events.append("stop")

        async with TestClient(app):
            assert events == ["start"]
        assert events == ["start", "stop"]

    async def test_lifespan_protocol(self) -> None:
        app = make_app()
        events: list[str] = []
        app.on_startup(lambda: events.append("start"))
        messages = [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}]
        sent: list[dict[str, Any]] = []

        async def receive() -> dict[str, Any]:
            return messages.pop(0)

        async def send(message: dict[str, Any]) -> None:
            sent.append(message)

        await app({"type": "lifespan"}, receive, send)
        assert [m["type"] for m in sent] == [
            "lifespan.startup.complete",
            "lifespan.shutdown.complete",
        ]
        assert events == ["start"]

    async def test_lifespan_startup_failure(self) -> None:
        app = make_app()

        @app.on_startup
        def broken() -> None:
            raise ValueError("no database")

        sent: list[dict[str, Any]] = []

        async def receive() -> dict[str, Any]:
            return {"type": "lifespan.startup"}

        async def send(message: dict[str, Any]) -> None:
            sent.append(message)

        await app({"type": "lifespan"}, receive, send)
        assert sent == [{"type": "lifespan.startup.failed", "message": "no database"}]

    async def test_secret_key_required(self) -> None:
        app = App(AppConfig())
        with pytest.raises(ConfigurationError, match="secret_key"):
            async with TestClient(app):
                pass

    async def test_no_secret_needed_without_signing(self) -> None:
        app = App(AppConfig(session_enabled=False, sign_cookies=False))

        @app.route("/")
        def index() -> str:
            return "ok"

        async with TestClient(app) as client:
            assert (await client.get("/")).text == "ok"

    async def test_websocket_scope_rejected(self) -> None:
        async def receive() -> dict[str, Any]:
            return {}

        async def send(message: dict[str, Any]) -> None:
            pass

        with pytest.raises(RuntimeError, match="Unsupported ASGI scope"):
            await make_app()({"type": "websocket"}, receive, send)
