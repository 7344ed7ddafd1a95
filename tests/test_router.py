"""Tests for perch.routing.router and perch.routing.group."""

from collections.abc import Callable

import pytest

from perch.di import Di
from perch.errors import RouterError
from perch.http.request import Request
from perch.routing import POSITION_FIRST, Group, Route, Router


@pytest.fixture
def use_request(di: Di, make_request: Callable[..., Request]) -> Callable[..., None]:
    def use(method: str = "GET", path: str = "/", host: str = "example.com") -> None:
        di.set_shared("request", make_request(method, path, {"Host": host}))

    return use


# ---------------------------------------------------------------------------
# Default routes
# ---------------------------------------------------------------------------


class TestDefaultRoutes:
    def test_controller_route(self, di: Di) -> None:
        router = Router()
        router.handle("/posts")
        assert router.was_matched()
        assert router.get_controller_name() == "posts"
        assert router.get_action_name() is None

    def test_controller_action_params(self, di: Di) -> None:
        router = Router()
        router.handle("/posts/show/2024/hello")
        assert router.get_controller_name() == "posts"
        assert router.get_action_name() == "show"
        assert router.get_params() == ["2024", "hello"]
        assert router.get_named_params() == {}

    def test_root_uses_defaults(self, di: Di) -> None:
        router = Router()
        router.set_defaults({"controller": "index", "action": "index"})
        router.handle("/")
        assert not router.was_matched()
        assert router.get_controller_name() == "index"
        assert router.get_action_name() == "index"

    def test_without_default_routes(self, di: Di) -> None:
        router = Router(default_routes=False)
        assert router.get_routes() == []
        router.handle("/posts")
        assert not router.was_matched()


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class TestMatching:
    def test_named_parts(self, di: Di) -> None:
        router = Router(default_routes=False)
        router.add("/posts/{year:[0-9]{4}}/{slug}", "posts::show")
        router.handle("/posts/2024/hello")
        assert router.get_controller_name() == "posts"
        assert router.get_action_name() == "show"
        assert router.get_named_params() == {"year": "2024", "slug": "hello"}

    def test_last_added_route_wins(self, di: Di) -> None:
        router = Router(default_routes=False)
        router.add("/posts/{slug}", "posts::show")
        router.add("/posts/latest", "posts::latest")
        router.handle("/posts/latest")
        assert router.get_action_name() == "latest"

    def test_position_first_is_tried_last(self, di: Di) -> None:
        router = Router(default_routes=False)
        router.add("/posts/latest", "posts::latest")
        router.add("/posts/{slug}", "posts::show", position=POSITION_FIRST)
        router.handle("/posts/latest")
        assert router.get_action_name() == "latest"

    def test_http_method_constraint(self, use_request: Callable[..., None]) -> None:
        router = Router(default_routes=False)
        router.add_post("/posts", "posts::create")
        router.add_get("/posts", "posts::index")

        use_request("POST", "/posts")
        router.handle("/posts")
        assert router.get_action_name() == "create"

        use_request("DELETE", "/posts")
        router.handle("/posts")
        assert not router.was_matched()

    def test_hostname_constraint(self, use_request: Callable[..., None]) -> None:
        router = Router(default_routes=False)
        router.add("/", "index::index")
        router.add("/", "admin::index").set_hostname("admin.example.com")

        use_request(host="admin.example.com:8000")
        router.handle("/")
        assert router.get_controller_name() == "admin"

        use_request(host="www.example.com")
        router.handle("/")
        assert router.get_controller_name() == "index"

    def test_hostname_regex(self, use_request: Callable[..., None]) -> None:
        router = Router(default_routes=False)
        router.add("/", "tenant::index").set_hostname(r"([a-z]+)\.example\.com")
        use_request(host="acme.example.com")
        router.handle("/")
        assert router.was_matched()

    def test_before_match_guard(self, di: Di) -> None:
        router = Router(default_routes=False)
        router.add("/secret", "secret::index").before_match(lambda uri, route, r: False)
        router.handle("/secret")
        assert not router.was_matched()

    def test_converter(self, di: Di) -> None:
        router = Router(default_routes=False)
        router.add("/posts/{id:[0-9]+}", "posts::show").convert("id", int)
        router.handle("/posts/42")
        assert router.get_named_params() == {"id": 42}

    def test_numeric_controller_is_ignored(self, di: Di) -> None:
        router = Router()
        router.set_default_controller("index")
        router.handle("/123")
        assert router.get_controller_name() == "index"

    def test_not_found_paths(self, di: Di) -> None:
        router = Router(default_routes=False)
        router.not_found("errors::missing")
        router.handle("/nowhere")
        assert not router.was_matched()
        assert router.get_controller_name() == "errors"
        assert router.get_action_name() == "missing"

    def test_remove_extra_slashes(self, di: Di) -> None:
        router = Router(default_routes=False)
        router.add("/about", "pages::about")
        router.remove_extra_slashes(True)
        router.handle("/about/")
        assert router.was_matched()

    def test_handle_reads_request_uri(self, di: Di, make_request: Callable[..., Request]) -> None:
        router = Router(default_routes=False)
        router.add("/about", "pages::about")
        di.set_shared("request", make_request(path="/about", query="ref=home"))
        router.handle()
        assert router.get_matched_route() is not None

    def test_matches_are_exposed(self, di: Di) -> None:
        router = Router(default_routes=False)
        route = router.add("/posts/{slug}", "posts::show")
        router.handle("/posts/hi")
        assert router.get_matched_route() is route
        assert router.get_matches() == ("/posts/hi", "hi")


# ---------------------------------------------------------------------------
# Lookup and reverse routing
# ---------------------------------------------------------------------------


class TestLookup:
    def test_get_route_by_name_and_id(self) -> None:
        router = Router(default_routes=False)
        route = router.add("/posts/{slug}", "posts::show").set_name("post")
        assert router.get_route_by_name("post") is route
        assert router.get_route_by_id(route.route_id) is route
        assert router.get_route_by_name("missing") is None

    def test_url_for(self) -> None:
        router = Router(default_routes=False)
        router.add_get("/posts/{year:[0-9]{4}}/{slug}").set_name("post")
        assert router.url_for("post", year=2024, slug="hello") == "/posts/2024/hello"

    def test_url_for_unknown_name(self) -> None:
        with pytest.raises(RouterError, match="No route named"):
            Router().url_for("missing")

    def test_defaults_roundtrip(self) -> None:
        router = Router()
        router.set_defaults({"namespace": "app.controllers", "controller": "home", "action": "main"})
        defaults = router.get_defaults()
        assert defaults["namespace"] == "app.controllers"
        assert defaults["controller"] == "home"
        assert defaults["action"] == "main"

    def test_invalid_position(self) -> None:
        with pytest.raises(RouterError, match="Invalid route position"):
            Router().attach(Route("/x"), 7)


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class TestGroup:
    def test_prefix_and_paths(self, di: Di) -> None:
        blog = Group({"module": "blog", "controller": "posts"})
        blog.set_prefix("/blog")
        blog.add_get("/{slug}", {"action": "show"})

        router = Router(default_routes=False)
        router.mount(blog)
        router.handle("/blog/hello")
        assert router.get_module_name() == "blog"
        assert router.get_controller_name() == "posts"
        assert router.get_action_name() == "show"
        assert router.get_named_params() == {"slug": "hello"}

    def test_route_paths_override_group_paths(self) -> None:
        group = Group("posts::index")
        route = group.add("/archive", "archive")
        assert route.paths["controller"] == "archive"
        assert route.group is group

    @pytest.mark.parametrize(
        "verb", ["get", "post", "put", "patch", "delete", "options", "head", "purge", "trace", "connect"]
    )
    def test_group_verb_helpers_match_router(self, verb: str) -> None:
        group_route = getattr(Group(), f"add_{verb}")("/x")
        router_route = getattr(Router(default_routes=False), f"add_{verb}")("/x")
        assert group_route.methods == router_route.methods == (verb.upper(),)

    def test_mount_empty_group_raises(self) -> None:
        with pytest.raises(RouterError, match="does not contain any routes"):
            Router().mount(Group())

    def test_group_guard_is_chained(self, di: Di) -> None:
        calls: list[str] = []
        group = Group("admin")
        group.before_match(lambda uri, route, router: calls.append("group") or True)
        group.add("/admin").before_match(lambda uri, route, router: calls.append("route") or False)

        router = Router(default_routes=False)
        router.mount(group)
        router.handle("/admin")
        assert calls == ["group", "route"]
        assert not router.was_matched()

    def test_guard_skipped_when_pattern_differs(self, di: Di) -> None:
        calls: list[str] = []
        router = Router(default_routes=False)
        router.add("/other", "other").before_match(lambda uri, route, router: calls.append(uri) or True)
        router.add("/posts", "posts")
        router.handle("/posts")
        assert router.was_matched()
        router.handle("/nomatch")
        assert calls == []
        router.handle("/other")
        assert calls == ["/other"]

    def test_group_guard_runs_once_per_match(self, di: Di) -> None:
        calls: list[str] = []
        group = Group("admin")
        group.before_match(lambda uri, route, router: calls.append("group") or True)
        group.add("/admin")
        router = Router(default_routes=False)
        router.mount(group)
        router.handle("/admin")
        router.handle("/elsewhere")
        assert calls == ["group"]

    def test_mount_twice_raises(self) -> None:
        group = Group("admin")
        group.add("/admin")
        router = Router(default_routes=False)
        router.mount(group)
        with pytest.raises(RouterError, match="already mounted"):
            router.mount(group)
        assert len(router.get_routes()) == 1

    def test_group_hostname(self, use_request: Callable[..., None]) -> None:
        group = Group("api").set_hostname("api.example.com")
        group.add("/status", {"action": "status"})
        router = Router(default_routes=False)
        router.mount(group)

        use_request(host="www.example.com")
        router.handle("/status")
        assert not router.was_matched()

    def test_initialize_hook(self) -> None:
        class AdminRoutes(Group):
            def initialize(self, paths) -> None:
                self.set_prefix("/admin")
                self.add("/users", "users::index")

        routes = AdminRoutes().get_routes()
        assert [route.pattern for route in routes] == ["/admin/users"]

    def test_route_decorator(self, di: Di) -> None:
        group = Group().set_prefix("/api")

        @group.route("/ping", methods=["GET"])
        def ping() -> str:
            return "pong"

        router = Router(default_routes=False)
        router.mount(group)
        router.handle("/api/ping")
        assert router.get_matched_route().get_match() is ping
