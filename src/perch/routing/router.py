"""Router — matches a URI against registered routes.

Routes are tried newest first: the last route added wins over earlier
ones with overlapping patterns. Use ``POSITION_FIRST`` to add a route
with the lowest priority.

The result of ``handle()`` (matched route, controller, action, params)
is stored per context, so one router instance can serve concurrent
requests.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from perch.di.injectable import Injectable
from perch.errors import RouterError
from perch.routing.group import Group
from perch.routing.route import Route

logger = logging.getLogger("perch.router")

POSITION_FIRST = 0
POSITION_LAST = 1

# Used when the router is built with default routes enabled
_DEFAULT_CONTROLLER_ROUTE = r"#^/([\w0-9\_\-]+)[/]{0,1}$#u"
_DEFAULT_ACTION_ROUTE = r"#^/([\w0-9\_\-]+)/([\w0-9\.\_]+)(/.*)*$#u"


@dataclass(slots=True)
class _MatchState:
    """What the last ``handle()`` call in this context found."""

    matched_route: Route | None = None
    matches: tuple[str | None, ...] | None = None
    was_matched: bool = False
    namespace: str | None = None
    module: str | None = None
    controller: str | None = None
    action: str | None = None
    params: list[Any] = field(default_factory=list)
    named_params: dict[str, Any] = field(default_factory=dict)


class Router(Injectable):
    """The URI router.

    Usage::

        router = Router(default_routes=False)
        router.add_get("/posts/{slug}", "posts::show").set_name("post")
        router.add("/login", "session::login", ["GET", "POST"])

        router.handle("/posts/hello")
        router.get_controller_name()   # "posts"
        router.get_named_params()      # {"slug": "hello"}
    """

    __slots__ = (
        "_default_action",
        "_default_controller",
        "_default_module",
        "_default_namespace",
        "_default_params",
        "_not_found_paths",
        "_remove_extra_slashes",
        "_routes",
        "_state_var",
    )

    def __init__(self, default_routes: bool = True) -> None:
        self._routes: list[Route] = []
        self._not_found_paths: str | Mapping[str, Any] | None = None
        self._remove_extra_slashes = False
        self._default_namespace: str | None = None
        self._default_module: str | None = None
        self._default_controller: str | None = None
        self._default_action: str | None = None
        self._default_params: list[Any] = []
        self._state_var: ContextVar[_MatchState | None] = ContextVar(
            "perch_router_state", default=None
        )
        if default_routes:
            self._routes.append(Route(_DEFAULT_CONTROLLER_ROUTE, {"controller": 1}))
            self._routes.append(
                Route(_DEFAULT_ACTION_ROUTE, {"controller": 1, "action": 2, "params": 3})
            )

    # -- Registration --

    def add(
        self,
        pattern: str,
        paths: str | Mapping[str, Any] | None = None,
        methods: str | Iterable[str] | None = None,
        position: int = POSITION_LAST,
    ) -> Route:
        """Create a route and attach it."""
        route = Route(pattern, paths, methods)
        self.attach(route, position)
        return route

    def attach(self, route: Route, position: int = POSITION_LAST) -> Router:
        if position == POSITION_LAST:
            self._routes.append(route)
        elif position == POSITION_FIRST:
            self._routes.insert(0, route)
        else:
            msg = f"Invalid route position {position!r}"
            raise RouterError(msg)
        return self

    def add_get(self, pattern: str, paths: str | Mapping[str, Any] | None = None, position: int = POSITION_LAST) -> Route:
        return self.add(pattern, paths, "GET", position)

    def add_post(self, pattern: str, paths: str | Mapping[str, Any] | None = None, position: int = POSITION_LAST) -> Route:
        return self.add(pattern, paths, "POST", position)

    def add_put(self, pattern: str, paths: str | Mapping[str, Any] | None = None, position: int = POSITION_LAST) -> Route:
        return self.add(pattern, paths, "PUT", position)

    def add_patch(self, pattern: str, paths: str | Mapping[str, Any] | None = None, position: int = POSITION_LAST) -> Route:
        return self.add(pattern, paths, "PATCH", position)

    def add_delete(self, pattern: str, paths: str | Mapping[str, Any] | None = None, position: int = POSITION_LAST) -> Route:
        return self.add(pattern, paths, "DELETE", position)

    def add_options(self, pattern: str, paths: str | Mapping[str, Any] | None = None, position: int = POSITION_LAST) -> Route:
        return self.add(pattern, paths, "OPTIONS", position)

    def add_head(self, pattern: str, paths: str | Mapping[str, Any] | None = None, position: int = POSITION_LAST) -> Route:
        return self.add(pattern, paths, "HEAD", position)

    def add_purge(self, pattern: str, paths: str | Mapping[str, Any] | None = None, position: int = POSITION_LAST) -> Route:
        return self.add(pattern, paths, "PURGE", position)

    def add_trace(self, pattern: str, paths: str | Mapping[str, Any] | None = None, position: int = POSITION_LAST) -> Route:
        return self.add(pattern, paths, "TRACE", position)

    def add_connect(self, pattern: str, paths: str | Mapping[str, Any] | None = None, position: int = POSITION_LAST) -> Route:
        return self.add(pattern, paths, "CONNECT", position)

    def mount(self, group: Group) -> Router:
        """Attach every route of *group*, applying its hostname.

        The group's guard runs ahead of each route's own guard when matching.
        """
        routes = group.get_routes()
        if not routes:
            msg = "The group of routes does not contain any routes"
            raise RouterError(msg)

        mounted = {id(route) for route in self._routes}
        if any(id(route) in mounted for route in routes):
            msg = "The group of routes is already mounted"
            raise RouterError(msg)

        hostname = group.get_hostname()
        for route in routes:
            if hostname is not None:
                route.set_hostname(hostname)
        self._routes.extend(routes)
        return self

    def clear(self) -> None:
        """Remove every route, default routes included."""
        self._routes = []

    def not_found(self, paths: str | Mapping[str, Any]) -> Router:
        """Paths to use when no route matches."""
        self._not_found_paths = paths
        return self

    def remove_extra_slashes(self, remove: bool) -> Router:
        self._remove_extra_slashes = remove
        return self

    # -- Defaults --

    def set_default_namespace(self, namespace: str | None) -> Router:
        self._default_namespace = namespace
        return self

    def set_default_module(self, module: str | None) -> Router:
        self._default_module = module
        return self

    def set_default_controller(self, controller: str | None) -> Router:
        self._default_controller = controller
        return self

    def set_default_action(self, action: str | None) -> Router:
        self._default_action = action
        return self

    def set_defaults(self, defaults: Mapping[str, Any]) -> Router:
        """Set any of ``namespace``, ``module``, ``controller``, ``action``, ``params``."""
        if "namespace" in defaults:
            self._default_namespace = defaults["namespace"]
        if "module" in defaults:
            self._default_module = defaults["module"]
        if "controller" in defaults:
            self._default_controller = defaults["controller"]
        if "action" in defaults:
            self._default_action = defaults["action"]
        if "params" in defaults:
            self._default_params = list(defaults["params"])
        return self

    def get_defaults(self) -> dict[str, Any]:
        return {
            "namespace": self._default_namespace,
            "module": self._default_module,
            "controller": self._default_controller,
            "action": self._default_action,
            "params": list(self._default_params),
        }

    # -- Matching --

    def get_rewrite_uri(self) -> str:
        """The path of the current request, without its query string."""
        uri = self.request.get_uri()
        return uri.split("?", 1)[0] or "/"

    def handle(self, uri: str | None = None) -> None:
        """Match *uri* (or the current request path) against the routes."""
        if uri is None:
            uri = self.get_rewrite_uri()
        if self._remove_extra_slashes and uri != "/":
            uri = uri.rstrip("/") or "/"

        state = _MatchState()
        self._state_var.set(state)

        request = None
        parts: dict[str, Any] = {}
        route_found = False

        for route in reversed(self._routes):
            if route.methods:
                if request is None:
                    request = self.request
                if request.get_method() not in route.methods:
                    continue

            if route.hostname is not None:
                if request is None:
                    request = self.request
                if not _host_matches(route.hostname, request.get_http_host()):
                    continue

            matches = route.match_uri(uri)
            if matches is None:
                continue

            if not _guards_pass(uri, route, self):
                continue

            parts = _extract_parts(route, matches)
            state.matched_route = route
            state.matches = matches
            route_found = True
            break

        state.was_matched = route_found

        if route_found:
            logger.debug("Matched %r with %r", uri, state.matched_route)
        else:
            logger.debug("No route matched %r", uri)
            if self._not_found_paths is not None:
                parts = Route.get_route_paths(self._not_found_paths)
                route_found = True

        state.namespace = self._default_namespace
        state.module = self._default_module
        state.controller = self._default_controller
        state.action = self._default_action
        state.params = list(self._default_params)

        if not route_found:
            return

        for key in ("namespace", "module", "controller", "action"):
            if key in parts:
                value = parts.pop(key)
                if not _is_numeric(value):
                    setattr(state, key, value)

        params: list[Any] = []
        if "params" in parts:
            raw = parts.pop("params")
            if isinstance(raw, str):
                stripped = raw.strip("/")
                if stripped:
                    params = stripped.split("/")
            elif isinstance(raw, (list, tuple)):
                params = list(raw)

        state.params = params
        state.named_params = parts

    def _state(self) -> _MatchState:
        state = self._state_var.get()
        return state if state is not None else _MatchState()

    # -- Accessors --

    def get_namespace_name(self) -> str | None:
        return self._state().namespace or self._default_namespace

    def get_module_name(self) -> str | None:
        return self._state().module or self._default_module

    def get_controller_name(self) -> str | None:
        return self._state().controller or self._default_controller

    def get_action_name(self) -> str | None:
        return self._state().action or self._default_action

    def get_params(self) -> list[Any]:
        """Positional parameters (the ``/:params`` tail)."""
        return list(self._state().params)

    def get_named_params(self) -> dict[str, Any]:
        """Named parts that are not controller/action/... (``{slug}`` etc.)."""
        return dict(self._state().named_params)

    def get_matched_route(self) -> Route | None:
        return self._state().matched_route

    def get_matches(self) -> tuple[str | None, ...] | None:
        return self._state().matches

    def was_matched(self) -> bool:
        return self._state().was_matched

    def get_routes(self) -> list[Route]:
        return list(self._routes)

    def get_route_by_id(self, route_id: int) -> Route | None:
        for route in self._routes:
            if route.route_id == route_id:
                return route
        return None

    def get_route_by_name(self, name: str) -> Route | None:
        for route in self._routes:
            if route.name == name:
                return route
        return None

    def url_for(self, name: str, **params: Any) -> str:
        """Build a URI for the route named *name*.

        ::

            router.add_get("/posts/{year:[0-9]{4}}/{slug}").set_name("post")
            router.url_for("post", year=2024, slug="hello")  # "/posts/2024/hello"
        """
        route = self.get_route_by_name(name)
        if route is None:
            msg = f"No route named {name!r}"
            raise RouterError(msg)
        return route.build(params)


def _guards_pass(uri: str, route: Route, router: Router) -> bool:
    """Run the route's group guard, then its own; both must accept."""
    group = route.group
    group_guard = group.get_before_match() if group is not None else None
    if group_guard is not None and not group_guard(uri, route, router):
        return False
    guard = route.get_before_match()
    return guard is None or bool(guard(uri, route, router))


def _host_matches(hostname: str, current: str | None) -> bool:
    if not current:
        return False
    if "(" in hostname or "[" in hostname:
        return re.fullmatch(f"{hostname}(:[0-9]+)?", current, re.IGNORECASE) is not None
    current = current.lower()
    hostname = hostname.lower()
    return current == hostname or current.rpartition(":")[0] == hostname


def _extract_parts(route: Route, matches: tuple[str | None, ...]) -> dict[str, Any]:
    """Map group positions in the route paths to matched values."""
    converters = route.converters
    parts: dict[str, Any] = {}
    for part, position in route.paths.items():
        bound = isinstance(position, int) and not isinstance(position, bool)
        if bound:
            value = matches[position] if 0 <= position < len(matches) else None
            if value is None:
                # Unmatched optional group: drop the part
                continue
        else:
            value = position
        converter = converters.get(part)
        parts[part] = converter(value) if converter is not None else value
    return parts


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and value.isdigit()
