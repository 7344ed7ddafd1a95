"""Group — routes sharing a prefix, default paths, hostname, or match guard.

Usage::

    blog = Group({"module": "blog", "controller": "posts"})
    blog.set_prefix("/blog")
    blog.add_get("/{slug}", {"action": "show"})
    blog.add("/save", "posts::save", ["POST"])

    router.mount(blog)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from perch.routing.route import BeforeMatch, Route


class Group:
    """A set of routes mounted on a router together.

    Subclasses can override ``initialize`` to add their routes.
    """

    def __init__(self, paths: str | Mapping[str, Any] | None = None) -> None:
        self._paths = paths
        self._prefix = ""
        self._hostname: str | None = None
        self._before_match: BeforeMatch | None = None
        self._routes: list[Route] = []
        self.initialize(paths)

    def initialize(self, paths: str | Mapping[str, Any] | None) -> None:
        """Hook for subclasses; called once from the constructor."""

    # -- Configuration --

    def set_prefix(self, prefix: str) -> Group:
        self._prefix = prefix
        return self

    def get_prefix(self) -> str:
        return self._prefix

    def set_hostname(self, hostname: str | None) -> Group:
        self._hostname = hostname
        return self

    def get_hostname(self) -> str | None:
        return self._hostname

    def set_paths(self, paths: str | Mapping[str, Any] | None) -> Group:
        self._paths = paths
        return self

    def get_paths(self) -> str | Mapping[str, Any] | None:
        return self._paths

    def before_match(self, callback: BeforeMatch) -> Group:
        self._before_match = callback
        return self

    def get_before_match(self) -> BeforeMatch | None:
        return self._before_match

    def get_routes(self) -> list[Route]:
        return list(self._routes)

    def clear(self) -> None:
        self._routes = []

    # -- Route registration --

    def add(
        self,
        pattern: str,
        paths: str | Mapping[str, Any] | None = None,
        methods: str | Iterable[str] | None = None,
    ) -> Route:
        """Add a route under the group prefix; route paths override group paths."""
        merged = Route.get_route_paths(self._paths)
        merged.update(Route.get_route_paths(paths))
        route = Route(self._prefix + pattern, merged, methods)
        route.set_group(self)
        self._routes.append(route)
        return route

    def add_get(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> Route:
        return self.add(pattern, paths, "GET")

    def add_post(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> Route:
        return self.add(pattern, paths, "POST")

    def add_put(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> Route:
        return self.add(pattern, paths, "PUT")

    def add_patch(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> Route:
        return self.add(pattern, paths, "PATCH")

    def add_delete(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> Route:
        return self.add(pattern, paths, "DELETE")

    def add_options(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> Route:
        return self.add(pattern, paths, "OPTIONS")

    def add_head(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> Route:
        return self.add(pattern, paths, "HEAD")

    def add_purge(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> Route:
        return self.add(pattern, paths, "PURGE")

    def add_trace(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> Route:
        return self.add(pattern, paths, "TRACE")

    def add_connect(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> Route:
        return self.add(pattern, paths, "CONNECT")

    def route(self, pattern: str, methods: str | Iterable[str] | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form: attach the decorated function as the route handler."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.add(pattern, None, methods).match(func)
            return func

        return decorator
