"""``perch routes`` — list registered routes, or show what a URI matches.

Routes are listed in match order: the router tries the most recently
added route first.
"""

import argparse
import sys
from typing import Any

from perch.cli._resolve import resolve_app
from perch.di.container import Di
from perch.http.headers import Headers
from perch.http.request import Request
from perch.routing.route import Route


def _describe_target(route: Route) -> str:
    handler = route.get_match()
    if handler is not None:
        return getattr(handler, "__qualname__", repr(handler))
    paths = route.paths
    controller = paths.get("controller", "")
    action = paths.get("action", "")
    if isinstance(controller, int):
        controller = f"${controller}"
    if isinstance(action, int):
        action = f"${action}"
    return f"{controller}::{action}" if action else str(controller)


def _rows(routes: list[Route]) -> list[tuple[str, str, str, str]]:
    rows: list[tuple[str, str, str, str]] = []
    for route in reversed(routes):
        methods = ", ".join(route.methods) if route.methods else "*"
        pattern = route.pattern
        if route.hostname:
            pattern = f"{route.hostname}{pattern}"
        rows.append((methods, pattern, _describe_target(route), route.name or ""))
    return rows


def _print_table(rows: list[tuple[str, str, str, str]]) -> None:
    header = ("METHOD", "PATTERN", "TARGET", "NAME")
    widths = [max(len(header[i]), *(len(row[i]) for row in rows)) for i in range(3)]
    fmt = f"{{:<{widths[0]}}}  {{:<{widths[1]}}}  {{:<{widths[2]}}}  {{}}"
    print(fmt.format(*header).rstrip())
    print("-" * min(sum(widths) + 6 + 4, 80))
    for row in rows:
        print(fmt.format(*row).rstrip())


def _match(app: Any, uri: str, method: str) -> None:
    di = app.di.fork()
    token = di.activate()
    try:
        path = uri.partition("?")[0]
        request = Request(method, path, Headers(((b"host", b"localhost"),)))
        request.set_di(di)
        di.set_shared("request", request)
        router = app.router
        router.handle(path)
        route = router.get_matched_route()
        if route is None:
            print(f"{method} {uri}: no route matched")
        else:
            print(f"{method} {uri}: {route.pattern}")
        print(f"  controller: {router.get_controller_name()}")
        print(f"  action:     {router.get_action_name()}")
        print(f"  params:     {router.get_params()}")
        print(f"  named:      {router.get_named_params()}")
    finally:
        Di.deactivate(token)


def run_routes(args: argparse.Namespace) -> None:
    """List the routes of the app named by ``args.app``."""
    try:
        app = resolve_app(args.app)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    app._ensure_frozen()

    if args.uri is not None:
        _match(app, args.uri, args.method.upper())
        return

    routes = app.router.get_routes()
    if not routes:
        print("No routes registered.")
        return
    _print_table(_rows(routes))
