"""Perch — a dependency-injected MVC web framework for ASGI.

Components find each other through a service container; requests are
routed by regex patterns to controller actions or to plain functions.

Basic usage::

    from perch import App, AppConfig, Controller

    app = App(AppConfig(secret_key="change-me"))

    @app.controller("index")
    class IndexController(Controller):
        def index_action(self):
            return "Hello, World!"

Run it with any ASGI server, e.g. ``uvicorn myapp:app``.
"""

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "Controller",
    "Cookies",
    "Crypt",
    "Di",
    "ConfigurationError",
    "Dispatcher",
    "FactoryDefault",
    "Filter",
    "Group",
    "HTTPError",
    "Injectable",
    "NotFound",
    "PerchError",
    "Request",
    "Response",
    "Route",
    "Router",
    "Security",
    "SessionManager",
    "Validation",
    "get_request",
    "get_response",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import perch`` fast while providing a clean top-level API.
    """
    if name == "App":
        from perch.app import App

        return App

    if name == "AppConfig":
        from perch.config import AppConfig

        return AppConfig

    if name in ("Di", "FactoryDefault", "Injectable"):
        from perch import di as _di

        return getattr(_di, name)

    if name in ("Controller", "Dispatcher"):
        from perch import mvc as _mvc

        return getattr(_mvc, name)

    if name in ("Group", "Route", "Router"):
        from perch import routing as _routing

        return getattr(_routing, name)

    if name == "Request":
        from perch.http.request import Request

        return Request

    if name == "Response":
        from perch.http.response import Response

        return Response

    if name == "Cookies":
        from perch.http.cookies import Cookies

        return Cookies

    if name == "Crypt":
        from perch.crypt import Crypt

        return Crypt

    if name == "Filter":
        from perch.filter import Filter

        return Filter

    if name == "Security":
        from perch.security import Security

        return Security

    if name == "SessionManager":
        from perch.session import SessionManager

        return SessionManager

    if name == "Validation":
        from perch.validation import Validation

        return Validation

    if name in ("get_request", "get_response"):
        from perch import context as _ctx

        return getattr(_ctx, name)

    if name in ("ConfigurationError", "HTTPError", "NotFound", "PerchError"):
        from perch import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
