"""Request-scoped context via the active container.

Micro handlers are plain functions with no ``self``; they reach the
request's services through the container the app activates for the
request::

    from perch.context import get_request, get_response

    @app.route("/hello/{name}")
    def hello(name):
        agent = get_request().get_user_agent()
        get_response().set_header("X-Agent", agent)
        return f"Hello {name}"

Thread safety:
    The active container is held in a ``ContextVar``: task-local under
    asyncio, thread-local under free-threading. No locks needed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from perch.di.container import Di
from perch.errors import ContainerError

if TYPE_CHECKING:
    from perch.http.request import Request
    from perch.http.response import Response
    from perch.session import SessionManager


def get_di() -> Di:
    """Return the active container.

    Raises ``ContainerError`` when no container exists.
    """
    di = Di.get_default()
    if di is None:
        msg = "No dependency injection container is active"
        raise ContainerError(msg)
    return di


def service(name: str) -> Any:
    """Resolve the shared service *name* from the active container."""
    return get_di().get_shared(name)


def get_request() -> Request:
    return service("request")


def get_response() -> Response:
    return service("response")


def get_session() -> SessionManager:
    return service("session")
