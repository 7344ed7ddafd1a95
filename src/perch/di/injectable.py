"""Injectable — base class for container-aware components.

Components never receive their collaborators through constructors.
They look them up by name, lazily, through the container they were
built by (or the current one)::

    class Mailer(Injectable):
        def send_welcome(self) -> None:
            user = self.session.get("user")
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from perch.di.container import Di
from perch.errors import ContainerError

if TYPE_CHECKING:
    from perch.crypt import Crypt
    from perch.filter import Filter
    from perch.http.cookies import Cookies
    from perch.http.request import Request
    from perch.http.response import Response
    from perch.mvc.dispatcher import Dispatcher
    from perch.routing.router import Router
    from perch.security import Security
    from perch.session import SessionManager


@runtime_checkable
class InjectionAware(Protocol):
    """Anything the container can hand itself to."""

    def set_di(self, di: Di) -> None: ...

    def get_di(self) -> Di: ...


class Injectable:
    """Base for components that resolve services through the container.

    ``get_di()`` returns the container that built the component, or the
    current container (``Di.get_default()``) when it was built by hand.
    """

    __slots__ = ("_di",)

    def set_di(self, di: Di) -> None:
        self._di = di

    def get_di(self) -> Di:
        di = getattr(self, "_di", None)
        if di is None:
            di = Di.get_default()
        if di is None:
            msg = (
                f"{type(self).__name__} needs a dependency injection container. "
                "Create a Di (or FactoryDefault) before using it."
            )
            raise ContainerError(msg)
        return di

    def get_service(self, name: str) -> Any:
        """Shorthand for ``self.get_di().get_shared(name)``."""
        return self.get_di().get_shared(name)

    # -- Standard services --

    @property
    def request(self) -> Request:
        return self.get_service("request")

    @property
    def response(self) -> Response:
        return self.get_service("response")

    @property
    def cookies(self) -> Cookies:
        return self.get_service("cookies")

    @property
    def session(self) -> SessionManager:
        return self.get_service("session")

    @property
    def security(self) -> Security:
        return self.get_service("security")

    @property
    def filter(self) -> Filter:
        return self.get_service("filter")

    @property
    def crypt(self) -> Crypt:
        return self.get_service("crypt")

    @property
    def router(self) -> Router:
        return self.get_service("router")

    @property
    def dispatcher(self) -> Dispatcher:
        return self.get_service("dispatcher")
