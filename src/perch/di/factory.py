"""FactoryDefault — a container pre-populated with the framework services.

Definitions are import strings so nothing is imported until a service
is first resolved.
"""

from perch.di.container import Di

_DEFAULT_SERVICES: dict[str, str] = {
    "router": "perch.routing.router:Router",
    "dispatcher": "perch.mvc.dispatcher:Dispatcher",
    "response": "perch.http.response:Response",
    "cookies": "perch.http.cookies:Cookies",
    "filter": "perch.filter:Filter",
    "security": "perch.security:Security",
    "crypt": "perch.crypt:Crypt",
    "random": "perch.security.random:Random",
}


class FactoryDefault(Di):
    """A ``Di`` with the standard services registered as shared.

    ``request`` and ``session`` are not registered: the ``App`` provides
    them per request. Register them yourself when using the components
    outside an app.
    """

    __slots__ = ()

    def __init__(self) -> None:
        super().__init__()
        for name, definition in _DEFAULT_SERVICES.items():
            self.set_shared(name, definition)
