"""Perch exception hierarchy.

Shared across the container, router, dispatcher, and HTTP layer so
every module raises and catches the same types.
"""

from dataclasses import dataclass


class PerchError(Exception):
    """Base for all perch-specific errors."""


class ConfigurationError(PerchError):
    """Raised when app configuration is invalid.

    Typically raised during ``App`` setup or when a component is used
    without the services it depends on.
    """


@dataclass(frozen=True, slots=True)
class HTTPError(PerchError):
    """An error that maps directly to an HTTP status code.

    Raised by the dispatcher, components, or handlers. The ASGI handler
    catches these and dispatches to the matching ``@app.error()`` handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818 — conventional name in web frameworks
    """404 — no route, controller, or action matched the request."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


# -- Container --


class ContainerError(PerchError):
    """Base for dependency injection failures."""


class ServiceNotFound(ContainerError, LookupError):  # noqa: N818
    """No service is registered under the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Service {name!r} wasn't found in the dependency injection container"
        )


class ServiceResolutionError(ContainerError):
    """A service definition could not be turned into an instance."""


class CircularDependency(ContainerError):  # noqa: N818
    """Resolving a service required the service itself."""

    def __init__(self, chain: tuple[str, ...]) -> None:
        self.chain = chain
        super().__init__("Circular service dependency: " + " -> ".join(chain))


# -- Components --


class RouterError(PerchError):
    """Invalid route definition or router usage."""


class DispatchError(PerchError):
    """The dispatcher could not complete the dispatch loop."""


class FilterError(PerchError):
    """Unknown or invalid sanitizer."""


class CryptError(PerchError):
    """A signed value failed verification."""


class SessionError(PerchError):
    """Invalid session usage (e.g. writing to a closed session)."""


class ValidationError(PerchError):
    """A validator was misconfigured (not a failed validation)."""
