"""Service — one named definition in the container.

A service owns its definition and, when shared, the instance built from
it. Turning a definition into an instance is delegated to
``perch.di.builder``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from perch.di.builder import build_instance
from perch.errors import ServiceResolutionError

if TYPE_CHECKING:
    from perch.di.container import Di

_UNSET: Any = object()


class Service:
    """A named service definition with an optional cached instance.

    Usage::

        service = Service("mailer", Mailer, shared=True)
        mailer = service.resolve(container=di)
        assert service.resolve(container=di) is mailer
    """

    __slots__ = ("_definition", "_name", "_resolved", "_shared", "_shared_instance")

    def __init__(self, name: str, definition: Any, shared: bool = False) -> None:
        self._name = name
        self._definition = definition
        self._shared = shared
        self._resolved = False
        self._shared_instance: Any = _UNSET

    def __repr__(self) -> str:
        return f"Service({self._name!r}, shared={self._shared})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def definition(self) -> Any:
        return self._definition

    def set_definition(self, definition: Any) -> None:
        """Replace the definition and drop any cached instance."""
        self._definition = definition
        self._shared_instance = _UNSET
        self._resolved = False

    def is_shared(self) -> bool:
        return self._shared

    def set_shared(self, shared: bool) -> None:
        self._shared = shared

    def set_shared_instance(self, instance: Any) -> None:
        """Pin the instance returned for this shared service."""
        self._shared = True
        self._shared_instance = instance
        self._resolved = True

    def is_resolved(self) -> bool:
        return self._resolved

    def has_cached_instance(self) -> bool:
        return self._shared and self._shared_instance is not _UNSET

    def resolve(self, parameters: Any = None, container: Di | None = None) -> Any:
        """Build (or return the cached) instance for this service."""
        if self.has_cached_instance():
            return self._shared_instance

        instance = build_instance(self._definition, parameters, container)
        if self._shared:
            self._shared_instance = instance
        self._resolved = True
        return instance

    # -- Builder definitions --

    def get_parameter(self, position: int) -> Any:
        """Return the constructor argument at *position* of a mapping definition."""
        arguments = self._builder_definition().get("arguments", [])
        try:
            return arguments[position]
        except IndexError:
            return None

    def set_parameter(self, position: int, parameter: dict[str, Any]) -> Service:
        """Replace the constructor argument at *position* of a mapping definition."""
        definition = dict(self._builder_definition())
        arguments = list(definition.get("arguments", []))
        if position < len(arguments):
            arguments[position] = parameter
        else:
            arguments.extend([None] * (position - len(arguments)))
            arguments.append(parameter)
        definition["arguments"] = arguments
        self.set_definition(definition)
        return self

    def _builder_definition(self) -> dict[str, Any]:
        if not isinstance(self._definition, dict):
            msg = f"Service {self._name!r} does not use a mapping definition"
            raise ServiceResolutionError(msg)
        return self._definition

    def clone(self) -> Service:
        """A copy with the same definition and no resolved instance."""
        return Service(self._name, self._definition, self._shared)
