"""Dependency injection container — a service locator.

Components register definitions by name and resolve them lazily. Shared
instances are cached for the lifetime of the container. Every framework
component (router, dispatcher, cookies, security, ...) finds its
collaborators through the container rather than through constructor
arguments.

Thread safety:
    The setup phase (``set``/``remove``) is expected to be
    single-threaded. Per-request state lives in containers produced by
    ``fork()``, and the "current" container is held in a ContextVar so
    concurrent requests never see each other's services.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from contextvars import ContextVar, Token
from typing import Any, ClassVar, Protocol

from perch.di.builder import build_instance, import_string, is_import_path
from perch.di.service import Service
from perch.errors import (
    CircularDependency,
    ContainerError,
    ServiceNotFound,
    ServiceResolutionError,
)

logger = logging.getLogger("perch.di")

_current_var: ContextVar[Di | None] = ContextVar("perch_current_di", default=None)
_default_lock = threading.Lock()


class ServiceProvider(Protocol):
    """Anything that can register a group of services.

    Usage::

        class MailProvider:
            def register(self, di: Di) -> None:
                di.set_shared("mailer", "app.mail:Mailer")

        di.register(MailProvider())
    """

    def register(self, di: Di) -> None: ...


class Di:
    """The dependency injection container.

    Usage::

        di = Di()
        di.set_shared("filter", Filter)
        di.set("now", lambda: datetime.now(UTC))
        di.set("mailer", lambda di: Mailer(di.get_shared("config")))

        di.get_shared("filter") is di.get_shared("filter")  # True
        di.get("now") is di.get("now")                        # False
    """

    __slots__ = ("_fresh_instance", "_resolving", "_services", "_shared_instances")

    _default: ClassVar[Di | None] = None

    def __init__(self) -> None:
        self._services: dict[str, Service] = {}
        self._shared_instances: dict[str, Any] = {}
        self._fresh_instance = False
        self._resolving: ContextVar[tuple[str, ...]] = ContextVar(
            "perch_di_resolving", default=()
        )
        with _default_lock:
            if Di._default is None:
                Di._default = self

    def __repr__(self) -> str:
        return f"<{type(self).__name__} services={sorted(self._services)!r}>"

    # -- Registration --

    def set(self, name: str, definition: Any, shared: bool = False) -> Service:
        """Register *definition* under *name*, replacing any previous one."""
        service = Service(name, definition, shared)
        self._services[name] = service
        self._shared_instances.pop(name, None)
        return service

    def set_shared(self, name: str, definition: Any) -> Service:
        """Register *definition* under *name* as a shared service."""
        return self.set(name, definition, shared=True)

    def attempt(self, name: str, definition: Any, shared: bool = False) -> Service | None:
        """Register *definition* only when *name* is not registered yet."""
        if name in self._services:
            return None
        return self.set(name, definition, shared)

    def set_service(self, name: str, service: Service) -> Service:
        """Register a pre-built ``Service`` object."""
        self._services[name] = service
        self._shared_instances.pop(name, None)
        return service

    def remove(self, name: str) -> None:
        """Drop the definition and any cached instance for *name*."""
        self._services.pop(name, None)
        self._shared_instances.pop(name, None)

    def register(self, provider: ServiceProvider) -> None:
        """Let *provider* register its services on this container."""
        provider.register(self)

    def load_from_mapping(self, services: Mapping[str, Mapping[str, Any]]) -> None:
        """Register services from a configuration mapping.

        Each entry is a builder definition plus an optional ``shared``
        flag::

            di.load_from_mapping({
                "mailer": {
                    "class_name": "app.mail:Mailer",
                    "shared": True,
                    "arguments": [{"type": "service", "name": "transport"}],
                },
            })
        """
        for name, spec in services.items():
            if not isinstance(spec, Mapping) or "class_name" not in spec:
                msg = f"Service {name!r} needs a mapping with a 'class_name' key"
                raise ServiceResolutionError(msg)
            definition = {key: value for key, value in spec.items() if key != "shared"}
            self.set(name, definition, shared=bool(spec.get("shared", False)))

    # -- Lookup --

    def has(self, name: str) -> bool:
        return name in self._services

    def get_service(self, name: str) -> Service:
        """Return the ``Service`` registered under *name*."""
        try:
            return self._services[name]
        except KeyError:
            raise ServiceNotFound(name) from None

    def get_raw(self, name: str) -> Any:
        """Return the unresolved definition registered under *name*."""
        return self.get_service(name).definition

    def get_services(self) -> dict[str, Service]:
        return dict(self._services)

    def was_fresh_instance(self) -> bool:
        """Whether the last ``get``/``get_shared`` built a new object."""
        return self._fresh_instance

    # -- Resolution --

    def get(self, name: str, parameters: Any = None) -> Any:
        """Resolve *name* into an instance.

        Shared services return their cached instance after the first
        call. An unregistered import path (``"pkg.mod:Class"``) is
        built directly. Anything else raises ``ServiceNotFound``.
        """
        chain = self._resolving.get()
        if name in chain:
            raise CircularDependency((*chain, name))

        token = self._resolving.set((*chain, name))
        try:
            service = self._services.get(name)
            if service is not None:
                fresh = not service.has_cached_instance()
                instance = self._resolve_service(service, parameters)
            else:
                fresh = True
                instance = self._resolve_unregistered(name, parameters)
        finally:
            self._resolving.reset(token)

        if fresh and (service is None or instance is not service.definition):
            self._inject(instance)

        self._fresh_instance = fresh
        logger.debug("Resolved service %r (fresh=%s)", name, fresh)
        return instance

    def get_shared(self, name: str, parameters: Any = None) -> Any:
        """Resolve *name* once per container, regardless of its shared flag."""
        if name in self._shared_instances:
            self._fresh_instance = False
            return self._shared_instances[name]

        instance = self.get(name, parameters)
        self._shared_instances[name] = instance
        self._fresh_instance = True
        return instance

    def _resolve_service(self, service: Service, parameters: Any) -> Any:
        try:
            return service.resolve(parameters, self)
        except ContainerError:
            raise
        except Exception as exc:
            msg = f"Service {service.name!r} could not be resolved: {exc}"
            raise ServiceResolutionError(msg) from exc

    def _resolve_unregistered(self, name: str, parameters: Any) -> Any:
        if not is_import_path(name):
            raise ServiceNotFound(name)
        try:
            import_string(name)
        except (ImportError, AttributeError):
            raise ServiceNotFound(name) from None
        try:
            return build_instance(name, parameters, self)
        except ContainerError:
            raise
        except Exception as exc:
            msg = f"{name!r} could not be instantiated: {exc}"
            raise ServiceResolutionError(msg) from exc

    def _inject(self, instance: Any) -> None:
        # Only objects the container built get bound to it; ready-made
        # instances keep resolving through the current container.
        set_di = getattr(instance, "set_di", None)
        if callable(set_di) and not isinstance(instance, type):
            set_di(self)

    # -- Mapping protocol --

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._services

    def __getitem__(self, name: str) -> Any:
        return self.get_shared(name)

    def __setitem__(self, name: str, definition: Any) -> None:
        self.set_shared(name, definition)

    def __delitem__(self, name: str) -> None:
        self.remove(name)

    # -- Scoping --

    def fork(self) -> Di:
        """A container with the same definitions and no resolved instances.

        Object definitions (already-built instances) are carried over as
        the same object, so app-wide singletons such as the router stay
        shared while per-request services are rebuilt.
        """
        child = Di()
        child._services = {name: service.clone() for name, service in self._services.items()}
        return child

    def activate(self) -> Token[Di | None]:
        """Make this container the current one for the running context.

        Returns a token for ``Di.deactivate``::

            token = di.activate()
            try:
                ...
            finally:
                Di.deactivate(token)
        """
        return _current_var.set(self)

    @staticmethod
    def deactivate(token: Token[Di | None]) -> None:
        _current_var.reset(token)

    # -- Default container --

    @classmethod
    def get_default(cls) -> Di | None:
        """The current container: the context-active one, else the process default."""
        current = _current_var.get()
        if current is not None:
            return current
        return Di._default

    @classmethod
    def set_default(cls, di: Di) -> None:
        with _default_lock:
            Di._default = di

    @classmethod
    def reset(cls) -> None:
        """Forget the process default container."""
        with _default_lock:
            Di._default = None
