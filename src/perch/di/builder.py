"""Definition builder — turns service definitions into instances.

Supported definitions:

- a class: instantiated with the call parameters
- an import string (``"pkg.mod:Name"`` or ``"pkg.mod.Name"``): imported,
  then called with the parameters when callable
- a function, lambda, bound method, or ``functools.partial``: called;
  when it takes more positional parameters than were supplied, the
  container is passed first
- a mapping with ``class_name`` / ``arguments`` / ``calls`` / ``properties``
- anything else: returned unchanged (an already-built object)
"""

from __future__ import annotations

import functools
import importlib
import types
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from perch._internal.invoke import positional_arity
from perch.errors import ServiceResolutionError

if TYPE_CHECKING:
    from perch.di.container import Di

_FACTORY_TYPES = (
    types.FunctionType,
    types.MethodType,
    types.BuiltinFunctionType,
    functools.partial,
)


def import_string(path: str) -> Any:
    """Import ``"pkg.mod:Name"`` or ``"pkg.mod.Name"`` and return the object.

    Raises ``ImportError`` or ``AttributeError`` when the target is missing.
    """
    if ":" in path:
        module_path, _, attr_path = path.partition(":")
    else:
        module_path, _, attr_path = path.rpartition(".")
    if not module_path or not attr_path:
        msg = f"{path!r} is not an import path"
        raise ImportError(msg)

    target: Any = importlib.import_module(module_path)
    for attr in attr_path.split("."):
        target = getattr(target, attr)
    return target


def is_import_path(name: str) -> bool:
    """Whether *name* looks like something ``import_string`` can resolve."""
    return ("." in name or ":" in name) and not name.startswith((".", ":"))


def build_instance(definition: Any, parameters: Any, container: Di | None) -> Any:
    """Build an instance from any supported definition."""
    args = tuple(parameters or ())

    if isinstance(definition, str):
        try:
            target = import_string(definition)
        except (ImportError, AttributeError) as exc:
            msg = f"Cannot import service definition {definition!r}: {exc}"
            raise ServiceResolutionError(msg) from exc
        return target(*args) if callable(target) else target

    if isinstance(definition, type):
        return definition(*args)

    if isinstance(definition, Mapping):
        return build_from_mapping(definition, args, container)

    if isinstance(definition, _FACTORY_TYPES):
        arity = positional_arity(definition)
        if arity is None or arity > len(args):
            return definition(container, *args)
        return definition(*args)

    return definition


def build_from_mapping(
    definition: Mapping[str, Any],
    parameters: tuple[Any, ...],
    container: Di | None,
) -> Any:
    """Build an instance from a ``class_name`` mapping definition.

    Example::

        {
            "class_name": "app.mail:Mailer",
            "arguments": [
                {"type": "service", "name": "transport"},
                {"type": "parameter", "value": "noreply@example.com"},
            ],
            "calls": [
                {"method": "set_debug", "arguments": [{"type": "parameter", "value": True}]},
            ],
            "properties": [
                {"name": "retries", "value": {"type": "parameter", "value": 3}},
            ],
        }

    Explicit call *parameters* replace the declared ``arguments``.
    """
    class_name = definition.get("class_name")
    if class_name is None:
        msg = "Mapping service definitions require a 'class_name' key"
        raise ServiceResolutionError(msg)

    cls = _resolve_class(class_name)

    if parameters:
        args = list(parameters)
    else:
        args = [
            resolve_argument(arg, container, position)
            for position, arg in enumerate(definition.get("arguments", ()))
        ]
    instance = cls(*args)

    for position, call in enumerate(definition.get("calls", ())):
        if not isinstance(call, Mapping) or "method" not in call:
            msg = f"Method call #{position} must be a mapping with a 'method' key"
            raise ServiceResolutionError(msg)
        method = getattr(instance, call["method"], None)
        if method is None:
            msg = f"{type(instance).__name__} has no method {call['method']!r}"
            raise ServiceResolutionError(msg)
        call_args = [
            resolve_argument(arg, container, index)
            for index, arg in enumerate(call.get("arguments", ()))
        ]
        method(*call_args)

    for position, prop in enumerate(definition.get("properties", ())):
        if not isinstance(prop, Mapping) or "name" not in prop or "value" not in prop:
            msg = f"Property #{position} must be a mapping with 'name' and 'value' keys"
            raise ServiceResolutionError(msg)
        setattr(instance, prop["name"], resolve_argument(prop["value"], container, position))

    return instance


def resolve_argument(argument: Any, container: Di | None, position: int = 0) -> Any:
    """Resolve one ``{"type": ...}`` argument of a mapping definition."""
    if not isinstance(argument, Mapping) or "type" not in argument:
        msg = f"Argument at position {position} must have a 'type'"
        raise ServiceResolutionError(msg)

    kind = argument["type"]
    if kind == "service":
        if container is None:
            msg = "Service arguments need a container to resolve from"
            raise ServiceResolutionError(msg)
        if "name" not in argument:
            msg = f"Service argument at position {position} has no 'name'"
            raise ServiceResolutionError(msg)
        return container.get(argument["name"])

    if kind == "parameter":
        if "value" not in argument:
            msg = f"Parameter argument at position {position} has no 'value'"
            raise ServiceResolutionError(msg)
        return argument["value"]

    if kind == "instance":
        if "class_name" not in argument:
            msg = f"Instance argument at position {position} has no 'class_name'"
            raise ServiceResolutionError(msg)
        nested_args: Sequence[Any] = argument.get("arguments", ())
        cls = _resolve_class(argument["class_name"])
        return cls(
            *[resolve_argument(arg, container, index) for index, arg in enumerate(nested_args)]
        )

    msg = f"Unknown argument type {kind!r} at position {position}"
    raise ServiceResolutionError(msg)


def _resolve_class(class_name: Any) -> Any:
    if isinstance(class_name, str):
        try:
            return import_string(class_name)
        except (ImportError, AttributeError) as exc:
            msg = f"Cannot import {class_name!r}: {exc}"
            raise ServiceResolutionError(msg) from exc
    if callable(class_name):
        return class_name
    msg = f"class_name must be a class or import path, got {type(class_name).__name__}"
    raise ServiceResolutionError(msg)
