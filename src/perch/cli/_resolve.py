"""Resolve the ``app`` argument of CLI commands to an ``App``."""

import functools
import importlib

from perch.app import App


def resolve_app(import_string: str) -> App:
    """Import ``"package.module:attribute"`` and return the App it names.

    The attribute defaults to ``app`` and may be dotted
    (``"project.web:site.app"``). A callable that is not an App is
    taken to be an app factory and called without arguments.

    Raises:
        ModuleNotFoundError: If the module cannot be imported.
        AttributeError: If the attribute does not exist on the module.
        TypeError: If the resolved object is not a perch ``App``.
    """
    module_path, _, attr_path = import_string.partition(":")
    module = importlib.import_module(module_path)
    target = functools.reduce(getattr, (attr_path or "app").split("."), module)

    if not isinstance(target, App) and callable(target):
        try:
            target = target()
        except Exception as exc:
            msg = f"App factory {import_string!r} failed: {exc}"
            raise TypeError(msg) from exc

    if not isinstance(target, App):
        msg = f"{import_string!r} resolved to {type(target).__name__}, not a perch.App instance"
        raise TypeError(msg)
    return target
