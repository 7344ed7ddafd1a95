"""Dispatcher — turns the router's controller/action into a method call.

The dispatch loop resolves the controller class, builds it, runs the
``before_execute_route`` hook, calls the action, and runs
``after_execute_route``. A hook or action may call ``forward()`` to
switch to another controller/action; the loop then runs again.

Controllers are found in the registry (``register()``) first, then by
import path: with a namespace of ``"app.controllers"`` the controller
name ``"user_profile"`` resolves to
``app.controllers:UserProfileController``.
"""

from __future__ import annotations

import inspect
import logging
import re
from collections.abc import Mapping
from typing import Any

from perch._internal.invoke import invoke
from perch.di.builder import import_string
from perch.di.injectable import Injectable
from perch.errors import DispatchError, NotFound

logger = logging.getLogger("perch.dispatcher")

MAX_DISPATCH_LOOPS = 256

_WORD_SPLIT_RE = re.compile(r"[_\-]+")


def camelize(name: str) -> str:
    """``user_profile`` -> ``UserProfile``."""
    return "".join(part[:1].upper() + part[1:] for part in _WORD_SPLIT_RE.split(name) if part)


class Dispatcher(Injectable):
    """Runs controller actions.

    Usage::

        dispatcher = di.get_shared("dispatcher")
        dispatcher.register("posts", PostsController)
        dispatcher.set_controller_name("posts")
        dispatcher.set_action_name("show")
        dispatcher.set_params(["hello-world"])
        result = await dispatcher.dispatch()
    """

    __slots__ = (
        "_action_name",
        "_action_suffix",
        "_active_controller",
        "_controller_name",
        "_controllers",
        "_default_action",
        "_default_controller",
        "_default_namespace",
        "_finished",
        "_forwarded",
        "_initialized",
        "_instances",
        "_last_controller",
        "_module_name",
        "_named_params",
        "_namespace_name",
        "_params",
        "_previous_action_name",
        "_previous_controller_name",
        "_returned_value",
    )

    def __init__(
        self,
        action_suffix: str = "_action",
        controllers: Mapping[str, Any] | None = None,
    ) -> None:
        self._action_suffix = action_suffix
        self._controllers: dict[str, Any] = dict(controllers or {})
        self._instances: dict[Any, Any] = {}
        self._initialized: set[Any] = set()
        self._default_namespace: str | None = None
        self._default_controller = "index"
        self._default_action = "index"
        self._namespace_name: str | None = None
        self._module_name: str | None = None
        self._controller_name: str | None = None
        self._action_name: str | None = None
        self._params: list[Any] = []
        self._named_params: dict[str, Any] = {}
        self._previous_controller_name: str | None = None
        self._previous_action_name: str | None = None
        self._active_controller: Any = None
        self._last_controller: Any = None
        self._returned_value: Any = None
        self._finished = False
        self._forwarded = False

    # -- Registry --

    def register(self, name: str, controller: Any) -> Dispatcher:
        """Map controller *name* to a class (or an import string)."""
        self._controllers[name] = controller
        return self

    def get_controllers(self) -> dict[str, Any]:
        return dict(self._controllers)

    def set_action_suffix(self, suffix: str) -> Dispatcher:
        self._action_suffix = suffix
        return self

    def get_action_suffix(self) -> str:
        return self._action_suffix

    # -- Defaults --

    def set_default_namespace(self, namespace: str | None) -> Dispatcher:
        self._default_namespace = namespace
        return self

    def get_default_namespace(self) -> str | None:
        return self._default_namespace

    def set_default_controller(self, name: str) -> Dispatcher:
        self._default_controller = name
        return self

    def get_default_controller(self) -> str:
        return self._default_controller

    def set_default_action(self, name: str) -> Dispatcher:
        self._default_action = name
        return self

    def get_default_action(self) -> str:
        return self._default_action

    # -- Target --

    def set_namespace_name(self, namespace: str | None) -> Dispatcher:
        self._namespace_name = namespace
        return self

    def get_namespace_name(self) -> str | None:
        return self._namespace_name

    def set_module_name(self, module: str | None) -> Dispatcher:
        self._module_name = module
        return self

    def get_module_name(self) -> str | None:
        return self._module_name

    def set_controller_name(self, name: str | None) -> Dispatcher:
        self._controller_name = name
        return self

    def get_controller_name(self) -> str:
        return self._controller_name or self._default_controller

    def set_action_name(self, name: str | None) -> Dispatcher:
        self._action_name = name
        return self

    def get_action_name(self) -> str:
        return self._action_name or self._default_action

    def get_previous_controller_name(self) -> str | None:
        return self._previous_controller_name

    def get_previous_action_name(self) -> str | None:
        return self._previous_action_name

    def set_params(self, params: list[Any]) -> Dispatcher:
        self._params = list(params)
        return self

    def get_params(self) -> list[Any]:
        return list(self._params)

    def set_named_params(self, params: Mapping[str, Any]) -> Dispatcher:
        self._named_params = dict(params)
        return self

    def get_named_params(self) -> dict[str, Any]:
        return dict(self._named_params)

    def get_param(self, param: int | str, filters: Any = None, default: Any = None) -> Any:
        """A positional (int) or named (str) parameter, optionally sanitized."""
        if isinstance(param, int):
            try:
                value = self._params[param]
            except IndexError:
                return default
        elif param in self._named_params:
            value = self._named_params[param]
        else:
            return default
        if filters is not None:
            value = self.filter.sanitize(value, filters)
        return value

    def has_param(self, param: int | str) -> bool:
        if isinstance(param, int):
            return -len(self._params) <= param < len(self._params)
        return param in self._named_params

    # -- State --

    def get_active_controller(self) -> Any:
        return self._active_controller

    def get_last_controller(self) -> Any:
        return self._last_controller

    def get_returned_value(self) -> Any:
        return self._returned_value

    def set_returned_value(self, value: Any) -> Dispatcher:
        self._returned_value = value
        return self

    def is_finished(self) -> bool:
        return self._finished

    def was_forwarded(self) -> bool:
        return self._forwarded

    # -- Forwarding --

    def forward(self, target: Mapping[str, Any]) -> None:
        """Re-dispatch to another controller/action within the same request.

        *target* may hold ``namespace``, ``module``, ``controller``,
        ``action``, ``params`` (a list) and ``named_params`` (a mapping).
        Missing keys keep their current value.
        """
        if "namespace" in target:
            self._namespace_name = target["namespace"]
        if "module" in target:
            self._module_name = target["module"]
        if "controller" in target:
            self._previous_controller_name = self._controller_name
            self._controller_name = target["controller"]
        if "action" in target:
            self._previous_action_name = self._action_name
            self._action_name = target["action"]
        if "params" in target:
            self._params = list(target["params"])
        if "named_params" in target:
            self._named_params = dict(target["named_params"])
        self._finished = False
        self._forwarded = True

    # -- Dispatching --

    def get_controller_class(self, name: str | None = None) -> Any:
        """The class serving controller *name* (defaults to the current one).

        Raises:
            NotFound: If no registered class or importable class matches.
        """
        name = name or self.get_controller_name()
        controller = self._controllers.get(name)
        if controller is None:
            namespace = self._namespace_name or self._default_namespace
            if namespace:
                path = f"{namespace}:{camelize(name)}Controller"
                try:
                    controller = import_string(path)
                except (ImportError, AttributeError):
                    controller = None
        if controller is None:
            msg = f"Controller {name!r} was not found"
            raise NotFound(msg)
        if isinstance(controller, str):
            try:
                controller = import_string(controller)
            except (ImportError, AttributeError) as exc:
                msg = f"Controller {name!r} could not be imported: {exc}"
                raise DispatchError(msg) from exc
        return controller

    async def dispatch(self) -> Any:
        """Run the dispatch loop and return the last action's value.

        Raises:
            NotFound: If the controller or action does not exist, or the
                action cannot take the given parameters.
            DispatchError: If forwarding loops more than
                ``MAX_DISPATCH_LOOPS`` times.
        """
        loops = 0
        self._finished = False
        self._forwarded = False

        while not self._finished:
            loops += 1
            if loops > MAX_DISPATCH_LOOPS:
                msg = "Dispatcher has detected a cyclic routing causing stability problems"
                raise DispatchError(msg)
            self._finished = True

            controller_name = self.get_controller_name()
            action_name = self.get_action_name()
            cls = self.get_controller_class(controller_name)
            instance = self._get_instance(cls)

            self._active_controller = instance
            logger.debug("Dispatching %s.%s", controller_name, action_name)

            # The hook may forward away from an action that does not exist
            before = getattr(instance, "before_execute_route", None)
            if callable(before):
                if await invoke(before, self) is False:
                    continue
                if not self._finished:
                    continue

            method = getattr(instance, f"{action_name}{self._action_suffix}", None)
            if not callable(method):
                msg = f"Action {action_name!r} was not found on controller {controller_name!r}"
                raise NotFound(msg)

            if cls not in self._initialized:
                self._initialized.add(cls)
                await invoke(instance.initialize)

            args, kwargs = _fit_arguments(method, self._params, self._named_params)
            self._returned_value = await invoke(method, *args, **kwargs)
            self._last_controller = instance

            if not self._finished:
                continue

            after = getattr(instance, "after_execute_route", None)
            if callable(after):
                await invoke(after, self)

        return self._returned_value

    def _get_instance(self, cls: Any) -> Any:
        instance = self._instances.get(cls)
        if instance is not None:
            return instance
        instance = cls()
        set_di = getattr(instance, "set_di", None)
        if callable(set_di):
            set_di(self.get_di())
        self._instances[cls] = instance
        return instance


def _fit_arguments(
    method: Any, params: list[Any], named: Mapping[str, Any]
) -> tuple[list[Any], dict[str, Any]]:
    """Trim *params*/*named* to what *method* accepts.

    Extra URL segments are dropped. A missing required parameter
    raises ``NotFound``.
    """
    try:
        sig = inspect.signature(method)
    except (TypeError, ValueError):
        return list(params), dict(named)

    positional: list[inspect.Parameter] = []
    keyword_names: set[str] = set()
    takes_varargs = takes_varkw = False
    for param in sig.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            takes_varargs = True
        elif param.kind is inspect.Parameter.VAR_KEYWORD:
            takes_varkw = True
        elif param.kind is inspect.Parameter.KEYWORD_ONLY:
            keyword_names.add(param.name)
        else:
            positional.append(param)
            if param.kind is not inspect.Parameter.POSITIONAL_ONLY:
                keyword_names.add(param.name)

    args = list(params) if takes_varargs else list(params)[: len(positional)]
    # A name already filled positionally must not be passed twice.
    filled = {param.name for param in positional[: len(args)]}
    kwargs = {
        key: value
        for key, value in named.items()
        if key not in filled and (takes_varkw or key in keyword_names)
    }
    try:
        sig.bind(*args, **kwargs)
    except TypeError as exc:
        msg = f"Invalid parameters for action: {exc}"
        raise NotFound(msg) from exc
    return args, kwargs
