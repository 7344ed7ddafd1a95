"""The perch application — an ASGI callable wiring the container, router and dispatcher.

Usage::

    from perch import App, AppConfig, Controller

    app = App(AppConfig(secret_key="change-me"))

    @app.controller("posts")
    class PostsController(Controller):
        def show_action(self, slug):
            return f"<h1>{slug}</h1>"

    app.router.add_get("/posts/{slug}", "posts::show")

    @app.route("/ping", methods=["GET"])
    def ping():
        return {"pong": True}
"""

import inspect
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any, TypeAlias

from perch._internal.asgi import Receive, Scope, Send
from perch.config import AppConfig
from perch.crypt import Crypt
from perch.di.container import Di
from perch.di.factory import FactoryDefault
from perch.errors import ConfigurationError
from perch.http.cookies import Cookies
from perch.mvc.dispatcher import Dispatcher
from perch.routing.group import Group
from perch.routing.route import Route
from perch.routing.router import Router
from perch.security import Security
from perch.server.errors import ErrorHandlers
from perch.server.handler import handle_request
from perch.session import MemoryAdapter, SessionAdapter, SessionManager

logger = logging.getLogger("perch.app")

ErrorHandler: TypeAlias = Callable[..., Any]


class App:
    """The ASGI application.

    Setup (routes, controllers, error handlers, hooks) happens before
    the first request; after that the app is frozen and setup methods
    raise ``RuntimeError``. Services can still be replaced on ``app.di``
    before the first request.
    """

    __slots__ = (
        "_controllers",
        "_di",
        "_error_handlers",
        "_freeze_lock",
        "_frozen",
        "_router",
        "_session_adapter",
        "_shutdown_hooks",
        "_startup_hooks",
        "config",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        di: Di | None = None,
        session_adapter: SessionAdapter | None = None,
    ) -> None:
        self.config: AppConfig = config or AppConfig()
        self._di: Di = di if di is not None else FactoryDefault()
        self._controllers: dict[str, Any] = {}
        self._error_handlers: ErrorHandlers = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._session_adapter: SessionAdapter = (
            session_adapter
            if session_adapter is not None
            else MemoryAdapter(ttl=self.config.session_max_age)
        )
        self._frozen = False
        self._freeze_lock = threading.Lock()

        self._router = self._build_router()
        self._register_services()

    # -- Services --

    def _build_router(self) -> Router:
        config = self.config
        router = Router(default_routes=config.default_routes)
        router.remove_extra_slashes(config.remove_extra_slashes)
        router.set_defaults(
            {
                "namespace": config.default_namespace,
                "controller": config.default_controller,
                "action": config.default_action,
            }
        )
        return router

    def _register_services(self) -> None:
        config = self.config
        di = self._di
        controllers = self._controllers
        adapter = self._session_adapter

        def build_dispatcher() -> Dispatcher:
            dispatcher = Dispatcher(config.action_suffix, controllers)
            dispatcher.set_default_namespace(config.default_namespace)
            dispatcher.set_default_controller(config.default_controller)
            dispatcher.set_default_action(config.default_action)
            return dispatcher

        di.set_shared("router", self._router)
        di.set_shared("dispatcher", build_dispatcher)
        di.set_shared("crypt", lambda: Crypt(config.secret_key))
        di.set_shared(
            "cookies",
            lambda: Cookies(
                config.sign_cookies,
                path=config.cookie_path,
                domain=config.cookie_domain,
                secure=config.cookie_secure,
                httponly=config.cookie_httponly,
                samesite=config.cookie_samesite,
            ),
        )
        di.set_shared(
            "security",
            lambda: Security(work_factor=config.work_factor, random_bytes=config.csrf_token_bytes),
        )
        if config.session_enabled:
            di.set_shared(
                "session",
                lambda: SessionManager(
                    adapter, name=config.session_cookie_name, max_age=config.session_max_age
                ),
            )

    @property
    def di(self) -> Di:
        return self._di

    @property
    def router(self) -> Router:
        return self._router

    @property
    def session_adapter(self) -> SessionAdapter:
        return self._session_adapter

    # -- Controllers and routes --

    def controller(self, name: str) -> Callable[[type], type]:
        """Register a controller class under *name* via decorator.

        ::

            @app.controller("posts")
            class PostsController(Controller):
                def index_action(self):
                    return "all posts"
        """

        def decorator(cls: type) -> type:
            self._check_not_frozen()
            self._controllers[name] = cls
            return cls

        return decorator

    def add_controller(self, name: str, controller: Any) -> None:
        """Register a controller class (or an import string) under *name*."""
        self._check_not_frozen()
        self._controllers[name] = controller

    def route(
        self,
        pattern: str,
        methods: str | Iterable[str] | None = None,
        name: str | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a micro handler for *pattern* via decorator.

        The handler receives the route's positional parameters and its
        named parameters as keyword arguments::

            @app.route("/posts/{year:[0-9]{4}}/{slug}", methods=["GET"], name="post")
            def show_post(year, slug):
                return f"{year}: {slug}"
        """

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._check_not_frozen()
            route = self._router.add(pattern, None, methods)
            route.match(func)
            if name is not None:
                route.set_name(name)
            return func

        return decorator

    def add_route(
        self,
        pattern: str,
        paths: str | dict[str, Any] | None = None,
        methods: str | Iterable[str] | None = None,
    ) -> Route:
        """Add a controller route, as ``app.router.add`` but frozen-checked."""
        self._check_not_frozen()
        return self._router.add(pattern, paths, methods)

    def mount(self, group: Group) -> None:
        """Add every route of *group* to the router."""
        self._check_not_frozen()
        self._router.mount(group)

    # -- Error handlers --

    def error(
        self,
        code_or_exception: int | type[Exception],
    ) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler via decorator.

        Handlers may take ``()``, ``(request)`` or ``(request, exc)``::

            @app.error(404)
            def not_found(request):
                return f"Nothing at {request.path}", 404
        """

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync startup hook via decorator.

        Hooks run in registration order during ASGI lifespan startup.
        """
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync shutdown hook via decorator."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- ASGI --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        if scope["type"] != "http":
            msg = f"Unsupported ASGI scope type {scope['type']!r}"
            raise RuntimeError(msg)

        self._ensure_frozen()
        await handle_request(
            scope,
            receive,
            send,
            di=self._di,
            config=self.config,
            error_handlers=self._error_handlers,
        )

    async def _handle_lifespan(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol.

        Freezes the app at startup, then runs registered startup and
        shutdown hooks and signals completion back to the server.
        """
        self._ensure_frozen()

        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    for hook in self._startup_hooks:
                        result = hook()
                        if inspect.isawaitable(result):
                            await result
                    await send({"type": "lifespan.startup.complete"})
                except Exception as exc:
                    logger.exception("Startup hook failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return

            elif msg_type == "lifespan.shutdown":
                for hook in self._shutdown_hooks:
                    result = hook()
                    if inspect.isawaitable(result):
                        await result
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Freezing --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """MUST only be called while holding _freeze_lock."""
        config = self.config
        if (config.session_enabled or config.sign_cookies) and not config.secret_key:
            msg = (
                "AppConfig.secret_key must not be empty when sessions or signed "
                "cookies are enabled."
            )
            raise ConfigurationError(msg)
        Di.set_default(self._di)
        self._frozen = True
        logger.debug(
            "App frozen with %d routes and %d controllers",
            len(self._router.get_routes()),
            len(self._controllers),
        )

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes, controllers and handlers before the first request."
            )
            raise RuntimeError(msg)
