"""Request handler — the per-request pipeline.

Forks the app container, registers the request, routes it, runs the
matched micro handler or dispatches to a controller action, then sends
the response. Every request gets its own forked container, activated
for the duration of the request.
"""

import logging
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.invoke import invoke
from perch.config import AppConfig
from perch.di.container import Di
from perch.errors import HTTPError
from perch.http.request import Request
from perch.http.response import Response
from perch.server.errors import ErrorHandlers, handle_http_error, handle_internal_error
from perch.server.negotiation import negotiate

logger = logging.getLogger("perch.server")


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    di: Di,
    config: AppConfig,
    error_handlers: ErrorHandlers,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    request_di = di.fork()
    token = request_di.activate()
    try:
        request = Request.from_asgi(
            scope,
            receive,
            http_method_parameter_override=config.http_method_parameter_override,
        )
        request.set_di(request_di)
        request_di.set_shared("request", request)

        response: Response
        try:
            await request.load(config.max_content_length)
            result = await _route(request, request_di)
            response = negotiate(result, request_di.get_shared("response"))
        except HTTPError as exc:
            response = await handle_http_error(
                exc, request, request_di, error_handlers, config.debug
            )
        except Exception as exc:
            response = await handle_internal_error(
                exc, request, request_di, error_handlers, config.debug
            )

        response.send_cookies()
        if request_di.has("session"):
            request_di.get_shared("session").write_close()
        await response.send(send)
    finally:
        Di.deactivate(token)


async def _route(request: Request, di: Di) -> Any:
    router = di.get_shared("router")
    router.handle(request.path)

    route = router.get_matched_route()
    handler = route.get_match() if route is not None else None
    if handler is not None:
        logger.debug("%s %s -> %r", request.method, request.path, route.pattern)
        return await invoke(handler, *router.get_params(), **router.get_named_params())

    dispatcher = di.get_shared("dispatcher")
    dispatcher.set_namespace_name(router.get_namespace_name())
    dispatcher.set_module_name(router.get_module_name())
    dispatcher.set_controller_name(router.get_controller_name())
    dispatcher.set_action_name(router.get_action_name())
    dispatcher.set_params(router.get_params())
    dispatcher.set_named_params(router.get_named_params())
    return await dispatcher.dispatch()
