"""Error handling pipeline for perch requests.

Maps HTTPError exceptions and unexpected failures to Response objects,
using registered error handlers or sensible defaults. Error responses
keep the request's cookie bag so session and CSRF cookies still go out.
"""

import html
import logging
import traceback
from http import HTTPStatus
from collections.abc import Callable
from typing import Any, TypeAlias

from perch._internal.invoke import invoke, positional_arity
from perch.di.container import Di
from perch.errors import HTTPError
from perch.http.request import Request
from perch.http.response import Response
from perch.server.negotiation import negotiate

logger = logging.getLogger("perch.server")

ErrorHandlers: TypeAlias = dict[int | type[BaseException], Callable[..., Any]]


def _fresh_response(di: Di) -> Response:
    response = Response()
    response.set_di(di)
    if di.has("response"):
        cookies = di.get_shared("response").get_cookies()
        if cookies is not None:
            response.set_cookies(cookies)
    return response


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    exc: BaseException,
    response: Response,
) -> Response:
    """Invoke a user-registered error handler with introspected arguments.

    Error handlers may accept zero, one (request), or two (request, exc) args.
    Supports both sync and async error handlers.
    """
    arity = positional_arity(handler)
    if arity is None or arity >= 2:
        result = await invoke(handler, request, exc)
    elif arity == 1:
        result = await invoke(handler, request)
    else:
        result = await invoke(handler)
    return negotiate(result, response)


async def handle_http_error(
    exc: HTTPError,
    request: Request,
    di: Di,
    error_handlers: ErrorHandlers,
    debug: bool,
) -> Response:
    """Map an HTTPError to a Response using registered error handlers."""
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)
    response = _fresh_response(di)

    # Exact exception type first, then status code
    handler = error_handlers.get(type(exc)) or error_handlers.get(exc.status)
    if handler is not None:
        response = await call_error_handler(handler, request, exc, response)
        if response.get_status_code() == 200:
            response.set_status_code(exc.status, None if _is_standard(exc.status) else "Error")
        return response

    detail = exc.detail or f"Error {exc.status}"
    if debug and exc.detail:
        detail = f"{exc.status}: {exc.detail}"

    response.set_status_code(exc.status, None if _is_standard(exc.status) else "Error")
    response.set_content_type("text/plain", "utf-8")
    response.set_content(detail)
    for name, value in exc.headers:
        response.set_header(name, value)
    return response


async def handle_internal_error(
    exc: Exception,
    request: Request,
    di: Di,
    error_handlers: ErrorHandlers,
    debug: bool,
) -> Response:
    """Handle unexpected exceptions as 500 errors."""
    logger.exception("500 %s %s", request.method, request.path)
    response = _fresh_response(di)

    handler = error_handlers.get(type(exc)) or error_handlers.get(500)
    if handler is not None:
        response = await call_error_handler(handler, request, exc, response)
        if response.get_status_code() == 200:
            response.set_status_code(500)
        return response

    response.set_status_code(500)
    if debug:
        trace = "".join(traceback.format_exception(exc))
        response.set_content(f"<h1>Internal Server Error</h1>\n<pre>{html.escape(trace)}</pre>")
    else:
        response.set_content_type("text/plain", "utf-8")
        response.set_content("Internal Server Error")
    return response


def _is_standard(status: int) -> bool:
    try:
        HTTPStatus(status)
    except ValueError:
        return False
    return True
