"""Content negotiation — maps return values onto the response.

Actions and micro handlers may return:

- ``None`` — the shared ``response`` as the handler left it
- ``Response`` — sent as is
- ``str`` / ``bytes`` — the response body
- ``dict`` / ``list`` — a JSON body
- ``(value, status)`` or ``(value, status, headers)``

isinstance-based dispatch, no magic, fully predictable.
"""

from collections.abc import Mapping
from typing import Any

from perch.http.response import Response


def negotiate(value: Any, response: Response) -> Response:
    """Apply a handler's return value to *response* and return what to send.

    Raises:
        TypeError: If the value has no response mapping.
    """
    match value:
        case None:
            return response
        case Response():
            if value is not response and value.get_cookies() is None:
                cookies = response.get_cookies()
                if cookies is not None:
                    value.set_cookies(cookies)
            return value
        case str() | bytes():
            response.set_content(value)
            return response
        case dict() | list():
            response.set_json_content(value)
            return response
        case (body, int() as status):
            return negotiate(body, response).set_status_code(status)
        case (body, int() as status, Mapping() as headers):
            result = negotiate(body, response).set_status_code(status)
            for name, header_value in headers.items():
                result.set_header(name, header_value)
            return result
        case _:
            msg = (
                f"Cannot convert {type(value).__name__} to a response. "
                "Return str, bytes, dict, list, Response, or a (value, status) tuple."
            )
            raise TypeError(msg)
