"""Shared fixtures: a fresh container per test, with a request registered."""

from collections.abc import Callable, Iterator

import pytest

from perch.di import Di, FactoryDefault
from perch.http.headers import Headers
from perch.http.query import QueryParams
from perch.http.request import Request

SECRET = "test-secret-key"


@pytest.fixture(autouse=True)
def _reset_default_container() -> Iterator[None]:
    Di.reset()
    yield
    Di.reset()


def build_request(
    method: str = "GET",
    path: str = "/",
    headers: dict[str, str] | None = None,
    query: str = "",
) -> Request:
    raw = tuple(
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in (headers or {}).items()
    )
    return Request(method, path, Headers(raw), QueryParams(query.encode("latin-1")))


@pytest.fixture
def make_request() -> Callable[..., Request]:
    """Factory for bare requests: ``make_request("POST", "/", {"Host": "x"}, "a=1")``."""
    return build_request


@pytest.fixture
def di() -> Iterator[Di]:
    """A FactoryDefault with a signing key and a GET / request, activated."""
    container = FactoryDefault()
    container.get_shared("crypt").set_key(SECRET)
    container.set_shared("request", build_request())
    token = container.activate()
    yield container
    Di.deactivate(token)
