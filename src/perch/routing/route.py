"""Route — a compiled URI pattern mapped to controller/action paths.

Pattern language::

    /posts/{slug}                    named part, matches ``[^/]*``
    /posts/{id:[0-9]+}               named part with its own regex
    /archive/{year:[0-9]{4}}         nested braces inside the regex
    /:controller/:action/:params     positional placeholders
    /users/:int                      ``/([0-9]+)``
    #^/legacy/([a-z]+)$#             raw regex, used as is

A pattern that still holds ``(`` or ``[`` after placeholder expansion is
compiled into an anchored regex. Anything else is compared literally.
"""

from __future__ import annotations

import itertools
import re
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias

from perch.errors import RouterError

if TYPE_CHECKING:
    from perch.routing.group import Group

# Positional placeholders and their regex (the leading "/" is part of the token)
PLACEHOLDERS: dict[str, str] = {
    ":module": r"/([\w0-9\_\-]+)",
    ":controller": r"/([\w0-9\_\-]+)",
    ":namespace": r"/([\w0-9\_\-]+)",
    ":action": r"/([\w0-9\_\-]+)",
    ":params": r"(/.*)*",
    ":int": r"/([0-9]+)",
}

# Placeholders that also name a part of the route paths
_PLACEHOLDER_PARTS = {
    ":module": "module",
    ":controller": "controller",
    ":namespace": "namespace",
    ":action": "action",
    ":params": "params",
}

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*")
_POSITIONAL_RE = re.compile(r"/:(module|controller|namespace|action|params|int)(?![A-Za-z0-9_\-])")
_UNCAMELIZE_RE = re.compile(r"(?<!^)(?=[A-Z])")

_id_lock = threading.Lock()
_ids = itertools.count()

Converter: TypeAlias = Callable[[Any], Any]
BeforeMatch: TypeAlias = Callable[[str, "Route", Any], bool]


def _next_id() -> int:
    with _id_lock:
        return next(_ids)


def uncamelize(name: str) -> str:
    """``UserProfile`` -> ``user_profile``."""
    return _UNCAMELIZE_RE.sub("_", name).lower()


# ---------------------------------------------------------------------------
# Pattern scanning
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Token:
    """One piece of a route pattern.

    kind is ``"text"`` (literal or user regex), ``"positional"``
    (``/:controller``...) or ``"named"`` (``{slug}``).
    """

    kind: str
    value: str
    regex: str = ""


def _scan(pattern: str) -> Iterator[_Token]:
    """Split *pattern* into text, positional, and named tokens."""
    text: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]

        if ch == "\\" and i + 1 < n:
            text.append(pattern[i : i + 2])
            i += 2
            continue

        if ch == "[":
            end = _class_end(pattern, i)
            text.append(pattern[i:end])
            i = end
            continue

        if ch == "/" and pattern.startswith(":", i + 1):
            match = _NAME_RE.match(pattern, i + 2)
            if match is not None and ":" + match.group() in PLACEHOLDERS:
                if text:
                    yield _Token("text", "".join(text))
                    text = []
                key = ":" + match.group()
                yield _Token("positional", key, PLACEHOLDERS[key])
                i = match.end()
                continue

        if ch == "{":
            end = _brace_end(pattern, i)
            if end is not None:
                inner = pattern[i + 1 : end - 1]
                name, sep, regex = inner.partition(":")
                if _NAME_RE.fullmatch(name):
                    if text:
                        yield _Token("text", "".join(text))
                        text = []
                    yield _Token("named", name, regex if sep else "[^/]*")
                    i = end
                    continue

        text.append(ch)
        i += 1

    if text:
        yield _Token("text", "".join(text))


def _class_end(pattern: str, start: int) -> int:
    """Index just past the character class opening at *start*."""
    i = start + 1
    if i < len(pattern) and pattern[i] == "^":
        i += 1
    if i < len(pattern) and pattern[i] == "]":
        i += 1
    while i < len(pattern):
        if pattern[i] == "\\":
            i += 2
            continue
        if pattern[i] == "]":
            return i + 1
        i += 1
    return len(pattern)


def _brace_end(pattern: str, start: int) -> int | None:
    """Index just past the ``}`` closing the brace at *start*, if balanced."""
    depth = 0
    i = start
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def count_groups(regex: str) -> int:
    """Count the capturing groups in *regex*."""
    count = 0
    i = 0
    while i < len(regex):
        ch = regex[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "[":
            i = _class_end(regex, i)
            continue
        if ch == "(":
            if not regex.startswith("?", i + 1) or regex.startswith("?P<", i + 1):
                count += 1
        i += 1
    return count


def _parse_raw_regex(pattern: str) -> re.Pattern[str]:
    """Compile a ``#regex#flags`` pattern."""
    end = pattern.rfind("#")
    if end <= 0:
        msg = f"Raw regex route {pattern!r} must be wrapped in '#'"
        raise RouterError(msg)
    body = pattern[1:end]
    flags = re.IGNORECASE if "i" in pattern[end + 1 :] else 0
    try:
        return re.compile(body, flags)
    except re.error as exc:
        msg = f"Invalid regex in route {pattern!r}: {exc}"
        raise RouterError(msg) from exc


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------


class Route:
    """A pattern-to-handler mapping with optional method and host constraints.

    Usage::

        route = Route("/posts/{year:[0-9]{4}}/{slug}", "posts::show")
        route.via(["GET", "HEAD"]).convert("year", int).set_name("post")
    """

    __slots__ = (
        "_before_match",
        "_compiled",
        "_converters",
        "_group",
        "_hostname",
        "_match",
        "_methods",
        "_name",
        "_paths",
        "_pattern",
        "route_id",
    )

    def __init__(
        self,
        pattern: str,
        paths: str | Mapping[str, Any] | None = None,
        methods: str | Iterable[str] | None = None,
    ) -> None:
        self.route_id: int = _next_id()
        self._methods: tuple[str, ...] = ()
        self._hostname: str | None = None
        self._converters: dict[str, Converter] = {}
        self._before_match: BeforeMatch | None = None
        self._match: Callable[..., Any] | None = None
        self._name: str | None = None
        self._group: Group | None = None
        self.reconfigure(pattern, paths)
        if methods is not None:
            self.via(methods)

    def __repr__(self) -> str:
        methods = ",".join(self._methods) or "*"
        return f"<Route #{self.route_id} {methods} {self._pattern!r}>"

    # -- Compilation --

    def reconfigure(self, pattern: str, paths: str | Mapping[str, Any] | None = None) -> None:
        """Recompile the route for a new pattern and paths."""
        route_paths = self.get_route_paths(paths)

        if pattern.startswith("#"):
            compiled: re.Pattern[str] | str = _parse_raw_regex(pattern)
        else:
            compiled, positions = self._compile(pattern)
            # Placeholder positions fill gaps; explicit paths win over them,
            # and named parts win over both.
            auto = {k: v for k, v in positions.items() if k.startswith(":")}
            named = {k: v for k, v in positions.items() if not k.startswith(":")}
            merged = {_PLACEHOLDER_PARTS[k]: v for k, v in auto.items() if k in _PLACEHOLDER_PARTS}
            merged.update(route_paths)
            merged.update(named)
            route_paths = merged

        self._pattern = pattern
        self._compiled = compiled
        self._paths = route_paths

    @classmethod
    def _compile(cls, pattern: str) -> tuple[re.Pattern[str] | str, dict[str, int]]:
        out: list[str] = []
        positions: dict[str, int] = {}
        groups = 0
        for token in _scan(pattern):
            if token.kind == "text":
                out.append(token.value)
                groups += count_groups(token.value)
            elif token.kind == "positional":
                out.append(token.regex)
                positions.setdefault(token.value, groups + 1)
                groups += count_groups(token.regex)
            else:
                out.append(f"({token.regex})")
                positions[token.value] = groups + 1
                groups += 1 + count_groups(token.regex)
        return cls.compile_pattern("".join(out)), positions

    @staticmethod
    def compile_pattern(pattern: str) -> re.Pattern[str] | str:
        """Compile an expanded pattern: a regex when it holds ``(`` or ``[``, else a literal.

        Positional placeholders are expanded first::

            Route.compile_pattern("/:controller")  # re.compile(r"^/([\\w0-9\\_\\-]+)$")
            Route.compile_pattern("/about")        # "/about"
        """
        if ":" in pattern:
            pattern = _POSITIONAL_RE.sub(lambda m: PLACEHOLDERS[":" + m.group(1)], pattern)
        if "(" in pattern or "[" in pattern:
            try:
                return re.compile(f"^{pattern}$")
            except re.error as exc:
                msg = f"Invalid route pattern {pattern!r}: {exc}"
                raise RouterError(msg) from exc
        return pattern

    @staticmethod
    def extract_named_params(pattern: str) -> tuple[str, dict[str, int]]:
        """Replace ``{name}`` parts with groups and map each name to its group position.

        ::

            Route.extract_named_params("/posts/{year:[0-9]{4}}/{slug}")
            # ("/posts/([0-9]{4})/([^/]*)", {"year": 1, "slug": 2})
        """
        out: list[str] = []
        positions: dict[str, int] = {}
        groups = 0
        for token in _scan(pattern):
            if token.kind == "named":
                out.append(f"({token.regex})")
                positions[token.value] = groups + 1
                groups += 1 + count_groups(token.regex)
            else:
                text = "/" + token.value if token.kind == "positional" else token.value
                out.append(text)
                groups += count_groups(text)
        return "".join(out), positions

    @staticmethod
    def get_route_paths(paths: str | Mapping[str, Any] | None) -> dict[str, Any]:
        """Normalize route paths into a part -> position/value mapping.

        Strings use ``::`` separators::

            "posts"                  -> {"controller": "posts"}
            "posts::show"            -> {"controller": "posts", "action": "show"}
            "blog::posts::show"      -> {"module": "blog", "controller": "posts", "action": "show"}
            "app.admin.UserProfile"  -> {"namespace": "app.admin", "controller": "user_profile"}
        """
        if paths is None:
            return {}
        if isinstance(paths, Mapping):
            for key in paths:
                if not isinstance(key, str):
                    msg = f"Route path keys must be strings, got {key!r}"
                    raise RouterError(msg)
            return dict(paths)
        if not isinstance(paths, str):
            msg = f"Route paths must be a string or mapping, got {type(paths).__name__}"
            raise RouterError(msg)

        parts = paths.split("::")
        route_paths: dict[str, Any] = {}
        if len(parts) == 3:
            module, controller, action = parts
            route_paths["module"] = module
        elif len(parts) == 2:
            controller, action = parts
        elif len(parts) == 1:
            controller, action = parts[0], None
        else:
            msg = f"Invalid route paths {paths!r}"
            raise RouterError(msg)

        if controller:
            namespace, dot, class_name = controller.rpartition(".")
            if dot:
                route_paths["namespace"] = namespace
            route_paths["controller"] = uncamelize(class_name)
        if action:
            route_paths["action"] = action
        return route_paths

    # -- Matching --

    def match_uri(self, uri: str) -> tuple[str | None, ...] | None:
        """Return ``(full_match, *groups)`` when *uri* matches, else ``None``."""
        if isinstance(self._compiled, str):
            return (uri,) if self._compiled == uri else None
        m = self._compiled.match(uri)
        if m is None:
            return None
        return (m.group(0), *m.groups())

    # -- Constraints --

    def via(self, methods: str | Iterable[str]) -> Route:
        """Restrict the route to one or more HTTP methods."""
        if isinstance(methods, str):
            methods = [methods]
        self._methods = tuple(m.upper() for m in methods)
        return self

    def set_http_methods(self, methods: str | Iterable[str]) -> Route:
        return self.via(methods)

    def set_hostname(self, hostname: str | None) -> Route:
        self._hostname = hostname
        return self

    def before_match(self, callback: BeforeMatch) -> Route:
        """Run *callback(uri, route, router)* before matching; falsy skips the route."""
        self._before_match = callback
        return self

    def match(self, callback: Callable[..., Any]) -> Route:
        """Attach a handler called instead of the dispatcher when the route matches."""
        self._match = callback
        return self

    def convert(self, name: str, converter: Converter) -> Route:
        """Pass the *name* part through *converter* when the route matches."""
        self._converters[name] = converter
        return self

    def set_name(self, name: str) -> Route:
        self._name = name
        return self

    def set_group(self, group: Group) -> Route:
        self._group = group
        return self

    # -- Accessors --

    @property
    def pattern(self) -> str:
        return self._pattern

    @property
    def compiled_pattern(self) -> re.Pattern[str] | str:
        return self._compiled

    @property
    def paths(self) -> dict[str, Any]:
        return dict(self._paths)

    @property
    def methods(self) -> tuple[str, ...]:
        return self._methods

    @property
    def hostname(self) -> str | None:
        return self._hostname

    @property
    def converters(self) -> dict[str, Converter]:
        return dict(self._converters)

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def group(self) -> Group | None:
        return self._group

    def get_before_match(self) -> BeforeMatch | None:
        return self._before_match

    def get_match(self) -> Callable[..., Any] | None:
        return self._match

    def get_reversed_paths(self) -> dict[int, str]:
        """Group position -> part name, for parts bound to a group."""
        return {
            position: part
            for part, position in self._paths.items()
            if isinstance(position, int) and not isinstance(position, bool)
        }

    # -- Reverse routing --

    def build(self, params: Mapping[str, Any]) -> str:
        """Build a URI for this route from part values.

        ``{name}`` parts and positional placeholders are filled from
        *params*; ``params`` for ``/:params`` may be a sequence.
        """
        if self._pattern.startswith("#"):
            msg = f"Cannot build a URI from raw regex route {self._pattern!r}"
            raise RouterError(msg)

        out: list[str] = []
        for token in _scan(self._pattern):
            if token.kind == "text":
                if count_groups(token.value) or "[" in token.value:
                    msg = f"Cannot build a URI from regex route {self._pattern!r}"
                    raise RouterError(msg)
                out.append(token.value)
            elif token.kind == "positional":
                part = _PLACEHOLDER_PARTS.get(token.value, token.value[1:])
                value = params.get(part)
                if token.value == ":params":
                    if value:
                        items = [value] if isinstance(value, str) else list(value)
                        out.append("/" + "/".join(str(v) for v in items))
                    continue
                if value is None:
                    msg = f"Missing value for {token.value!r} in route {self._pattern!r}"
                    raise RouterError(msg)
                out.append(f"/{value}")
            else:
                if token.value not in params:
                    msg = f"Missing value for {{{token.value}}} in route {self._pattern!r}"
                    raise RouterError(msg)
                out.append(str(params[token.value]))
        return "".join(out)
