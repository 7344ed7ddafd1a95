"""Built-in sanitizers.

Each sanitizer takes one scalar value and returns the cleaned value.
Non-string input is converted with ``str()`` first, except by the
numeric sanitizers, which accept numbers as they are.
"""

import html
import re
from typing import Any

_INT_PREFIX_RE = re.compile(r"\s*([+-]?\d+)")
_NOT_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")
_NOT_ALPHA_RE = re.compile(r"[^A-Za-z]")
_NOT_EMAIL_RE = re.compile(r"[^A-Za-z0-9!#$%&'*+\-=?^_`{|}~@.\[\]]")
_NOT_INT_RE = re.compile(r"[^0-9+\-]")
_NOT_FLOAT_RE = re.compile(r"[^0-9+\-.]")
_NOT_URL_RE = re.compile(r"[^A-Za-z0-9$\-_.+!*'(),{}|\\^~\[\]`<>#%\";/?:@&=]")
_TAG_RE = re.compile(r"<[^>]*>?")
_WORD_RE = re.compile(r"(^|\s)(\S)")

_TRUE_VALUES = frozenset({"true", "on", "yes", "y", "1"})
_FALSE_VALUES = frozenset({"false", "off", "no", "n", "0"})


def _leading_int(text: str) -> int:
    match = _INT_PREFIX_RE.match(text)
    return int(match.group(1)) if match else 0


def to_int(value: Any) -> int:
    """Integer value: keeps ``+``/``-`` and digits, then reads the leading number."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return _leading_int(_NOT_INT_RE.sub("", str(value)))


def absint(value: Any) -> int:
    if isinstance(value, str):
        return abs(_leading_int(value))
    return abs(to_int(value))


def to_float(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    cleaned = _NOT_FLOAT_RE.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        match = re.match(r"[+-]?\d*\.?\d+", cleaned)
        return float(match.group()) if match else 0.0


def to_bool(value: Any) -> bool:
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return bool(value)


def alnum(value: Any) -> str:
    return _NOT_ALNUM_RE.sub("", str(value))


def alpha(value: Any) -> str:
    return _NOT_ALPHA_RE.sub("", str(value))


def email(value: Any) -> str:
    return _NOT_EMAIL_RE.sub("", str(value))


def url(value: Any) -> str:
    return _NOT_URL_RE.sub("", str(value))


def lower(value: Any) -> str:
    return str(value).lower()


def upper(value: Any) -> str:
    return str(value).upper()


def lower_first(value: Any) -> str:
    text = str(value)
    return text[:1].lower() + text[1:]


def upper_first(value: Any) -> str:
    text = str(value)
    return text[:1].upper() + text[1:]


def upper_words(value: Any) -> str:
    """Uppercase the first letter of every word, leaving the rest alone."""
    return _WORD_RE.sub(lambda m: m.group(1) + m.group(2).upper(), str(value))


def striptags(value: Any) -> str:
    return _TAG_RE.sub("", str(value))


def trim(value: Any) -> str:
    return str(value).strip()


def special(value: Any) -> str:
    """Encode ``'"<>&`` and control characters as numeric entities."""
    return "".join(
        f"&#{ord(ch)};" if ch in "'\"<>&" or ord(ch) < 32 else ch for ch in str(value)
    )


def special_full(value: Any) -> str:
    """Encode ``'"<>&`` as HTML entities."""
    return html.escape(str(value), quote=True).replace("&#x27;", "&#039;")


def string(value: Any) -> str:
    """Strip tags and encode quotes."""
    return striptags(value).replace("'", "&#39;").replace('"', "&#34;")


BUILTIN_SANITIZERS = {
    "absint": absint,
    "alnum": alnum,
    "alpha": alpha,
    "bool": to_bool,
    "email": email,
    "float": to_float,
    "int": to_int,
    "lower": lower,
    "lower_first": lower_first,
    "special": special,
    "special_full": special_full,
    "string": string,
    "striptags": striptags,
    "trim": trim,
    "upper": upper,
    "upper_first": upper_first,
    "upper_words": upper_words,
    "url": url,
}
