"""Built-in validators.

Usage::

    validation = Validation()
    validation.add(["name", "email"], PresenceOf())
    validation.add("email", Email(allow_empty=True))
    validation.add("age", Between(minimum=18, maximum=99, message="Adults only"))
    validation.add("password", StringLength(min=8, max=128, cancel_on_fail=True))
    validation.add("password_confirm", Confirmation(with_="password"))
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from perch.errors import ValidationError
from perch.validation.validator import Field, Validator

if TYPE_CHECKING:
    from perch.validation.validation import Validation

_EMAIL_RE = re.compile(
    r"[A-Za-z0-9.!#$%&'*+/=?^_`{|}~\-]+"
    r"@[A-Za-z0-9](?:[A-Za-z0-9\-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9\-]{0,61}[A-Za-z0-9])?)+"
)
_DIGITS_RE = re.compile(r"[0-9]+")
_ALNUM_RE = re.compile(r"[A-Za-z0-9]+")
_NUMERIC_RE = re.compile(r"(^-?[0-9,]+(\.[0-9]+)?$)|(^-?[0-9.]+(,[0-9]+)?$)")
_SCHEME_RE = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")

# PHP-style date format characters understood by ``Date``
_DATE_TOKENS = {
    "d": "%d",
    "j": "%d",
    "m": "%m",
    "n": "%m",
    "Y": "%Y",
    "y": "%y",
    "H": "%H",
    "G": "%H",
    "i": "%M",
    "s": "%S",
    "D": "%a",
    "l": "%A",
    "M": "%b",
    "F": "%B",
    "A": "%p",
    "a": "%p",
}

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE, "u": 0}


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


class PresenceOf(Validator):
    """The value must be present and not an empty string."""

    template = "Field :field is required"

    def validate(self, validation: Validation, field: Field) -> bool:
        value = validation.get_value(field)
        if value is None or value == "":
            return self.fail(validation, field)
        return True


class Identical(Validator):
    """The value must equal the ``accepted`` (or ``value``) option."""

    template = "Field :field does not have the expected value"

    def validate(self, validation: Validation, field: Field) -> bool:
        if self.has_option("accepted"):
            expected = self.get_option("accepted", None, field)
        elif self.has_option("value"):
            expected = self.get_option("value", None, field)
        else:
            msg = "Identical needs an 'accepted' or 'value' option"
            raise ValidationError(msg)
        if validation.get_value(field) != expected:
            return self.fail(validation, field)
        return True


class Email(Validator):
    """The value must look like an email address."""

    template = "Field :field must be an email address"

    def validate(self, validation: Validation, field: Field) -> bool:
        value = validation.get_value(field)
        if not isinstance(value, str) or not _EMAIL_RE.fullmatch(value):
            return self.fail(validation, field)
        return True


class _DomainValidator(Validator):
    def _domain(self, field: Field) -> list[Any]:
        domain = self.get_option("domain", None, field)
        if not isinstance(domain, (list, tuple, set, frozenset)):
            msg = "Option 'domain' must be a list"
            raise ValidationError(msg)
        return list(domain)

    def _contains(self, domain: list[Any], value: Any, field: Field) -> bool:
        if self.get_option("strict", False, field):
            return any(value == item and type(value) is type(item) for item in domain)
        return value in domain or str(value) in {str(item) for item in domain}


class ExclusionIn(_DomainValidator):
    """The value must not be in the ``domain`` option."""

    template = "Field :field must not be a part of list: :domain"

    def validate(self, validation: Validation, field: Field) -> bool:
        domain = self._domain(field)
        if self._contains(domain, validation.get_value(field), field):
            return self.fail(validation, field, {":domain": ", ".join(map(str, domain))})
        return True


class InclusionIn(_DomainValidator):
    """The value must be in the ``domain`` option."""

    template = "Field :field must be a part of list: :domain"

    def validate(self, validation: Validation, field: Field) -> bool:
        domain = self._domain(field)
        if not self._contains(domain, validation.get_value(field), field):
            return self.fail(validation, field, {":domain": ", ".join(map(str, domain))})
        return True


class Regex(Validator):
    """The whole value must match the ``pattern`` option.

    The pattern may be a Python regex, a compiled pattern, or a
    delimited pattern with flags (``"/^[a-z]+$/i"``).
    """

    template = "Field :field does not match the required format"

    @staticmethod
    def _compile(pattern: Any) -> re.Pattern[str]:
        if isinstance(pattern, re.Pattern):
            return pattern
        if not isinstance(pattern, str) or not pattern:
            msg = "Option 'pattern' must be a non-empty string"
            raise ValidationError(msg)
        flags = 0
        end = pattern.rfind("/")
        if pattern.startswith("/") and end > 0 and all(ch in _REGEX_FLAGS for ch in pattern[end + 1 :]):
            for ch in pattern[end + 1 :]:
                flags |= _REGEX_FLAGS[ch]
            pattern = pattern[1:end]
        try:
            return re.compile(pattern, flags)
        except re.error as exc:
            msg = f"Invalid pattern {pattern!r}: {exc}"
            raise ValidationError(msg) from exc

    def validate(self, validation: Validation, field: Field) -> bool:
        regex = self._compile(self.get_option("pattern", None, field))
        value = validation.get_value(field)
        text = "" if value is None else str(value)
        match = regex.search(text)
        if match is None or match.group(0) != text:
            return self.fail(validation, field)
        return True


class StringLength(Validator):
    """The string length must fall within ``min`` and/or ``max``.

    ``included_minimum``/``included_maximum`` (default ``True``) make
    the bounds inclusive. ``message_minimum``/``message_maximum``
    override the two templates.
    """

    template_minimum = "Field :field must be at least :min characters long"
    template_maximum = "Field :field must not exceed :max characters long"

    def validate(self, validation: Validation, field: Field) -> bool:
        if not self.has_option("min") and not self.has_option("max"):
            msg = "StringLength needs a 'min' or 'max' option"
            raise ValidationError(msg)

        value = validation.get_value(field)
        length = len("" if value is None else str(value))

        maximum = self.get_option("max", None, field)
        if maximum is not None:
            inclusive = self.get_option("included_maximum", True, field)
            if length > maximum or (not inclusive and length == maximum):
                template = self.get_option("message_maximum", None, field) or self.template_maximum
                return self.fail(validation, field, {":max": maximum}, template)

        minimum = self.get_option("min", None, field)
        if minimum is not None:
            inclusive = self.get_option("included_minimum", True, field)
            if length < minimum or (not inclusive and length == minimum):
                template = self.get_option("message_minimum", None, field) or self.template_minimum
                return self.fail(validation, field, {":min": minimum}, template)

        return True


class Between(Validator):
    """The value must be within ``minimum`` and ``maximum``, inclusive."""

    template = "Field :field must be within the range of :min to :max"

    def validate(self, validation: Validation, field: Field) -> bool:
        minimum = self.get_option("minimum", None, field)
        maximum = self.get_option("maximum", None, field)
        if minimum is None or maximum is None:
            msg = "Between needs 'minimum' and 'maximum' options"
            raise ValidationError(msg)

        number = _to_number(validation.get_value(field))
        if number is None or number < minimum or number > maximum:
            return self.fail(validation, field, {":min": minimum, ":max": maximum})
        return True


class Confirmation(Validator):
    """The value must equal the value of the ``with_`` field.

    ``ignore_case`` compares case-insensitively; ``label_with`` names the
    other field in the message.
    """

    template = "Field :field must be the same as :with"

    def validate(self, validation: Validation, field: Field) -> bool:
        other = self.get_option("with_", None, field) or self.get_option("with", None, field)
        if not other:
            msg = "Confirmation needs a 'with_' option"
            raise ValidationError(msg)

        value = validation.get_value(field)
        other_value = validation.get_value(other)
        if self.get_option("ignore_case", False, field):
            value = str(value).lower() if value is not None else value
            other_value = str(other_value).lower() if other_value is not None else other_value

        if value != other_value:
            label_with = self.get_option("label_with", None, field) or validation.get_label(other)
            return self.fail(validation, field, {":with": label_with})
        return True


class Url(Validator):
    """The value must be an absolute URL."""

    template = "Field :field must be a url"

    def validate(self, validation: Validation, field: Field) -> bool:
        value = validation.get_value(field)
        if not isinstance(value, str) or not value or any(ch.isspace() for ch in value):
            return self.fail(validation, field)
        try:
            parts = urlsplit(value)
        except ValueError:
            return self.fail(validation, field)
        if not _SCHEME_RE.fullmatch(parts.scheme or ""):
            return self.fail(validation, field)
        if parts.scheme.lower() in ("http", "https", "ftp", "ftps", "ws", "wss") and not parts.netloc:
            return self.fail(validation, field)
        if not parts.netloc and not parts.path:
            return self.fail(validation, field)
        return True


class Digit(Validator):
    """The value must be an integer or a string of digits."""

    template = "Field :field must be numeric"

    def validate(self, validation: Validation, field: Field) -> bool:
        value = validation.get_value(field)
        if isinstance(value, int) and not isinstance(value, bool):
            return True
        if isinstance(value, str) and _DIGITS_RE.fullmatch(value):
            return True
        return self.fail(validation, field)


class Numericality(Validator):
    """The value must be a number, optionally with thousands separators."""

    template = "Field :field does not have a valid numeric format"

    def validate(self, validation: Validation, field: Field) -> bool:
        value = validation.get_value(field)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return True
        text = str(value if value is not None else "").replace(" ", "")
        if not _NUMERIC_RE.match(text):
            return self.fail(validation, field)
        return True


class Alnum(Validator):
    """The value must contain only ASCII letters and digits."""

    template = "Field :field must contain only letters and numbers"

    def validate(self, validation: Validation, field: Field) -> bool:
        value = validation.get_value(field)
        if not _ALNUM_RE.fullmatch(str(value if value is not None else "")):
            return self.fail(validation, field)
        return True


class Alpha(Validator):
    """The value must contain only letters (any script)."""

    template = "Field :field must contain only letters"

    def validate(self, validation: Validation, field: Field) -> bool:
        value = validation.get_value(field)
        text = str(value if value is not None else "")
        if not all(ch.isalpha() for ch in text):
            return self.fail(validation, field)
        return True


class Date(Validator):
    """The value must be a date in ``format`` (default ``Y-m-d``).

    ``format`` takes PHP-style letters (``d/m/Y H:i``) or a strftime
    format containing ``%``.
    """

    template = "Field :field is not a valid date"

    @staticmethod
    def to_strftime(fmt: str) -> str:
        if "%" in fmt:
            return fmt
        return "".join(_DATE_TOKENS.get(ch, ch) for ch in fmt)

    def validate(self, validation: Validation, field: Field) -> bool:
        fmt = self.to_strftime(self.get_option("format", "Y-m-d", field) or "Y-m-d")
        value = validation.get_value(field)
        if not isinstance(value, str):
            return self.fail(validation, field)
        try:
            datetime.strptime(value, fmt)
        except ValueError:
            return self.fail(validation, field)
        return True


class CreditCard(Validator):
    """The value must be a digit string passing the Luhn checksum."""

    template = "Field :field is not valid for a credit card number"

    @staticmethod
    def luhn(number: str) -> bool:
        if not _DIGITS_RE.fullmatch(number):
            return False
        total = 0
        for position, digit in enumerate(reversed(number)):
            n = int(digit)
            if position % 2 == 1:
                n *= 2
                if n > 9:
                    n -= 9
            total += n
        return total % 10 == 0

    def validate(self, validation: Validation, field: Field) -> bool:
        value = validation.get_value(field)
        if not self.luhn(str(value if value is not None else "")):
            return self.fail(validation, field)
        return True


class Callback(Validator):
    """Delegate to the ``callback`` option.

    The callback receives the entity (or the data, when there is no
    entity) and returns a bool, or another validator to run instead.
    """

    template = "Field :field must match the callback function"

    def validate(self, validation: Validation, field: Field) -> bool:
        callback: Callable[[Any], Any] | None = self.get_option("callback", None, field)
        if not callable(callback):
            msg = "Callback needs a callable 'callback' option"
            raise ValidationError(msg)

        subject = validation.get_entity()
        if subject is None:
            subject = validation.get_data()
        returned = callback(subject)

        if isinstance(returned, bool):
            if not returned:
                return self.fail(validation, field)
            return True
        if isinstance(returned, Validator):
            return returned.validate(validation, field)

        msg = "Callback must return a bool or a Validator"
        raise ValidationError(msg)


BUILTIN_VALIDATORS: Mapping[str, type[Validator]] = {
    cls.__name__: cls
    for cls in (
        Alnum,
        Alpha,
        Between,
        Callback,
        Confirmation,
        CreditCard,
        Date,
        Digit,
        Email,
        ExclusionIn,
        Identical,
        InclusionIn,
        Numericality,
        PresenceOf,
        Regex,
        StringLength,
        Url,
    )
}
