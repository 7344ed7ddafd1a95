"""Validator base class.

A validator checks one field of the data held by a ``Validation``. On
failure it appends a ``Message`` to the validation and returns ``False``.

Options common to every validator:

``message``         template overriding the default one
``label``           name shown for ``:field`` instead of the field name
``allow_empty``     skip the check when the value is empty
``cancel_on_fail``  stop the whole run when this check fails
``code``            numeric code attached to the message

Any option may be a mapping of field name -> value to configure each
field separately::

    PresenceOf(message={"name": "Name please", "email": "Email please"})
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, TypeAlias

from perch.validation.messages import Message

if TYPE_CHECKING:
    from perch.validation.validation import Validation

Field: TypeAlias = str | list[str]


class Validator:
    """Base for all validators."""

    template = "Field :field is not valid"

    def __init__(self, options: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        self._options: dict[str, Any] = {**(options or {}), **kwargs}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._options!r})"

    # -- Options --

    def has_option(self, key: str) -> bool:
        return key in self._options

    def get_option(self, key: str, default: Any = None, field: Field | None = None) -> Any:
        """The option *key*, resolved for *field* when it is a per-field mapping."""
        value = self._options.get(key, default)
        if isinstance(field, str) and isinstance(value, Mapping):
            return value.get(field, default)
        return value

    def set_option(self, key: str, value: Any) -> Validator:
        self._options[key] = value
        return self

    # -- Messages --

    def get_template(self, field: Field | None = None, validation: Validation | None = None) -> str:
        """The message option, else the validation's default for this type, else ``template``."""
        message = self.get_option("message", None, field)
        if message:
            return message
        if validation is not None:
            default = validation.get_default_message(type(self).__name__)
            if default:
                return default
        return self.template

    def get_label(self, validation: Validation, field: Field) -> str:
        label = self.get_option("label", None, field)
        if label:
            return ", ".join(label) if isinstance(label, list) else str(label)
        return validation.get_label(field)

    def message_factory(
        self,
        validation: Validation,
        field: Field,
        replacements: Mapping[str, Any] | None = None,
        template: str | None = None,
    ) -> Message:
        """Build the failure message, filling ``:field`` and *replacements*."""
        text = template or self.get_template(field, validation)
        values = {":field": self.get_label(validation, field), **(replacements or {})}
        # Longest placeholders first so ":max" never eats ":maximum"
        for placeholder in sorted(values, key=len, reverse=True):
            text = text.replace(placeholder, str(values[placeholder]))
        return Message(
            text,
            field=list(field) if isinstance(field, list) else field,
            type=type(self).__name__,
            code=int(self.get_option("code", 0, field) or 0),
        )

    def fail(self, validation: Validation, field: Field, replacements: Mapping[str, Any] | None = None, template: str | None = None) -> bool:
        """Append the failure message to *validation* and return ``False``."""
        validation.append_message(self.message_factory(validation, field, replacements, template))
        return False

    # -- Checking --

    def is_allow_empty(self, validation: Validation, field: Field) -> bool:
        """Whether the check should be skipped because the value is empty."""
        if isinstance(field, list):
            return any(self.is_allow_empty(validation, name) for name in field)
        if not self.get_option("allow_empty", False, field):
            return False
        value = validation.get_value(field)
        return value is None or value == "" or value == [] or value == {}

    def validate(self, validation: Validation, field: Field) -> bool:
        """Check *field*; append a message and return ``False`` on failure."""
        raise NotImplementedError
