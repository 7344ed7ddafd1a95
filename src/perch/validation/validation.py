"""Validation — runs (field, validator) pairs against a mapping or an object.

Usage::

    class SignupValidation(Validation):
        def initialize(self) -> None:
            self.add(["name", "email"], PresenceOf(cancel_on_fail=True))
            self.add("email", Email())
            self.set_filters("email", ["trim", "lower"])
            self.set_labels({"email": "E-mail"})

    messages = SignupValidation().validate(await request.form())
    if messages:
        return {"errors": messages.to_dict()}
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from perch.di.injectable import Injectable
from perch.errors import ValidationError
from perch.validation.messages import Message, Messages
from perch.validation.validator import Field, Validator
from perch.validation.validators import BUILTIN_VALIDATORS


def _read(source: Any, field: str) -> tuple[bool, Any]:
    """Look *field* up on a mapping, a ``get_<field>`` getter or an attribute."""
    if source is None:
        return False, None
    if isinstance(source, Mapping):
        return field in source, source.get(field)
    getter = getattr(source, f"get_{field}", None)
    if callable(getter):
        return True, getter()
    if hasattr(source, field):
        return True, getattr(source, field)
    return False, None


class Validation(Injectable):
    """A set of validation rules.

    Pairs run in the order they were added. ``allow_empty`` skips a
    pair when the value is empty; a failing validator with
    ``cancel_on_fail`` stops the run.
    """

    __slots__ = (
        "_data",
        "_default_messages",
        "_entity",
        "_filters",
        "_labels",
        "_messages",
        "_validators",
        "_values",
    )

    def __init__(self, validators: Iterable[tuple[Field, Validator]] | None = None) -> None:
        self._validators: list[tuple[Field, Validator]] = []
        self._filters: dict[str, Any] = {}
        self._labels: dict[str, str] = {}
        self._default_messages: dict[str, str] = {}
        self._messages = Messages()
        self._values: dict[str, Any] = {}
        self._data: Any = None
        self._entity: Any = None
        for field, validator in validators or ():
            self.add(field, validator)
        self.initialize()

    # -- Hooks --

    def initialize(self) -> None:
        """Hook for subclasses to add their rules."""

    def before_validation(self, data: Any, entity: Any, messages: Messages) -> bool | None:
        """Return ``False`` to skip validation."""
        return None

    def after_validation(self, data: Any, entity: Any, messages: Messages) -> None:
        """Called after every pair has run."""

    # -- Rules --

    def add(self, field: Field, validator: Validator) -> Validation:
        """Add *validator* for *field* (or for each field in a list)."""
        if not isinstance(validator, Validator):
            msg = f"Expected a Validator, got {type(validator).__name__}"
            raise ValidationError(msg)
        if isinstance(field, (list, tuple)):
            for single in field:
                self._validators.append((single, validator))
        elif isinstance(field, str):
            self._validators.append((field, validator))
        else:
            msg = "Field must be passed as a string or a list of strings"
            raise ValidationError(msg)
        return self

    def rule(self, field: Field, validator: Validator) -> Validation:
        return self.add(field, validator)

    def rules(self, field: Field, validators: Iterable[Validator]) -> Validation:
        for validator in validators:
            self.add(field, validator)
        return self

    def get_validators(self) -> list[tuple[Field, Validator]]:
        return list(self._validators)

    def set_validators(self, validators: Iterable[tuple[Field, Validator]]) -> Validation:
        self._validators = []
        for field, validator in validators:
            self.add(field, validator)
        return self

    # -- Filters and labels --

    def set_filters(self, field: Field, filters: Any) -> Validation:
        """Sanitize *field* through the ``filter`` service before validating it."""
        if isinstance(field, (list, tuple)):
            for single in field:
                self._filters[single] = filters
        else:
            self._filters[field] = filters
        return self

    def get_filters(self, field: str | None = None) -> Any:
        if field is None:
            return dict(self._filters)
        return self._filters.get(field)

    def set_labels(self, labels: Mapping[str, str]) -> Validation:
        self._labels.update(labels)
        return self

    def get_label(self, field: Field) -> str:
        if isinstance(field, (list, tuple)):
            return ", ".join(self.get_label(single) for single in field)
        return self._labels.get(field, field)

    def set_default_messages(self, messages: Mapping[str, str]) -> Validation:
        """Templates keyed by validator class name (``"PresenceOf"``...)."""
        self._default_messages.update(messages)
        return self

    def get_default_message(self, validator_type: str) -> str:
        return self._default_messages.get(validator_type, "")

    # -- Data --

    def get_data(self) -> Any:
        return self._data

    def get_entity(self) -> Any:
        return self._entity

    def set_entity(self, entity: Any) -> Validation:
        self._entity = entity
        return self

    def bind(self, entity: Any, data: Any) -> Validation:
        """Validate *data*, writing filtered values back to *entity*."""
        if data is None:
            msg = "Data to validate must be a mapping or an object"
            raise ValidationError(msg)
        self._entity = entity
        self._data = data
        self._values = {}
        return self

    def get_value(self, field: Field) -> Any:
        """The (filtered) value of *field*, cached for the current run."""
        if isinstance(field, (list, tuple)):
            return [self.get_value(single) for single in field]
        if field in self._values:
            return self._values[field]

        entity = self._entity
        data = self._data
        if data is None and entity is None:
            msg = "There is no data to validate"
            raise ValidationError(msg)
        found, value = _read(data, field)
        if not found:
            value = _read(entity, field)[1]

        filters = self._filters.get(field)
        if filters is not None:
            value = self.filter.sanitize(value, filters)
            if entity is not None:
                setter = getattr(entity, f"set_{field}", None)
                if callable(setter):
                    setter(value)
                else:
                    setattr(entity, field, value)

        self._values[field] = value
        return value

    # -- Messages --

    def get_messages(self) -> Messages:
        return self._messages

    def append_message(self, message: Message) -> Validation:
        self._messages.append_message(message)
        return self

    # -- Running --

    def validate(self, data: Any = None, entity: Any = None) -> Messages:
        """Run every pair against *data* (or *entity*) and return the messages."""
        if not self._validators:
            msg = "There are no validators to validate"
            raise ValidationError(msg)

        self._values = {}
        self._messages = Messages()
        if entity is not None:
            self._entity = entity
        if data is not None:
            self._data = data

        if self.before_validation(data, entity, self._messages) is False:
            return self._messages

        for field, validator in self._validators:
            if validator.is_allow_empty(self, field):
                continue
            if not validator.validate(self, field):
                if validator.get_option("cancel_on_fail", False, field):
                    break

        self.after_validation(data, entity, self._messages)
        return self._messages


def validate(data: Any, rules: Mapping[str, Iterable[Validator | str]]) -> Messages:
    """Validate *data* against ``{field: [validators]}`` in one call.

    Validators may be given as instances or by class name::

        messages = validate(form, {
            "title": [PresenceOf(), StringLength(max=200)],
            "email": ["PresenceOf", "Email"],
        })
    """
    validation = Validation()
    for field, validators in rules.items():
        for validator in validators:
            if isinstance(validator, str):
                try:
                    validator = BUILTIN_VALIDATORS[validator]()
                except KeyError:
                    msg = f"Unknown validator {validator!r}"
                    raise ValidationError(msg) from None
            validation.add(field, validator)
    return validation.validate(data)
