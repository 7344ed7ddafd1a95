"""Validation — validators, messages, and the rule runner.

Usage::

    from perch.validation import Email, PresenceOf, validate

    messages = validate(form, {
        "name": [PresenceOf()],
        "email": [PresenceOf(), Email()],
    })
    if messages:
        errors = messages.to_dict()
"""

from perch.validation.messages import Message, Messages
from perch.validation.validation import Validation, validate
from perch.validation.validator import Validator
from perch.validation.validators import (
    BUILTIN_VALIDATORS,
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

__all__ = [
    "BUILTIN_VALIDATORS",
    "Alnum",
    "Alpha",
    "Between",
    "Callback",
    "Confirmation",
    "CreditCard",
    "Date",
    "Digit",
    "Email",
    "ExclusionIn",
    "Identical",
    "InclusionIn",
    "Message",
    "Messages",
    "Numericality",
    "PresenceOf",
    "Regex",
    "StringLength",
    "Url",
    "Validation",
    "Validator",
    "validate",
]
