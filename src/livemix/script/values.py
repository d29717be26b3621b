"""Typed property values.

Scripts tag every property value with a type token: ``int``, ``float``,
``string`` or the name of a registered enumeration (e.g. ``GstOrientation``).
Type tokens are checked when the script is compiled; values are coerced when
the property is applied, so a bad value only fails the action that carries it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import PropertyValueError, ScriptSyntaxError

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

SCALAR_TYPES = ("int", "float", "string")


class VideoOrientation(Enum):
    """Orientation methods understood by flip elements."""

    IDENTITY = 0
    ROTATE_90R = 1
    ROTATE_180 = 2
    ROTATE_90L = 3


# Script spellings accepted for each enumeration member, besides its index
_ORIENTATION_ALIASES = {
    "identity": VideoOrientation.IDENTITY,
    "90r": VideoOrientation.ROTATE_90R,
    "180": VideoOrientation.ROTATE_180,
    "90l": VideoOrientation.ROTATE_90L,
}

ENUMERATIONS: dict[str, tuple[type[Enum], dict[str, Enum]]] = {
    "GstOrientation": (VideoOrientation, _ORIENTATION_ALIASES),
}


@dataclass(frozen=True)
class TypedValue:
    """A property value together with the type token it was coerced from."""

    type_name: str
    value: Any

    def __str__(self) -> str:
        if isinstance(self.value, Enum):
            return f"{self.type_name}.{self.value.name}"
        return f"{self.type_name}:{self.value}"


def check_type_name(type_name: str) -> str:
    """Validate a type token at compile time.

    Raises:
        ScriptSyntaxError: if the token is neither a scalar type nor a
            registered enumeration
    """
    if type_name in SCALAR_TYPES or type_name in ENUMERATIONS:
        return type_name
    raise ScriptSyntaxError(f"Unknown property type: {type_name}")


def _coerce_enum(type_name: str, raw: str) -> Enum:
    enum_cls, aliases = ENUMERATIONS[type_name]
    token = raw.strip()
    # "180" is both an alias and a digit string, so aliases win
    member = aliases.get(token.lower())
    if member is not None:
        return member
    if token.lstrip("-").isdigit():
        try:
            return enum_cls(int(token))
        except ValueError:
            raise PropertyValueError(f"Unknown {type_name} index: {token}") from None
    member = enum_cls.__members__.get(token.upper())
    if member is None:
        raise PropertyValueError(f"Unknown {type_name} value: {token}")
    return member


def coerce_value(type_name: str, raw: str) -> TypedValue:
    """Parse ``raw`` according to ``type_name``.

    Raises:
        PropertyValueError: if the value cannot be parsed or is out of range
        ScriptSyntaxError: if ``type_name`` is not a known type
    """
    check_type_name(type_name)

    if type_name == "string":
        return TypedValue(type_name, raw)

    if type_name == "int":
        try:
            value = int(raw.strip())
        except ValueError:
            raise PropertyValueError(f"Unable to parse {raw!r} as int") from None
        if not INT32_MIN <= value <= INT32_MAX:
            raise PropertyValueError(f"Value {value} out of range for int")
        return TypedValue(type_name, value)

    if type_name == "float":
        try:
            value = float(raw.strip())
        except ValueError:
            raise PropertyValueError(f"Unable to parse {raw!r} as float") from None
        if not math.isfinite(value):
            raise PropertyValueError(f"Value {raw!r} out of range for float")
        return TypedValue(type_name, value)

    return TypedValue(type_name, _coerce_enum(type_name, raw))


def parse_number(token: str, what: str) -> float:
    """Parse a numeric script literal, raising ScriptSyntaxError when malformed."""
    try:
        value = float(token)
    except ValueError:
        raise ScriptSyntaxError(f"Malformed numeric literal for {what}: {token}") from None
    if not math.isfinite(value):
        raise ScriptSyntaxError(f"Non-finite numeric literal for {what}: {token}")
    return value
