from __future__ import annotations

import math
from enum import Enum
from typing import Any, Dict, Hashable, Optional, Union

Row = Dict[str, Any]
Number = Union[int, float]


class JsonKind(str, Enum):
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


class _Missing:
    """Marker for a value that is absent, as opposed to JSON null."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def kind_of(value: Any) -> JsonKind:
    """Classify a decoded JSON value.

    `bool` is checked before numbers because it is an `int` subclass.
    Tuples are accepted as arrays so frozen rows can be classified too.
    """
    if value is None:
        return JsonKind.NULL
    if isinstance(value, bool):
        return JsonKind.BOOLEAN
    if isinstance(value, (int, float)):
        return JsonKind.NUMBER
    if isinstance(value, str):
        return JsonKind.STRING
    if isinstance(value, (list, tuple)):
        return JsonKind.ARRAY
    if isinstance(value, dict):
        return JsonKind.OBJECT
    raise TypeError(f"Not a JSON value: {type(value).__name__}")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_whole_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value) and value.is_integer()


def to_number(value: Any) -> Optional[Number]:
    """Coerce a JSON value to a number.

    Numbers pass through, numeric strings are parsed, everything else
    (booleans included) yields None.
    """
    if is_number(value):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            parsed = float(text)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def freeze(value: Any) -> Hashable:
    """Build a hashable key that follows JSON value equality.

    Numbers compare numerically (1 == 1.0), booleans never equal numbers
    and object keys are unordered.
    """
    kind = kind_of(value)
    if kind is JsonKind.NULL:
        return ("null",)
    if kind is JsonKind.BOOLEAN:
        return ("boolean", value)
    if kind is JsonKind.NUMBER:
        return ("number", value)
    if kind is JsonKind.STRING:
        return ("string", value)
    if kind is JsonKind.ARRAY:
        return ("array", tuple(freeze(item) for item in value))
    return ("object", frozenset((k, freeze(v)) for k, v in value.items()))


def json_equal(left: Any, right: Any) -> bool:
    return freeze(left) == freeze(right)


def display_string(value: Any) -> str:
    """String form used for lookups keyed by text (mapValue)."""
    kind = kind_of(value)
    if kind is JsonKind.NULL:
        return ""
    if kind is JsonKind.BOOLEAN:
        return "true" if value else "false"
    if kind is JsonKind.NUMBER and is_whole_number(value):
        return str(int(value))
    return str(value)
