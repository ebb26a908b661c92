from __future__ import annotations

from typing import Any, Dict, Iterable, List

from .json_values import JsonKind, Row, is_whole_number, kind_of

SCHEMA_DRAFT = "https://json-schema.org/draft/2020-12/schema"


def json_type_of(value: Any) -> str:
    """JSON Schema type name of a value; whole numbers (3 or 3.0) are 'integer'."""
    kind = kind_of(value)
    if kind is JsonKind.NUMBER:
        return "integer" if is_whole_number(value) else "number"
    return kind.value


def infer_property_types(rows: Iterable[Row]) -> Dict[str, List[str]]:
    """Observed types per field, fields and types both in first-seen order."""
    types: Dict[str, List[str]] = {}
    for row in rows:
        for key, value in row.items():
            seen = types.setdefault(key, [])
            name = json_type_of(value)
            if name not in seen:
                seen.append(name)
    return types


def infer_schema(rows: Iterable[Row]) -> Dict[str, Any]:
    """Infer a permissive JSON Schema describing a list of rows.

    Properties are never required and additional properties are always
    allowed; a field seen with more than one type gets a type union.
    """
    properties: Dict[str, Any] = {}
    for key, seen in infer_property_types(rows).items():
        properties[key] = {"type": seen[0] if len(seen) == 1 else list(seen)}

    return {
        "$schema": SCHEMA_DRAFT,
        "type": "array",
        "items": {
            "type": "object",
            "properties": properties,
            "additionalProperties": True,
        },
    }
