from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .accessors import resolve_pointer
from .errors import ErrorReason
from .json_values import MISSING, JsonKind, kind_of
from .models import NormalizationResult
from .paths import is_root

logger = logging.getLogger(__name__)

PRIMITIVE_FIELD = "value"


def _rows_from_array(items: List[Any], warnings: List[str]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    wrapped = skipped = 0
    for item in items:
        kind = kind_of(item)
        if kind is JsonKind.OBJECT:
            rows.append(dict(item))
        elif kind is JsonKind.NULL:
            skipped += 1
        else:
            rows.append({PRIMITIVE_FIELD: item})
            wrapped += 1
    if wrapped:
        warnings.append(f"{wrapped} non-object element(s) wrapped as '{PRIMITIVE_FIELD}' rows")
    if skipped:
        warnings.append(f"{skipped} null element(s) skipped")
    return rows


def _result(rows: List[Dict[str, Any]], warnings: List[str]) -> NormalizationResult:
    return NormalizationResult(
        success=True,
        rows=rows,
        sample_row=dict(rows[0]) if rows else {},
        warnings=warnings,
    )


def normalize(document: Any, record_path: Optional[str] = None) -> NormalizationResult:
    """Turn a document (or the value at `record_path`) into an ordered row list.

    - list            -> one row per element
    - dict            -> a single row
    - null            -> no rows (still a success)
    - other primitive -> WrongShape
    """
    if not is_root(record_path):
        return extract_and_normalize(document, record_path)

    warnings: List[str] = []
    kind = kind_of(document)
    if kind is JsonKind.ARRAY:
        return _result(_rows_from_array(list(document), warnings), warnings)
    if kind is JsonKind.OBJECT:
        return _result([dict(document)], warnings)
    if kind is JsonKind.NULL:
        return _result([], warnings)
    return NormalizationResult(
        success=False,
        error=f"WrongShape: Cannot normalize {kind.value} to rows. Expected array, object, or null.",
        reason=ErrorReason.WRONG_SHAPE,
    )


def extract_and_normalize(document: Any, record_path: str) -> NormalizationResult:
    """Navigate to `record_path` (a JSON pointer) and normalize what is there."""
    if is_root(record_path):
        return normalize(document)

    target = resolve_pointer(document, record_path)
    if target is MISSING:
        logger.debug("Record path %s not found in document", record_path)
        return NormalizationResult(
            success=False,
            error=f"WrongShape: Path '{record_path}' not found in input",
            reason=ErrorReason.WRONG_SHAPE,
        )
    return normalize(target)
