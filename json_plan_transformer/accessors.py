from __future__ import annotations

from typing import Any

from .json_values import MISSING
from .paths import split_pointer


def resolve_pointer(data: Any, path: str, default: Any = MISSING) -> Any:
    """Retrieve a value from nested data using a JSON pointer.

    Objects are traversed by key and arrays by integer index. Returns
    `default` when any segment cannot be followed.
    """
    current = data
    for segment in split_pointer(path):
        if isinstance(current, dict):
            if segment not in current:
                return default
            current = current[segment]
        elif isinstance(current, list):
            try:
                index = int(segment)
            except ValueError:
                return default
            if index < 0 or index >= len(current):
                return default
            current = current[index]
        else:
            return default
    return current
