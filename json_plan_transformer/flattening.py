from __future__ import annotations

import csv
import io
import json
import os
from typing import Any, Dict, List, Optional

from .json_values import Row

EXPORT_FORMATS = ("CSV", "JSON")


def flatten_cell(value: Any) -> Any:
    """Make a row value fit in one CSV cell."""
    if value is None:
        return ""
    if isinstance(value, list):
        if all(isinstance(v, (str, int, float, bool)) or v is None for v in value):
            return ", ".join("" if v is None else _scalar_text(v) for v in value)
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return _scalar_text(value)
    return value


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def collect_headers(rows: List[Row]) -> List[str]:
    """Union of row keys in first-seen order."""
    headers: List[str] = []
    seen = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                headers.append(key)
    return headers


def flatten_rows(rows: List[Row], headers: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    headers = headers if headers is not None else collect_headers(rows)
    return [{h: flatten_cell(row.get(h)) for h in headers} for row in rows]


def _write_csv(handle, rows: List[Row]) -> None:
    headers = collect_headers(rows)
    writer = csv.DictWriter(handle, fieldnames=headers)
    writer.writeheader()
    writer.writerows(flatten_rows(rows, headers))


def rows_to_csv(rows: List[Row], limit: Optional[int] = None) -> str:
    """Render rows as CSV text; `limit` keeps only the first rows."""
    if limit is not None:
        rows = rows[: max(0, int(limit))]
    buffer = io.StringIO()
    _write_csv(buffer, rows)
    return buffer.getvalue()


def export_file_name(file_name: Optional[str], output_format: str) -> str:
    if not file_name or not file_name.strip():
        file_name = "output"
    file_name = file_name.strip()
    ext = f".{output_format.lower()}"
    if not file_name.lower().endswith(ext):
        file_name += ext
    return file_name


def write_export(rows: List[Row], output_format: str, file_name: Optional[str], directory: str) -> str:
    """Write rows as CSV or JSON into `directory` and return the file path."""
    output_format = (output_format or "CSV").upper()
    if output_format not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {output_format}")

    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, export_file_name(file_name, output_format))

    if output_format == "CSV":
        with open(path, 'w', newline='', encoding='utf-8') as f:
            _write_csv(f, rows)
    else:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(rows, f, indent=2, ensure_ascii=False)
    return path
