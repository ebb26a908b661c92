from __future__ import annotations

import json
import os
from typing import Any


def read_json_content(source) -> Any:
    """Decode a JSON document from a Gradio upload, an open file or a path.

    Gradio hands over objects whose `name` is the temp file path; the CLI
    passes the path itself.
    """
    if source is None:
        raise ValueError("No file uploaded.")

    if hasattr(source, 'read'):
        if hasattr(source, 'seek'):
            source.seek(0)
        content = source.read()
        if isinstance(content, bytes):
            content = content.decode('utf-8-sig')
        return json.loads(content)

    if isinstance(source, (str, os.PathLike)):
        path = os.fspath(source)
    else:
        path = source.name
    with open(path, 'r', encoding='utf-8-sig') as f:
        return json.load(f)


def read_json_text(text: str) -> Any:
    """Parse pasted JSON text; blank input means no document."""
    if text is None or not text.strip():
        return None
    return json.loads(text)
