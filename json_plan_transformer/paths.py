from __future__ import annotations

from typing import Iterable, List

ROOT_POINTER = "/"
ROOT_ALIASES = (None, "", "/", "(root)")


def escape_pointer_segment(segment: str) -> str:
    """Escape a single key for JSON-Pointer representation.

    - '~' is escaped as '~0'
    - '/' is escaped as '~1' so keys like 'km/h' remain one segment.
    """
    if not isinstance(segment, str):
        segment = str(segment)
    return segment.replace('~', '~0').replace('/', '~1')


def unescape_pointer_segment(segment: str) -> str:
    if segment is None:
        return ''
    # Order matters: '~01' must decode to '~1', not '/'.
    return segment.replace('~1', '/').replace('~0', '~')


def is_root(path: str) -> bool:
    return path in ROOT_ALIASES or (isinstance(path, str) and path.strip('/') == '')


def split_pointer(path: str) -> List[str]:
    """Split a JSON pointer into unescaped segments.

    Bare names without a leading slash are treated as a single-level
    pointer, so 'price' and '/price' are equivalent.
    """
    if is_root(path):
        return []
    if not isinstance(path, str):
        path = str(path)
    if path.startswith('/'):
        path = path[1:]
    return [unescape_pointer_segment(p) for p in path.split('/') if p != '']


def join_pointer(segments: Iterable[str]) -> str:
    parts = [escape_pointer_segment(s) for s in segments]
    if not parts:
        return ROOT_POINTER
    return '/' + '/'.join(parts)


def last_segment(path: str) -> str:
    parts = split_pointer(path)
    return parts[-1] if parts else ''
