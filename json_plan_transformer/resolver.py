"""Field reference resolution.

Plans are often written by a language model, or by someone who speaks a
different language than the API that produced the data, so a plan may ask
for `nome` when the record says `name`, or `Price` when it says `price`.
`resolve_field` maps such a reference onto a field that actually exists in
a sample row, trying in order:

1. exact match
2. case-insensitive match
3. the alias table below (both directions, accent and case-insensitive)

Resolution never fails hard: an unknown reference comes back unchanged with
`was_resolved=False` and a warning, and readers treat it as absent.
"""

from __future__ import annotations

import unicodedata
from typing import Any, Dict, List, Optional, Tuple

from .accessors import resolve_pointer
from .json_values import MISSING
from .models import FieldResolution
from .paths import is_root, join_pointer, split_pointer

ALIAS_GROUPS: Tuple[Tuple[str, ...], ...] = (
    ("name", "nome", "nombre"),
    ("city", "cidade", "ciudad"),
    ("age", "idade", "edad"),
    ("date", "data", "fecha"),
    ("category", "categoria", "cat"),
    ("price", "preco", "preço", "precio", "valor"),
    ("quantity", "quantidade", "qty", "qtd", "cantidad"),
    ("description", "descricao", "descrição", "desc"),
    ("status", "estado", "situacao", "situação"),
    ("total", "sum", "soma"),
    ("id", "codigo", "código", "code"),
    ("value", "valor", "amount"),
    ("temperature", "temp", "temperatura"),
    ("max", "maximum", "maximo", "máximo"),
    ("min", "minimum", "minimo", "mínimo"),
)


def fold(text: str) -> str:
    """Case- and accent-insensitive comparison key ('Preço' -> 'preco')."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def _build_alias_index() -> Dict[str, List[str]]:
    index: Dict[str, List[str]] = {}
    for group in ALIAS_GROUPS:
        for word in group:
            bucket = index.setdefault(fold(word), [])
            for alias in group:
                if alias not in bucket:
                    bucket.append(alias)
    return index


_ALIAS_INDEX = _build_alias_index()


def aliases_for(name: str) -> List[str]:
    """Synonyms of `name` from every alias group it belongs to, in table order."""
    return list(_ALIAS_INDEX.get(fold(name), []))


def _match_case_insensitive(name: str, available: List[str]) -> Optional[str]:
    wanted = name.casefold()
    return next((f for f in available if f.casefold() == wanted), None)


def _match_alias(name: str, available: List[str]) -> Optional[str]:
    folded = {fold(f): f for f in reversed(available)}
    for alias in aliases_for(name):
        if alias in available:
            return alias
        match = folded.get(fold(alias))
        if match is not None:
            return match
    return None


def resolve_field(reference: str, sample_row: Dict[str, Any]) -> FieldResolution:
    """Resolve a field reference (bare name or JSON pointer) against a sample row."""
    reference = reference if isinstance(reference, str) else str(reference)
    segments = split_pointer(reference)
    if not segments:
        return FieldResolution(
            original_field=reference,
            resolved_field=reference,
            resolved_path=reference,
            was_resolved=False,
            warnings=[f"Field reference '{reference}' is empty"],
        )

    field_name, rest = segments[0], segments[1:]
    available = list(sample_row.keys()) if isinstance(sample_row, dict) else []
    warnings: List[str] = []

    resolved: Optional[str] = None
    if field_name in available:
        resolved = field_name
    else:
        resolved = _match_case_insensitive(field_name, available)
        if resolved is not None:
            warnings.append(f"Field '{field_name}' resolved to '{resolved}' via case-insensitive match")
        else:
            resolved = _match_alias(field_name, available)
            if resolved is not None:
                warnings.append(f"Field '{field_name}' resolved to '{resolved}' via alias")

    if resolved is None:
        listing = ", ".join(available) if available else "(none)"
        warnings.append(f"Field '{field_name}' not found in sample record. Available: {listing}")
        return FieldResolution(
            original_field=field_name,
            resolved_field=field_name,
            resolved_path=join_pointer([field_name] + rest),
            was_resolved=False,
            warnings=warnings,
        )

    return FieldResolution(
        original_field=field_name,
        resolved_field=resolved,
        resolved_path=join_pointer([resolved] + rest),
        was_resolved=True,
        warnings=warnings,
    )


def read_field(row: Dict[str, Any], resolution: FieldResolution) -> Any:
    """Read a resolved field from a row; absent values come back as MISSING."""
    if is_root(resolution.resolved_path):
        return MISSING
    return resolve_pointer(row, resolution.resolved_path)


def lookup(row: Dict[str, Any], reference: str) -> Tuple[Any, FieldResolution]:
    """Resolve `reference` against this very row and read it."""
    resolution = resolve_field(reference, row)
    return read_field(row, resolution), resolution


def read_value(row: Dict[str, Any], resolution: FieldResolution) -> Any:
    """Like `read_field`, but absent values come back as JSON null."""
    value = read_field(row, resolution)
    return None if value is MISSING else value
