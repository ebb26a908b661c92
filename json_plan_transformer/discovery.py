from __future__ import annotations

import logging
import re
from typing import Any, FrozenSet, List, Optional, Tuple

from .errors import ErrorReason
from .models import DiscoveryResult, RecordPathCandidate
from .paths import ROOT_POINTER, escape_pointer_segment, split_pointer

logger = logging.getLogger(__name__)

WELL_KNOWN_ARRAY_NAMES = frozenset({
    "items", "results", "data", "records", "rows", "entries",
    "products", "sales", "orders", "customers", "users",
    "forecast", "values", "list", "elements", "nodes",
})

STOP_WORDS = frozenset({
    "the", "and", "for", "from", "with", "into", "that", "this",
    "each", "all", "any", "csv", "json", "create", "make", "get",
    "extract", "transform", "convert", "array", "object", "field",
})

_WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)

# How many leading items are inspected to decide whether an array holds objects.
_OBJECT_SAMPLE = 3


def extract_goal_words(goal_text: Optional[str]) -> FrozenSet[str]:
    """Lower-cased goal tokens of three or more characters, minus stop words."""
    if not goal_text or not goal_text.strip():
        return frozenset()
    words = _WORD_RE.findall(goal_text.lower())
    return frozenset(w for w in words if len(w) >= 3 and w not in STOP_WORDS)


def _object_items(array: List[Any]) -> List[dict]:
    return [item for item in array[:_OBJECT_SAMPLE] if isinstance(item, dict)]


def _make_candidate(array: List[Any], path: str) -> RecordPathCandidate:
    objects = _object_items(array)
    field_count = max((len(o) for o in objects), default=0)
    return RecordPathCandidate(
        path=path,
        array_length=len(array),
        object_field_count=field_count,
        has_object_items=bool(objects),
        depth=len(split_pointer(path)),
    )


def score_candidate(candidate: RecordPathCandidate, goal_words: FrozenSet[str] = frozenset()) -> float:
    """Score how likely a candidate array is the document's record set."""
    score = 10.0

    length = candidate.array_length
    if length > 0:
        score += min(length, 20)
    if length >= 3:
        score += 10

    if candidate.has_object_items:
        score += 50
        score += min(candidate.object_field_count, 10) * 0.5
    elif length > 0:
        score -= 20

    segments = [s.lower() for s in split_pointer(candidate.path)]
    name = segments[-1] if segments else ""
    ancestors = segments[:-1]

    if name in WELL_KNOWN_ARRAY_NAMES:
        score += 30

    if goal_words and name:
        if name in goal_words:
            score += 25
        if any(word in name or name in word for word in goal_words):
            score += 10
    if goal_words and any(a in goal_words for a in ancestors):
        score += 10

    if candidate.depth > 1:
        score -= (candidate.depth - 1) * 5

    return score


def _is_eligible(candidate: RecordPathCandidate) -> bool:
    return (
        candidate.path == ROOT_POINTER
        or candidate.has_object_items
        or candidate.array_length == 0
    )


def find_array_candidates(data: Any, max_depth: int = 3) -> List[RecordPathCandidate]:
    """Find every array in the document that could hold records, in document order."""
    if isinstance(data, list):
        return [_make_candidate(data, ROOT_POINTER)]

    candidates: List[RecordPathCandidate] = []

    def walk(node: dict, parent: str, depth: int) -> None:
        if depth > max_depth:
            return
        for k, v in node.items():
            current = f"{parent}/{escape_pointer_segment(k)}"
            if isinstance(v, list):
                candidates.append(_make_candidate(v, current))
            elif isinstance(v, dict):
                walk(v, current, depth + 1)

    if isinstance(data, dict):
        walk(data, "", 0)
    return candidates


def rank_candidates(candidates: List[RecordPathCandidate]) -> List[RecordPathCandidate]:
    """Highest score first, then shallower paths, then document order."""
    indexed: List[Tuple[int, RecordPathCandidate]] = list(enumerate(candidates))
    indexed.sort(key=lambda pair: (-pair[1].score, pair[1].depth, pair[0]))
    return [c for _, c in indexed]


def discover(document: Any, goal_text: Optional[str] = None, max_depth: int = 3) -> DiscoveryResult:
    """Locate the best record path (array of row-like objects) in a document."""
    if not isinstance(document, (dict, list)):
        return DiscoveryResult(
            success=False,
            error="NoRecordsetFound: Input is not an object or array",
            reason=ErrorReason.NO_RECORDSET_FOUND,
        )

    goal_words = extract_goal_words(goal_text)
    candidates = [
        c.model_copy(update={"score": score_candidate(c, goal_words)})
        for c in find_array_candidates(document, max_depth=max_depth)
    ]
    ranked = rank_candidates(candidates)

    if not ranked:
        return DiscoveryResult(
            success=False,
            error="NoRecordsetFound: No arrays found in input",
            reason=ErrorReason.NO_RECORDSET_FOUND,
        )

    best = next((c for c in ranked if _is_eligible(c)), None)
    if best is None:
        return DiscoveryResult(
            success=False,
            candidates=ranked,
            error="NoRecordsetFound: Found arrays but none contain objects",
            reason=ErrorReason.NO_RECORDSET_FOUND,
        )

    logger.debug("Discovered record path %s (score=%.1f, %d candidates)", best.path, best.score, len(ranked))
    return DiscoveryResult(success=True, record_path=best.path, score=best.score, candidates=ranked)
