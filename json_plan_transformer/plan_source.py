"""Plan sources: where a TransformPlan comes from when the caller has none.

The transformer never talks to a language model itself. A
`CompletionPlanSource` wraps whatever text-completion callable the host
application provides (prompt in, text out), turns the reply into a
validated plan and retries only when another attempt can help.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence, Union

from .errors import ErrorReason, PlanParseError, PlanValidationError, TransformError
from .models import PLAN_VERSION, RecordPathCandidate, TransformPlan
from .validation import load_plan

logger = logging.getLogger(__name__)


class PlanErrorCategory(str, Enum):
    EMPTY_RESPONSE = "empty_response"
    NOT_JSON = "not_json"
    CONTRACT_INVALID = "contract_invalid"
    RECORD_PATH_NOT_FOUND = "record_path_not_found"
    PROVIDER_ERROR = "provider_error"


RETRYABLE_CATEGORIES = frozenset({
    PlanErrorCategory.NOT_JSON,
    PlanErrorCategory.CONTRACT_INVALID,
    PlanErrorCategory.PROVIDER_ERROR,
})


def is_retryable(category: PlanErrorCategory) -> bool:
    return category in RETRYABLE_CATEGORIES


class PlanSourceError(TransformError):
    reason = ErrorReason.PLAN_PARSE_ERROR

    def __init__(self, message: str, category: PlanErrorCategory):
        self.category = category
        super().__init__(message)


def classify_error(exc: BaseException) -> PlanErrorCategory:
    if isinstance(exc, PlanSourceError):
        return exc.category
    if isinstance(exc, PlanParseError):
        return PlanErrorCategory.NOT_JSON
    if isinstance(exc, PlanValidationError):
        return PlanErrorCategory.CONTRACT_INVALID
    return PlanErrorCategory.PROVIDER_ERROR


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

_FENCE_MARKERS = ("```json", "```JSON", "```")


def _strip_fences(text: str) -> str:
    for marker in _FENCE_MARKERS:
        text = text.replace(marker, "")
    return text.strip()


def _brace_span(text: str) -> Optional[str]:
    first = text.find("{")
    last = text.rfind("}")
    if first < 0 or last <= first:
        return None
    return text[first:last + 1]


def extract_json_payload(text: Optional[str]) -> Any:
    """Decode JSON from model output.

    Tries the text as-is, then with markdown code fences removed, then the
    span from the first '{' to the last '}'.
    """
    if text is None or not text.strip():
        raise PlanSourceError("Completion returned an empty response", PlanErrorCategory.EMPTY_RESPONSE)

    attempts = [text]
    stripped = _strip_fences(text)
    if stripped != text:
        attempts.append(stripped)
    span = _brace_span(text)
    if span is not None:
        attempts.append(span)

    for candidate in attempts:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    raise PlanParseError(f"Failed to parse JSON after {len(attempts)} strategies (length {len(text)})")


def with_default_record_path(payload: Any, default_record_path: Optional[str]) -> Any:
    """Copy of a decoded plan with `source.recordPath` filled in when it is absent."""
    if not isinstance(payload, Mapping) or not default_record_path:
        return payload
    source = payload.get("source")
    if isinstance(source, Mapping) and source.get("recordPath"):
        return payload
    filled = dict(payload)
    filled["source"] = {**(source if isinstance(source, Mapping) else {}), "recordPath": default_record_path}
    return filled


def parse_plan_text(text: Optional[str], default_record_path: Optional[str] = None) -> TransformPlan:
    """Decode and validate a plan from text.

    A plan that leaves out `source.recordPath` gets `default_record_path`.
    """
    return load_plan(with_default_record_path(extract_json_payload(text), default_record_path))


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

PLAN_INSTRUCTIONS = f"""You generate JSON transformation plans.
Reply with a single JSON object and nothing else.

A plan has:
- "planVersion": always "{PLAN_VERSION}"
- "source": {{"recordPath": JSON pointer to the record array, "/" for a root array}}
- "steps": operations applied in order

Operations:
- {{"op": "select", "fields": [{{"from": "/field", "as": "name"}}]}}
- {{"op": "filter", "where": {{"op": "gte", "left": {{"field": "/price"}}, "right": 20}}}}
  condition ops: eq, neq, gt, gte, lt, lte, contains, in, and, or, not
  "where" may also be an expression string such as "price >= 20 and status == 'open'"
- {{"op": "compute", "compute": [{{"as": "total", "expr": "price * qty"}}]}}
- {{"op": "mapValue", "map": [{{"from": "/code", "as": "label", "mapping": {{"A": "Active"}}, "default": "Unknown"}}]}}
- {{"op": "sort", "by": "/date", "dir": "asc"}}
- {{"op": "groupBy", "keys": ["/category"]}} must be followed by an aggregate step
- {{"op": "aggregate", "metrics": [{{"as": "total", "fn": "sum", "field": "/amount"}}]}}
  functions: sum, count, avg, min, max
- {{"op": "limit", "n": 10}}

Field paths are relative to one record. Only use fields that exist in the sample."""


def build_plan_prompt(
    goal_text: str,
    sample_row: Mapping[str, Any],
    candidates: Sequence[RecordPathCandidate] = (),
    previous_error: Optional[str] = None,
) -> str:
    parts = [PLAN_INSTRUCTIONS, "", f"Goal: {goal_text}"]
    if candidates:
        listing = ", ".join(f"{c.path} ({c.array_length} items)" for c in candidates[:5])
        parts.append(f"Candidate record paths: {listing}")
    parts.append("Sample record: " + json.dumps(dict(sample_row), ensure_ascii=False, default=str))
    if previous_error:
        parts.append(f"Your previous reply was rejected: {previous_error}. Return a corrected plan.")
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class PlanSource(Protocol):
    def try_get_plan(
        self,
        goal_text: str,
        sample_row: Mapping[str, Any],
        candidates: Sequence[RecordPathCandidate],
    ) -> Optional[TransformPlan]:
        ...


class StaticPlanSource:
    """Always offers the same plan, given as a model, a mapping or JSON text."""

    def __init__(self, plan: Union[TransformPlan, Mapping[str, Any], str]):
        self.plan = plan

    def try_get_plan(self, goal_text, sample_row, candidates) -> Optional[TransformPlan]:
        default_path = candidates[0].path if candidates else None
        if isinstance(self.plan, str):
            return parse_plan_text(self.plan, default_path)
        return load_plan(with_default_record_path(self.plan, default_path))


class CompletionPlanSource:
    """Asks a text-completion callable for a plan, retrying recoverable failures."""

    def __init__(self, complete: Callable[[str], str], max_attempts: int = 2):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.complete = complete
        self.max_attempts = max_attempts
        self.last_category: Optional[PlanErrorCategory] = None
        self.last_error: Optional[str] = None

    def _check_record_path(self, plan: TransformPlan, candidates: Sequence[RecordPathCandidate]) -> None:
        known = {c.path for c in candidates}
        if known and plan.source.record_path not in known:
            raise PlanSourceError(
                f"Record path '{plan.source.record_path}' is not one of: {', '.join(sorted(known))}",
                PlanErrorCategory.RECORD_PATH_NOT_FOUND,
            )

    def try_get_plan(self, goal_text, sample_row, candidates) -> Optional[TransformPlan]:
        self.last_category = None
        self.last_error = None
        default_path = candidates[0].path if candidates else None

        for attempt in range(1, self.max_attempts + 1):
            prompt = build_plan_prompt(goal_text, sample_row, candidates, self.last_error)
            try:
                text = self.complete(prompt)
                plan = parse_plan_text(text, default_path)
                self._check_record_path(plan, candidates)
                logger.info("Plan source produced a plan on attempt %d", attempt)
                return plan
            except TransformError as exc:
                category = classify_error(exc)
                self.last_error = str(exc)
            except Exception as exc:  # the completion callable may fail in any way
                category = PlanErrorCategory.PROVIDER_ERROR
                self.last_error = f"{type(exc).__name__}: {exc}"

            self.last_category = category
            logger.warning("Plan attempt %d/%d failed (%s): %s", attempt, self.max_attempts, category.value, self.last_error)
            if not is_retryable(category):
                break
        return None
