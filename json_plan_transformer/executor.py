"""Plan execution.

`execute` validates a plan, extracts rows at its record path and folds the
steps over them left to right. A malformed plan fails before any row is
touched; problems in the data itself (missing fields, non-numeric
operands) degrade to nulls, dropped rows and warnings.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import ErrorReason, PlanValidationError
from .expressions import evaluate_condition, evaluate_value, field_references, parse_expression
from .json_values import MISSING, Row, display_string, freeze, is_number, to_number
from .models import (
    AGGREGATE,
    COMPUTE,
    FILTER,
    GROUP_BY,
    LIMIT,
    MAP_VALUE,
    SELECT,
    SORT,
    AggregateStep,
    ComputeStep,
    Condition,
    ExecutionResult,
    FilterStep,
    GroupByStep,
    LimitStep,
    MapValueStep,
    MetricSpec,
    SelectStep,
    SortStep,
    TransformPlan,
)
from .normalizer import extract_and_normalize
from .paths import last_segment
from .resolver import read_field, read_value, resolve_field
from .validation import load_plan

logger = logging.getLogger(__name__)


@dataclass
class _State:
    rows: List[Row]
    # Set by groupBy, consumed by the aggregate that follows it.
    groups: Optional[List[Tuple[Row, List[Row]]]] = None


def _sample(rows: List[Row]) -> Row:
    return rows[0] if rows else {}


def _resolution_warnings(references: Iterable[str], sample: Row) -> List[str]:
    warnings: List[str] = []
    for ref in references:
        warnings.extend(resolve_field(ref, sample).warnings)
    return warnings


def _condition_fields(condition: Union[str, Condition]) -> List[str]:
    if isinstance(condition, str):
        return field_references(parse_expression(condition))
    found: List[str] = []
    for operand in (condition.left, condition.right):
        if isinstance(operand, dict) and isinstance(operand.get("field"), str):
            found.append(operand["field"])
    for item in condition.items or []:
        found.extend(_condition_fields(item))
    return found


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def _select(step: SelectStep, state: _State, warnings: List[str]) -> None:
    if not state.rows:
        return
    sample = _sample(state.rows)
    resolved = []
    for spec in step.fields:
        resolution = resolve_field(spec.from_, sample)
        warnings.extend(resolution.warnings)
        resolved.append((spec.as_, resolution))
    state.rows = [{name: read_value(row, res) for name, res in resolved} for row in state.rows]


def _filter(step: FilterStep, state: _State, warnings: List[str]) -> None:
    if state.rows:
        warnings.extend(_resolution_warnings(_condition_fields(step.where), _sample(state.rows)))
    kept = [row for row in state.rows if evaluate_condition(step.where, row) is True]
    dropped = len(state.rows) - len(kept)
    if dropped:
        logger.debug("filter dropped %d of %d rows", dropped, len(state.rows))
    state.rows = kept


def _compute(step: ComputeStep, state: _State, warnings: List[str]) -> None:
    if not state.rows:
        return
    sample = dict(_sample(state.rows))
    for spec in step.compute:
        refs = [r for r in field_references(parse_expression(spec.expr)) if r not in sample]
        warnings.extend(_resolution_warnings(refs, sample))
        # Later specs may reference earlier outputs.
        sample[spec.as_] = None

    out: List[Row] = []
    for row in state.rows:
        new_row = dict(row)
        for spec in step.compute:
            new_row[spec.as_] = evaluate_value(spec.expr, new_row)
        out.append(new_row)
    state.rows = out


def _map_value(step: MapValueStep, state: _State, warnings: List[str]) -> None:
    if not state.rows:
        return
    sample = _sample(state.rows)
    resolved = []
    for spec in step.map:
        resolution = resolve_field(spec.from_, sample)
        warnings.extend(resolution.warnings)
        resolved.append((spec, resolution))

    out: List[Row] = []
    for row in state.rows:
        new_row = dict(row)
        for spec, resolution in resolved:
            source = read_value(row, resolution)
            key = display_string(source)
            if key in spec.mapping:
                new_row[spec.as_] = spec.mapping[key]
            elif "default" in spec.model_fields_set:
                new_row[spec.as_] = spec.default
            else:
                new_row[spec.as_] = source
        out.append(new_row)
    state.rows = out


# Mixed scalar types order as number < string < boolean.
_SORT_RANK = {"number": 0, "string": 1, "boolean": 2}


def _sort_key(value: Any) -> Optional[Tuple[int, Any]]:
    if is_number(value):
        return (_SORT_RANK["number"], value)
    if isinstance(value, str):
        return (_SORT_RANK["string"], value)
    if isinstance(value, bool):
        return (_SORT_RANK["boolean"], value)
    return None


def _sort(step: SortStep, state: _State, warnings: List[str]) -> None:
    if not state.rows:
        return
    resolution = resolve_field(step.by, _sample(state.rows))
    warnings.extend(resolution.warnings)

    comparable: List[Tuple[Tuple[int, Any], Row]] = []
    trailing: List[Row] = []
    for row in state.rows:
        key = _sort_key(read_field(row, resolution))
        if key is None:
            trailing.append(row)
        else:
            comparable.append((key, row))

    comparable.sort(key=lambda pair: pair[0], reverse=step.dir == "desc")
    state.rows = [row for _, row in comparable] + trailing


def _group_by(step: GroupByStep, state: _State, warnings: List[str]) -> None:
    sample = _sample(state.rows)
    resolved = []
    for key in step.keys:
        resolution = resolve_field(key, sample)
        if state.rows:
            warnings.extend(resolution.warnings)
        resolved.append((last_segment(resolution.resolved_path) or key, resolution))

    groups: Dict[Any, Tuple[Row, List[Row]]] = {}
    for row in state.rows:
        values = [read_value(row, res) for _, res in resolved]
        group_id = tuple(freeze(v) for v in values)
        if group_id not in groups:
            key_row = {name: value for (name, _), value in zip(resolved, values)}
            groups[group_id] = (key_row, [])
        groups[group_id][1].append(row)

    state.groups = list(groups.values())
    logger.debug("groupBy produced %d groups", len(state.groups))


def _metric_values(metric: MetricSpec, rows: List[Row], sample: Row) -> List[Any]:
    if metric.expr:
        return [evaluate_value(metric.expr, row) for row in rows]
    resolution = resolve_field(metric.field, sample)
    return [read_field(row, resolution) for row in rows]


def _numbers(values: Iterable[Any]) -> List[Union[int, float]]:
    out = []
    for value in values:
        if value is MISSING or isinstance(value, bool):
            continue
        number = to_number(value)
        if number is not None:
            out.append(number)
    return out


def compute_metric(fn: str, values: List[Any], row_count: int) -> Any:
    """Apply one aggregate function; non-numeric values are ignored."""
    if fn == "count":
        return row_count
    numbers = _numbers(values)
    if fn in ("sum", "avg"):
        if not numbers:
            return 0 if fn == "sum" else None
        try:
            total = sum(numbers)
            result = total if fn == "sum" else total / len(numbers)
        except OverflowError:
            logger.debug("%s overflowed over %d values", fn, len(numbers))
            return None
        if isinstance(result, float) and not math.isfinite(result):
            return None
        return result
    if not numbers:
        return None
    if fn == "min":
        return min(numbers)
    if fn == "max":
        return max(numbers)
    raise ValueError(f"Unknown aggregate function: {fn}")


def _aggregate(step: AggregateStep, state: _State, warnings: List[str]) -> None:
    sample = _sample(state.rows)
    if state.rows:
        refs = [m.field for m in step.metrics if m.field and not m.expr and m.fn != "count"]
        warnings.extend(_resolution_warnings(refs, sample))

    groups = state.groups if state.groups is not None else [({}, state.rows)]
    out: List[Row] = []
    for key_row, rows in groups:
        result = dict(key_row)
        for metric in step.metrics:
            values = [] if metric.fn == "count" else _metric_values(metric, rows, sample)
            result[metric.as_] = compute_metric(metric.fn, values, len(rows))
        out.append(result)

    state.rows = out
    state.groups = None


def _limit(step: LimitStep, state: _State, warnings: List[str]) -> None:
    state.rows = state.rows[: step.n]


_STEP_HANDLERS: Dict[str, Callable[[Any, _State, List[str]], None]] = {
    SELECT: _select,
    FILTER: _filter,
    COMPUTE: _compute,
    MAP_VALUE: _map_value,
    SORT: _sort,
    GROUP_BY: _group_by,
    AGGREGATE: _aggregate,
    LIMIT: _limit,
}


def _dedupe(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def run_steps(plan: TransformPlan, rows: List[Row]) -> Tuple[List[Row], List[str]]:
    """Fold a validated plan's steps over already-normalized rows."""
    state = _State(rows=list(rows))
    warnings: List[str] = []
    for i, step in enumerate(plan.steps):
        _STEP_HANDLERS[step.op](step, state, warnings)
        logger.debug("step %d (%s) -> %d rows", i, step.op, len(state.rows))
    return state.rows, _dedupe(warnings)


def execute(
    plan: Union[TransformPlan, Mapping[str, Any]],
    document: Any,
    max_rows: Optional[int] = None,
) -> ExecutionResult:
    """Run `plan` against `document`.

    `max_rows` bounds the number of extracted input rows (0 or None means
    unbounded); extra rows are dropped with a warning.
    """
    try:
        plan = load_plan(plan)
    except PlanValidationError as exc:
        return ExecutionResult(
            success=False,
            error=f"PlanInvalid: {exc}",
            reason=ErrorReason.PLAN_INVALID,
        )

    extracted = extract_and_normalize(document, plan.source.record_path)
    if not extracted.success:
        logger.warning("Extraction failed for %s: %s", plan.source.record_path, extracted.error)
        return ExecutionResult(success=False, error=extracted.error, reason=extracted.reason)

    rows = extracted.rows
    warnings = list(extracted.warnings)
    logger.debug("Extracted %d rows from %s", len(rows), plan.source.record_path)

    if max_rows and len(rows) > max_rows:
        warnings.append(f"Input truncated to {max_rows} of {len(rows)} rows")
        rows = rows[:max_rows]

    out_rows, step_warnings = run_steps(plan, rows)
    return ExecutionResult(success=True, rows=out_rows, warnings=_dedupe(warnings + step_warnings))
