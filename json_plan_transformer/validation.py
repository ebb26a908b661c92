from __future__ import annotations

import logging
from typing import Any, List, Mapping, Union

from pydantic import ValidationError

from .errors import ExpressionSyntaxError, PlanValidationError
from .expressions import parse_expression
from .models import (
    AGGREGATE,
    AGGREGATE_FUNCTIONS,
    COMPARISON_OPS,
    GROUP_BY,
    KNOWN_OPS,
    LOGICAL_OPS,
    PLAN_VERSION,
    AggregateStep,
    ComputeStep,
    Condition,
    FilterStep,
    GroupByStep,
    LimitStep,
    MapValueStep,
    SelectStep,
    SortStep,
    TransformPlan,
)

logger = logging.getLogger(__name__)

SORT_DIRECTIONS = ("asc", "desc")


def _format_pydantic_error(err: dict) -> str:
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))


def _check_raw_steps(data: Mapping[str, Any]) -> List[str]:
    """Report unknown or missing op tags before pydantic sees the steps."""
    steps = data.get("steps", [])
    if steps is None:
        return []
    if not isinstance(steps, list):
        return ["steps must be an array"]

    errors: List[str] = []
    for i, step in enumerate(steps):
        prefix = f"steps[{i}]"
        if not isinstance(step, Mapping):
            errors.append(f"{prefix} must be an object")
            continue
        op = step.get("op")
        if not op:
            errors.append(f"{prefix}.op is required")
        elif op not in KNOWN_OPS:
            errors.append(f"{prefix}.op '{op}' is not valid. Expected one of: {', '.join(KNOWN_OPS)}")
    return errors


def parse_plan(data: Union[TransformPlan, Mapping[str, Any]]) -> TransformPlan:
    """Build a TransformPlan from decoded JSON. Raises PlanValidationError."""
    if isinstance(data, TransformPlan):
        return data
    if not isinstance(data, Mapping):
        raise PlanValidationError(["Plan must be a JSON object"])

    errors = _check_raw_steps(data)
    if errors:
        raise PlanValidationError(errors)

    payload = dict(data)
    if payload.get("steps") is None:
        payload["steps"] = []
    try:
        return TransformPlan.model_validate(payload)
    except ValidationError as exc:
        raise PlanValidationError([_format_pydantic_error(e) for e in exc.errors()]) from exc


def _check_expression(expr: str, prefix: str, errors: List[str]) -> None:
    if not expr or not expr.strip():
        errors.append(f"{prefix} requires 'expr'")
        return
    try:
        parse_expression(expr)
    except ExpressionSyntaxError as exc:
        errors.append(f"{prefix}: invalid expression: {exc}")


def _check_unique(names: List[str], prefix: str, errors: List[str]) -> None:
    seen = set()
    for name in names:
        if name in seen:
            errors.append(f"{prefix}: duplicate output name '{name}'")
        seen.add(name)


def _check_condition(condition: Union[str, Condition], prefix: str, errors: List[str]) -> None:
    if isinstance(condition, str):
        _check_expression(condition, prefix, errors)
        return

    op = condition.op
    items = condition.items or []
    if op in LOGICAL_OPS:
        if op == "not" and len(items) != 1:
            errors.append(f"{prefix}: 'not' requires exactly one item")
        elif op != "not" and not items:
            errors.append(f"{prefix}: '{op}' requires 'items'")
        for j, item in enumerate(items):
            _check_condition(item, f"{prefix}.items[{j}]", errors)
        return

    if op not in COMPARISON_OPS:
        errors.append(
            f"{prefix}.op '{op}' is not valid. Expected one of: "
            f"{', '.join(COMPARISON_OPS + LOGICAL_OPS)}"
        )
        return

    provided = condition.model_fields_set
    for side in ("left", "right"):
        if side not in provided:
            errors.append(f"{prefix}: '{op}' requires '{side}'")
    if op == "in" and "right" in provided and not isinstance(condition.right, list):
        errors.append(f"{prefix}: 'in' requires an array on the right")
    for side in ("left", "right"):
        operand = getattr(condition, side)
        if isinstance(operand, dict) and "field" in operand and not operand["field"]:
            errors.append(f"{prefix}.{side}: field reference is empty")


def _check_step(plan: TransformPlan, i: int, errors: List[str]) -> None:
    step = plan.steps[i]
    prefix = f"steps[{i}]"

    if isinstance(step, SelectStep):
        if not step.fields:
            errors.append(f"{prefix}: 'select' requires 'fields'")
        for j, spec in enumerate(step.fields):
            if not spec.from_ or not spec.as_:
                errors.append(f"{prefix}.fields[{j}] requires 'from' and 'as'")
        _check_unique([s.as_ for s in step.fields], prefix, errors)

    elif isinstance(step, FilterStep):
        if step.where is None:
            errors.append(f"{prefix}: 'filter' requires 'where'")
        else:
            _check_condition(step.where, f"{prefix}.where", errors)

    elif isinstance(step, ComputeStep):
        if not step.compute:
            errors.append(f"{prefix}: 'compute' requires 'compute' array")
        for j, spec in enumerate(step.compute):
            if not spec.as_:
                errors.append(f"{prefix}.compute[{j}] requires 'as'")
            _check_expression(spec.expr, f"{prefix}.compute[{j}]", errors)
        _check_unique([s.as_ for s in step.compute], prefix, errors)

    elif isinstance(step, MapValueStep):
        if not step.map:
            errors.append(f"{prefix}: 'mapValue' requires 'map' array")
        for j, spec in enumerate(step.map):
            if not spec.from_ or not spec.as_:
                errors.append(f"{prefix}.map[{j}] requires 'from' and 'as'")
        _check_unique([s.as_ for s in step.map], prefix, errors)

    elif isinstance(step, SortStep):
        if not step.by:
            errors.append(f"{prefix}: 'sort' requires 'by'")
        if step.dir not in SORT_DIRECTIONS:
            errors.append(f"{prefix}: 'sort' dir must be 'asc' or 'desc', got '{step.dir}'")

    elif isinstance(step, GroupByStep):
        if not step.keys or any(not k for k in step.keys):
            errors.append(f"{prefix}: 'groupBy' requires 'keys'")
        following = plan.steps[i + 1] if i + 1 < len(plan.steps) else None
        if following is None or following.op != AGGREGATE:
            errors.append(f"{prefix}: 'groupBy' must be followed by 'aggregate'")

    elif isinstance(step, AggregateStep):
        grouped = i > 0 and plan.steps[i - 1].op == GROUP_BY
        if not step.metrics and not grouped:
            errors.append(f"{prefix}: 'aggregate' requires 'metrics'")
        for j, metric in enumerate(step.metrics):
            mprefix = f"{prefix}.metrics[{j}]"
            if not metric.as_:
                errors.append(f"{mprefix} requires 'as'")
            if metric.fn not in AGGREGATE_FUNCTIONS:
                errors.append(
                    f"{mprefix}.fn '{metric.fn}' is not valid. Expected one of: {', '.join(AGGREGATE_FUNCTIONS)}"
                )
            elif metric.fn != "count" and not metric.field and not metric.expr:
                errors.append(f"{mprefix}: '{metric.fn}' requires 'field' or 'expr'")
            if metric.expr is not None:
                _check_expression(metric.expr, mprefix, errors)
        _check_unique([m.as_ for m in step.metrics], prefix, errors)

    elif isinstance(step, LimitStep):
        if step.n is None or step.n <= 0:
            errors.append(f"{prefix}: 'limit' requires 'n' > 0")


def check_plan(plan: TransformPlan) -> List[str]:
    """Structural checks; returns every problem found (empty when valid)."""
    errors: List[str] = []

    if not plan.plan_version:
        errors.append("planVersion is required")
    elif plan.plan_version != PLAN_VERSION:
        errors.append(f"planVersion must be '{PLAN_VERSION}', got '{plan.plan_version}'")

    if not plan.source.record_path:
        errors.append("source.recordPath is required")

    for i in range(len(plan.steps)):
        _check_step(plan, i, errors)
    return errors


def validate_plan(plan: TransformPlan) -> TransformPlan:
    errors = check_plan(plan)
    if errors:
        logger.warning("Rejected plan with %d error(s): %s", len(errors), "; ".join(errors))
        raise PlanValidationError(errors)
    return plan


def load_plan(data: Union[TransformPlan, Mapping[str, Any]]) -> TransformPlan:
    """parse_plan followed by validate_plan."""
    return validate_plan(parse_plan(data))
