"""Preview pipeline: document + goal in, rows + schema + CSV preview out.

This is the service-level entry point used by the UI and the CLI. It picks
a record path, obtains a plan (explicit, from a plan source, or from the
templates), executes it and packages the result.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import Field

from .accessors import resolve_pointer
from .config import Settings, load_settings
from .discovery import discover
from .errors import ErrorReason, PlanParseError, PlanValidationError, TransformError
from .executor import execute
from .flattening import rows_to_csv
from .models import CamelModel, ExecutionResult, RecordPathCandidate, TransformPlan
from .normalizer import extract_and_normalize
from .paths import ROOT_POINTER, is_root
from .plan_source import PlanSource, PlanSourceError, parse_plan_text, with_default_record_path
from .schema_inference import infer_schema
from .templates import match_template
from .validation import load_plan

logger = logging.getLogger(__name__)

RECORDPATH_NOT_FOUND = "RECORDPATH_NOT_FOUND"
PLAN_INVALID = "PLAN_INVALID"
PLAN_PARSE_ERROR = "PLAN_PARSE_ERROR"
PLAN_EXECUTION_ERROR = "PLAN_EXECUTION_ERROR"

ORIGIN_EXPLICIT = "explicit"
ORIGIN_SOURCE = "source"


class PreviewResult(CamelModel):
    success: bool
    plan: Optional[TransformPlan] = None
    plan_origin: Optional[str] = None
    record_path: Optional[str] = None
    candidates: List[RecordPathCandidate] = Field(default_factory=list)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    output_schema: Optional[Dict[str, Any]] = None
    csv_preview: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None
    reason: Optional[ErrorReason] = None


def _failure(code: str, error: str, reason: Optional[ErrorReason], **extra: Any) -> PreviewResult:
    logger.warning("Preview failed (%s): %s", code, error)
    return PreviewResult(success=False, error=error, error_code=code, reason=reason, **extra)


def _explicit_plan(plan: Union[TransformPlan, Mapping[str, Any], str], record_path: Optional[str]) -> TransformPlan:
    if isinstance(plan, str):
        return parse_plan_text(plan, record_path)
    return load_plan(with_default_record_path(plan, record_path))


def _points_at_array(document: Any, record_path: str) -> bool:
    return isinstance(resolve_pointer(document, record_path), list)


def _from_source(
    plan_source: PlanSource,
    document: Any,
    goal_text: str,
    sample_row: Dict[str, Any],
    candidates: List[RecordPathCandidate],
    warnings: List[str],
) -> Optional[TransformPlan]:
    try:
        plan = plan_source.try_get_plan(goal_text, sample_row, candidates)
    except TransformError as exc:
        warnings.append(f"Plan source failed: {exc}")
        return None
    if plan is None:
        return None
    if not _points_at_array(document, plan.source.record_path):
        warnings.append(
            f"Discarded plan from source: record path '{plan.source.record_path}' does not point at an array"
        )
        return None
    return plan


def _template_plan(goal_text: str, record_path: str, sample_row: Dict[str, Any]) -> Tuple[TransformPlan, str]:
    match = match_template(goal_text, record_path, sample_row)
    return match.plan, f"template:{match.template_id}"


def build_preview(
    document: Any,
    goal_text: Optional[str] = None,
    plan: Optional[Union[TransformPlan, Mapping[str, Any], str]] = None,
    plan_source: Optional[PlanSource] = None,
    record_path: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> PreviewResult:
    settings = settings or load_settings()
    goal_text = goal_text or ""
    warnings: List[str] = []

    discovery = discover(document, goal_text, max_depth=settings.discovery_max_depth)
    candidates = discovery.candidates
    if record_path and is_root(record_path):
        record_path = ROOT_POINTER

    chosen: Optional[TransformPlan] = None
    origin: Optional[str] = None
    if plan is not None:
        try:
            chosen = _explicit_plan(plan, record_path or discovery.record_path)
        except PlanValidationError as exc:
            return _failure(PLAN_INVALID, f"Plan schema validation failed: {exc}", ErrorReason.PLAN_INVALID,
                            candidates=candidates)
        except (PlanParseError, PlanSourceError) as exc:
            return _failure(PLAN_PARSE_ERROR, f"Failed to parse plan: {exc}", ErrorReason.PLAN_PARSE_ERROR,
                            candidates=candidates)
        origin = ORIGIN_EXPLICIT
        record_path = chosen.source.record_path
    elif not record_path:
        if not discovery.success:
            return _failure(RECORDPATH_NOT_FOUND, discovery.error, discovery.reason, candidates=candidates)
        record_path = discovery.record_path
        logger.debug("Discovered record path %s (score=%.1f)", record_path, discovery.score)

    normalized = extract_and_normalize(document, record_path)
    if not normalized.success:
        return _failure(RECORDPATH_NOT_FOUND, normalized.error, normalized.reason,
                        record_path=record_path, candidates=candidates)

    template_path, sample_row = record_path, normalized.sample_row
    if chosen is None and plan_source is not None:
        chosen = _from_source(plan_source, document, goal_text, sample_row, candidates, warnings)
        if chosen is not None:
            origin = ORIGIN_SOURCE
            record_path = chosen.source.record_path

    if chosen is None:
        chosen, origin = _template_plan(goal_text, record_path, sample_row)
    logger.info("Using %s plan for record path %s", origin, record_path)

    execution: ExecutionResult = execute(chosen, document, max_rows=settings.max_rows)
    if not execution.success and origin == ORIGIN_SOURCE:
        warnings.append(f"Plan from source failed ({execution.error}); using template instead")
        record_path = template_path
        chosen, origin = _template_plan(goal_text, record_path, sample_row)
        execution = execute(chosen, document, max_rows=settings.max_rows)

    if not execution.success:
        return _failure(PLAN_EXECUTION_ERROR, execution.error, execution.reason, plan=chosen,
                        plan_origin=origin, record_path=record_path, candidates=candidates,
                        warnings=warnings + execution.warnings)

    rows = execution.rows
    logger.debug("Preview produced %d rows", len(rows))
    return PreviewResult(
        success=True,
        plan=chosen,
        plan_origin=origin,
        record_path=record_path,
        candidates=candidates,
        rows=rows,
        output_schema=infer_schema(rows),
        csv_preview=rows_to_csv(rows, limit=settings.preview_rows),
        warnings=warnings + execution.warnings,
    )
