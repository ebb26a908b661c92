"""Rule-based plan synthesis.

Three templates are tried in a fixed order and the first that applies wins:

* T5 - groupBy + aggregate, when the goal asks for totals, counts, averages
  or grouping
* T2 - select the fields the goal mentions by name (or alias)
* T1 - select every field of the sample row
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from .json_values import is_number
from .models import (
    AggregateStep,
    FieldSpec,
    GroupByStep,
    MetricSpec,
    SelectStep,
    SourceSpec,
    TransformPlan,
)
from .paths import ROOT_POINTER, join_pointer
from .resolver import aliases_for, fold

logger = logging.getLogger(__name__)

T1 = "T1"
T2 = "T2"
T5 = "T5"

GROUP_WORDS = frozenset({"group", "grouped", "grouping", "agrupar", "agrupado", "agrupados", "agrupe"})
SUM_WORDS = frozenset({"sum", "total", "totals", "soma", "somar"})
COUNT_WORDS = frozenset({"count", "contar", "contagem"})
AVG_WORDS = frozenset({"average", "avg", "media"})
# Extra metrics, only picked once a grouping or aggregation word has matched.
MIN_WORDS = frozenset({"min", "minimum", "minimo"})
MAX_WORDS = frozenset({"max", "maximum", "maximo"})
DIMENSION_MARKERS = frozenset({"by", "per", "por"})

CATEGORY_HINTS = ("category", "categoria", "type", "tipo", "status", "group", "name", "nome")
VALUE_HINTS = ("price", "preco", "amount", "valor", "quantity", "quantidade", "total", "value")

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

# Common words that must name a field directly rather than through an alias.
_NO_ALIAS_TOKENS = frozenset({"data", "desc"})


@dataclass(frozen=True)
class TemplateMatch:
    template_id: str
    plan: TransformPlan
    reason: str


def goal_tokens(goal_text: Optional[str]) -> List[str]:
    """Accent- and case-folded word tokens of the goal, in order."""
    if not goal_text:
        return []
    return [fold(t) for t in _TOKEN_RE.findall(goal_text)]


def _field_for_token(token: str, sample_row: Dict[str, Any]) -> Optional[str]:
    for field in sample_row:
        if fold(field) == token:
            return field
    if token in _NO_ALIAS_TOKENS:
        return None
    for field in sample_row:
        if token in (fold(a) for a in aliases_for(field)):
            return field
    return None


def mentioned_fields(tokens: List[str], sample_row: Dict[str, Any]) -> List[str]:
    """Sample fields named in the goal (directly, by case or by alias), goal order."""
    found: List[str] = []
    for token in tokens:
        field = _field_for_token(token, sample_row)
        if field is not None and field not in found:
            found.append(field)
    return found


def _plan(record_path: str, steps: list) -> TransformPlan:
    return TransformPlan(source=SourceSpec(record_path=record_path or ROOT_POINTER), steps=steps)


def _pick_dimension(tokens: List[str], sample_row: Dict[str, Any], mentioned: List[str]) -> Optional[str]:
    for i, token in enumerate(tokens[:-1]):
        if token in DIMENSION_MARKERS:
            field = _field_for_token(tokens[i + 1], sample_row)
            if field is not None:
                return field

    strings = [f for f, v in sample_row.items() if isinstance(v, str)]
    for field in mentioned:
        if field in strings:
            return field
    for field in strings:
        if any(hint in fold(field) for hint in CATEGORY_HINTS):
            return field
    return strings[0] if strings else None


def _pick_measure(sample_row: Dict[str, Any], mentioned: List[str], dimension: Optional[str]) -> Optional[str]:
    numbers = [f for f, v in sample_row.items() if is_number(v) and f != dimension]
    for field in mentioned:
        if field in numbers:
            return field
    for field in numbers:
        if any(hint in fold(field) for hint in VALUE_HINTS):
            return field
    return numbers[0] if numbers else None


def _metric_name(base: str, measure: Optional[str], dimension: Optional[str]) -> str:
    """`base`, unless the group key already uses that name in the output row."""
    if base != dimension:
        return base
    return f"{base}_{measure}" if measure else f"{base}_rows"


def _try_t5(tokens: List[str], record_path: str, sample_row: Dict[str, Any]) -> Optional[TemplateMatch]:
    words = set(tokens)
    wants_group = bool(words & GROUP_WORDS)
    wants_sum = bool(words & SUM_WORDS)
    wants_count = bool(words & COUNT_WORDS)
    wants_avg = bool(words & AVG_WORDS)
    if not (wants_group or wants_sum or wants_count or wants_avg):
        return None
    wants_min = bool(words & MIN_WORDS)
    wants_max = bool(words & MAX_WORDS)

    mentioned = mentioned_fields(tokens, sample_row)
    dimension = _pick_dimension(tokens, sample_row, mentioned)
    measure = _pick_measure(sample_row, mentioned, dimension)

    metrics: List[MetricSpec] = []
    if wants_count or not (wants_sum or wants_avg or wants_min or wants_max):
        metrics.append(MetricSpec(as_=_metric_name("count", None, dimension), fn="count"))
    if measure is not None:
        field = join_pointer([measure])
        wanted = [
            (wants_sum or wants_group, "total", "sum"),
            (wants_avg, "average", "avg"),
            (wants_min, "minimum", "min"),
            (wants_max, "maximum", "max"),
        ]
        for wanted_flag, base, fn in wanted:
            if wanted_flag:
                metrics.append(MetricSpec(as_=_metric_name(base, measure, dimension), fn=fn, field=field))
    if not metrics:
        metrics.append(MetricSpec(as_=_metric_name("count", None, dimension), fn="count"))

    steps: list = []
    if dimension is not None:
        steps.append(GroupByStep(keys=[join_pointer([dimension])]))
        reason = f"Group by '{dimension}' with {len(metrics)} metric(s)"
    else:
        reason = f"Aggregate whole set with {len(metrics)} metric(s)"
    steps.append(AggregateStep(metrics=metrics))
    return TemplateMatch(T5, _plan(record_path, steps), reason)


def _try_t2(tokens: List[str], record_path: str, sample_row: Dict[str, Any]) -> Optional[TemplateMatch]:
    mentioned = mentioned_fields(tokens, sample_row)
    if not mentioned:
        return None
    fields = [FieldSpec(from_=join_pointer([f]), as_=f) for f in mentioned]
    return TemplateMatch(T2, _plan(record_path, [SelectStep(fields=fields)]), f"Select {len(fields)} mentioned field(s)")


def _t1(record_path: str, sample_row: Dict[str, Any]) -> TemplateMatch:
    if not sample_row:
        return TemplateMatch(T1, _plan(record_path, []), "Sample record has no fields; identity plan")
    fields = [FieldSpec(from_=join_pointer([f]), as_=f) for f in sample_row]
    return TemplateMatch(T1, _plan(record_path, [SelectStep(fields=fields)]), f"Select all {len(fields)} fields")


def match_template(goal_text: Optional[str], record_path: str, sample_row: Optional[Dict[str, Any]]) -> TemplateMatch:
    """Pick the first applicable template (T5 > T2 > T1) and build its plan."""
    sample_row = sample_row if isinstance(sample_row, dict) else {}
    # An empty key has no field reference of its own: "/" is the record itself.
    fields = {k: v for k, v in sample_row.items() if k != ""}
    tokens = goal_tokens(goal_text)
    match = (
        _try_t5(tokens, record_path, fields)
        or _try_t2(tokens, record_path, fields)
        or _t1(record_path, fields)
    )
    if len(fields) != len(sample_row):
        logger.warning("Skipped a sample field with an empty name at %s", record_path)
        match = replace(match, reason=f"{match.reason}; skipped a field with an empty name")
    logger.debug("Template %s matched: %s", match.template_id, match.reason)
    return match


def synthesize(goal_text: Optional[str], record_path: str, sample_row: Optional[Dict[str, Any]]) -> TransformPlan:
    return match_template(goal_text, record_path, sample_row).plan
