"""Pydantic models for transform plans and engine results.

Every model serializes with camelCase keys (`planVersion`, `recordPath`,
`wasResolved`) so results can be handed to the API layer or written to
storage as-is. Python code uses the snake_case attribute names.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer
from pydantic.alias_generators import to_camel

from .errors import ErrorReason

PLAN_VERSION = "1.0"

SELECT = "select"
FILTER = "filter"
COMPUTE = "compute"
MAP_VALUE = "mapValue"
SORT = "sort"
GROUP_BY = "groupBy"
AGGREGATE = "aggregate"
LIMIT = "limit"

KNOWN_OPS = (SELECT, FILTER, COMPUTE, MAP_VALUE, SORT, GROUP_BY, AGGREGATE, LIMIT)

AGGREGATE_FUNCTIONS = ("sum", "count", "avg", "min", "max")

COMPARISON_OPS = ("eq", "neq", "gt", "gte", "lt", "lte", "contains", "in")
LOGICAL_OPS = ("and", "or", "not")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Plan building blocks
# ---------------------------------------------------------------------------

class FieldSpec(CamelModel):
    from_: str = Field(alias="from")
    as_: str = Field(alias="as")
    type_hint: Optional[str] = None


class ComputeSpec(CamelModel):
    as_: str = Field(alias="as")
    expr: str


class MapSpec(CamelModel):
    from_: str = Field(alias="from")
    as_: str = Field(alias="as")
    mapping: Dict[str, Any] = Field(default_factory=dict)
    default: Optional[Any] = None


class MetricSpec(CamelModel):
    as_: str = Field(alias="as")
    fn: str
    field: Optional[str] = None
    expr: Optional[str] = None

    @field_validator("fn", mode="before")
    @classmethod
    def _lower_fn(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class Condition(CamelModel):
    """Filter condition tree.

    Comparison nodes use `left`/`right`; an operand is either a literal
    JSON value or a field reference written as `{"field": "price"}`.
    `and`/`or` combine `items`; `not` negates its single item.
    """

    op: str
    left: Optional[Any] = None
    right: Optional[Any] = None
    items: Optional[List[Condition]] = None

    @field_validator("op", mode="before")
    @classmethod
    def _lower_op(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @model_serializer(mode="wrap")
    def _keep_null_operands(self, handler):
        # An explicit null operand (`"right": null`) is a literal and must survive exclude_none.
        data = handler(self)
        for side in ("left", "right"):
            if side in self.model_fields_set and side not in data:
                data[side] = None
        return data


# ---------------------------------------------------------------------------
# Steps (tagged union on `op`)
# ---------------------------------------------------------------------------

class SelectStep(CamelModel):
    op: Literal["select"] = SELECT
    fields: List[FieldSpec] = Field(default_factory=list)


class FilterStep(CamelModel):
    op: Literal["filter"] = FILTER
    where: Optional[Union[str, Condition]] = None


class ComputeStep(CamelModel):
    op: Literal["compute"] = COMPUTE
    compute: List[ComputeSpec] = Field(default_factory=list)


class MapValueStep(CamelModel):
    op: Literal["mapValue"] = MAP_VALUE
    map: List[MapSpec] = Field(default_factory=list)


class SortStep(CamelModel):
    op: Literal["sort"] = SORT
    by: str = ""
    dir: str = "asc"

    @field_validator("dir", mode="before")
    @classmethod
    def _lower_dir(cls, value: Any) -> Any:
        if value is None:
            return "asc"
        return value.lower() if isinstance(value, str) else value


class GroupByStep(CamelModel):
    op: Literal["groupBy"] = GROUP_BY
    keys: List[str] = Field(default_factory=list)


class AggregateStep(CamelModel):
    op: Literal["aggregate"] = AGGREGATE
    metrics: List[MetricSpec] = Field(default_factory=list)


class LimitStep(CamelModel):
    op: Literal["limit"] = LIMIT
    n: Optional[int] = None


PlanStep = Annotated[
    Union[
        SelectStep,
        FilterStep,
        ComputeStep,
        MapValueStep,
        SortStep,
        GroupByStep,
        AggregateStep,
        LimitStep,
    ],
    Field(discriminator="op"),
]


class SourceSpec(CamelModel):
    record_path: str = "/"


class TransformPlan(CamelModel):
    """Declarative pipeline of row operations over one record path."""

    plan_version: str = PLAN_VERSION
    source: SourceSpec = Field(default_factory=SourceSpec)
    steps: List[PlanStep] = Field(default_factory=list)

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def with_record_path(self, record_path: str) -> TransformPlan:
        return self.model_copy(update={"source": SourceSpec(record_path=record_path)})


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class RecordPathCandidate(CamelModel):
    path: str
    array_length: int
    object_field_count: int
    has_object_items: bool
    depth: int
    score: float = 0.0


class DiscoveryResult(CamelModel):
    success: bool
    record_path: Optional[str] = None
    score: float = 0.0
    candidates: List[RecordPathCandidate] = Field(default_factory=list)
    error: Optional[str] = None
    reason: Optional[ErrorReason] = None


class NormalizationResult(CamelModel):
    success: bool
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    sample_row: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    reason: Optional[ErrorReason] = None


class FieldResolution(CamelModel):
    original_field: str
    resolved_field: str
    resolved_path: str
    was_resolved: bool
    warnings: List[str] = Field(default_factory=list)


class ExecutionResult(CamelModel):
    success: bool
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    reason: Optional[ErrorReason] = None
