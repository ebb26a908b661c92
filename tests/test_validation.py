from __future__ import annotations

import pytest

from json_plan_transformer.errors import PlanValidationError
from json_plan_transformer.models import FilterStep, SelectStep, SortStep, TransformPlan
from json_plan_transformer.validation import check_plan, load_plan, parse_plan


def _plan(*steps, record_path="/"):
    return {"planVersion": "1.0", "source": {"recordPath": record_path}, "steps": list(steps)}


class TestParsePlan:
    def test_round_trips_wire_names(self, plan_dict):
        plan = parse_plan(plan_dict)
        assert isinstance(plan.steps[0], SelectStep)
        assert plan.steps[0].fields[0].from_ == "/name"
        assert isinstance(plan.steps[1], FilterStep)
        assert isinstance(plan.steps[2], SortStep)
        assert plan.to_dict() == plan_dict

    def test_unknown_op(self):
        with pytest.raises(PlanValidationError) as exc_info:
            parse_plan(_plan({"op": "pivot"}))
        assert "steps[0].op 'pivot' is not valid" in exc_info.value.errors[0]

    def test_missing_op(self):
        with pytest.raises(PlanValidationError) as exc_info:
            parse_plan(_plan({"fields": []}))
        assert exc_info.value.errors == ["steps[0].op is required"]

    def test_not_an_object(self):
        with pytest.raises(PlanValidationError):
            parse_plan(["select"])

    def test_wrong_member_type(self):
        with pytest.raises(PlanValidationError):
            parse_plan(_plan({"op": "limit", "n": "many"}))

    def test_passes_models_through(self):
        plan = TransformPlan()
        assert parse_plan(plan) is plan

    def test_expression_where(self):
        plan = parse_plan(_plan({"op": "filter", "where": "price > 3"}))
        assert plan.steps[0].where == "price > 3"


class TestCheckPlan:
    def test_valid_plan(self, plan_dict):
        assert check_plan(parse_plan(plan_dict)) == []

    def test_identity_plan_is_valid(self):
        assert check_plan(parse_plan(_plan())) == []

    def test_version(self):
        plan = parse_plan({**_plan(), "planVersion": "2.0"})
        assert check_plan(plan) == ["planVersion must be '1.0', got '2.0'"]

    def test_record_path_required(self):
        assert "source.recordPath is required" in check_plan(parse_plan(_plan(record_path="")))

    @pytest.mark.parametrize(
        "step, message",
        [
            ({"op": "select", "fields": []}, "'select' requires 'fields'"),
            ({"op": "filter"}, "'filter' requires 'where'"),
            ({"op": "compute", "compute": []}, "'compute' requires 'compute' array"),
            ({"op": "mapValue", "map": []}, "'mapValue' requires 'map' array"),
            ({"op": "sort"}, "'sort' requires 'by'"),
            ({"op": "sort", "by": "/a", "dir": "up"}, "dir must be 'asc' or 'desc'"),
            ({"op": "limit", "n": 0}, "'limit' requires 'n' > 0"),
            ({"op": "limit"}, "'limit' requires 'n' > 0"),
            ({"op": "aggregate", "metrics": []}, "'aggregate' requires 'metrics'"),
        ],
    )
    def test_required_members(self, step, message):
        errors = check_plan(parse_plan(_plan(step)))
        assert any(message in e for e in errors), errors

    def test_group_by_must_precede_aggregate(self):
        errors = check_plan(parse_plan(_plan({"op": "groupBy", "keys": ["/a"]}, {"op": "limit", "n": 1})))
        assert any("must be followed by 'aggregate'" in e for e in errors)

    def test_grouped_aggregate_may_have_no_metrics(self):
        plan = parse_plan(_plan({"op": "groupBy", "keys": ["/a"]}, {"op": "aggregate", "metrics": []}))
        assert check_plan(plan) == []

    def test_metric_checks(self):
        plan = parse_plan(_plan({"op": "aggregate", "metrics": [
            {"as": "x", "fn": "median", "field": "/a"},
            {"as": "y", "fn": "sum"},
            {"as": "y", "fn": "count"},
        ]}))
        errors = check_plan(plan)
        assert any("fn 'median' is not valid" in e for e in errors)
        assert any("'sum' requires 'field' or 'expr'" in e for e in errors)
        assert any("duplicate output name 'y'" in e for e in errors)

    def test_bad_expression(self):
        errors = check_plan(parse_plan(_plan({"op": "compute", "compute": [{"as": "t", "expr": "price *"}]})))
        assert any("invalid expression" in e for e in errors)

    def test_condition_checks(self):
        plan = parse_plan(_plan({"op": "filter", "where": {"op": "and", "items": [
            {"op": "like", "left": {"field": "/a"}, "right": 1},
            {"op": "eq", "left": {"field": "/a"}},
            {"op": "in", "left": {"field": "/a"}, "right": 3},
        ]}}))
        errors = check_plan(plan)
        assert any("items[0].op 'like' is not valid" in e for e in errors)
        assert any("'eq' requires 'right'" in e for e in errors)
        assert any("'in' requires an array" in e for e in errors)

    def test_explicit_null_operand_is_allowed(self):
        plan = parse_plan(_plan({"op": "filter", "where": {"op": "eq", "left": {"field": "/a"}, "right": None}}))
        assert check_plan(plan) == []


class TestLoadPlan:
    def test_raises_with_all_errors(self):
        with pytest.raises(PlanValidationError) as exc_info:
            load_plan(_plan({"op": "select", "fields": []}, {"op": "limit", "n": -1}))
        assert len(exc_info.value.errors) == 2
        assert str(exc_info.value).startswith("Plan validation failed: ")
