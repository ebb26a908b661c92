from __future__ import annotations

import pytest

from json_plan_transformer.config import Settings
from json_plan_transformer.errors import ErrorReason, TransformError
from json_plan_transformer.models import LimitStep, SourceSpec, TransformPlan
from json_plan_transformer.pipeline import (
    PLAN_INVALID,
    PLAN_PARSE_ERROR,
    RECORDPATH_NOT_FOUND,
    build_preview,
)
from json_plan_transformer.plan_source import StaticPlanSource


@pytest.fixture
def settings():
    return Settings(preview_rows=2, discovery_max_depth=3, max_rows=0)


class _BrokenPlanSource:
    """Offers a plan that was never validated."""

    def try_get_plan(self, goal_text, sample_row, candidates):
        return TransformPlan(source=SourceSpec(record_path="/"), steps=[LimitStep(n=0)])


class _FailingPlanSource:
    def try_get_plan(self, goal_text, sample_row, candidates):
        raise TransformError("provider unavailable")


class TestTemplatePlans:
    def test_root_array(self, products, settings):
        result = build_preview(products, "show name and price", settings=settings)
        assert result.success
        assert result.plan_origin == "template:T2"
        assert result.record_path == "/"
        assert len(result.rows) == 4
        assert result.csv_preview.splitlines() == ["name,price", "Pen,10", "Lamp,30"]
        props = result.output_schema["items"]["properties"]
        assert props == {"name": {"type": "string"}, "price": {"type": "integer"}}

    def test_discovers_nested_records(self, weather_document, settings):
        result = build_preview(weather_document, "weather forecast", settings=settings)
        assert result.success
        assert result.record_path == "/results/forecast"
        assert result.plan_origin == "template:T1"
        assert [r["date"] for r in result.rows] == ["06/01", "06/02", "06/03"]
        assert result.candidates[0].path == "/results/forecast"

    def test_aggregate_goal(self, sales, settings):
        result = build_preview(sales, "total value by category", settings=settings)
        assert result.plan_origin == "template:T5"
        assert result.rows == [{"category": "A", "total": 30}, {"category": "B", "total": 5}]

    def test_root_alias_hint(self, products, settings):
        result = build_preview(products, "", record_path="(root)", settings=settings)
        assert result.success
        assert result.record_path == "/"

    def test_max_rows(self, products):
        result = build_preview(products, "", settings=Settings(preview_rows=3, max_rows=1))
        assert len(result.rows) == 1
        assert "Input truncated to 1 of 4 rows" in result.warnings


class TestExplicitPlans:
    def test_mapping(self, products, plan_dict, settings):
        result = build_preview(products, plan=plan_dict, settings=settings)
        assert result.success
        assert result.plan_origin == "explicit"
        assert [r["price"] for r in result.rows] == [20, 30]

    def test_text_without_record_path(self, weather_document, settings):
        text = '{"planVersion": "1.0", "steps": [{"op": "limit", "n": 1}]}'
        result = build_preview(weather_document, "forecast", plan=text, settings=settings)
        assert result.success
        assert result.record_path == "/results/forecast"
        assert len(result.rows) == 1

    def test_mapping_without_record_path_uses_discovery(self, weather_document, settings):
        plan = {"planVersion": "1.0", "steps": [{"op": "limit", "n": 1}]}
        result = build_preview(weather_document, "forecast", plan=plan, settings=settings)
        assert result.success
        assert result.record_path == "/results/forecast"
        assert result.rows == [weather_document["results"]["forecast"][0]]

    def test_mapping_without_record_path_uses_hint(self, weather_document, settings):
        plan = {"planVersion": "1.0", "steps": [{"op": "limit", "n": 1}]}
        result = build_preview(weather_document, "", plan=plan, record_path="/results/users", settings=settings)
        assert result.record_path == "/results/users"
        assert result.rows[0]["name"] == "Ana"

    def test_invalid(self, products, settings):
        result = build_preview(products, plan={"planVersion": "1.0", "steps": [{"op": "pivot"}]}, settings=settings)
        assert not result.success
        assert result.error_code == PLAN_INVALID
        assert result.reason == ErrorReason.PLAN_INVALID

    def test_unparseable(self, products, settings):
        result = build_preview(products, plan="this is not a plan", settings=settings)
        assert result.error_code == PLAN_PARSE_ERROR
        assert result.reason == ErrorReason.PLAN_PARSE_ERROR


class TestPlanSources:
    def test_source_plan_is_used(self, products, plan_dict, settings):
        result = build_preview(products, "anything", plan_source=StaticPlanSource(plan_dict), settings=settings)
        assert result.plan_origin == "source"
        assert [r["price"] for r in result.rows] == [20, 30]

    def test_plan_not_pointing_at_array_is_discarded(self, weather_document, settings):
        plan = {"planVersion": "1.0", "source": {"recordPath": "/meta"}, "steps": []}
        result = build_preview(weather_document, "forecast", plan_source=StaticPlanSource(plan), settings=settings)
        assert result.success
        assert result.plan_origin.startswith("template:")
        assert result.record_path == "/results/forecast"
        assert any("Discarded plan from source" in w for w in result.warnings)

    def test_failed_source_plan_falls_back_to_template(self, products, settings):
        result = build_preview(products, "", plan_source=_BrokenPlanSource(), settings=settings)
        assert result.success
        assert result.plan_origin == "template:T1"
        assert len(result.rows) == 4
        assert any("using template instead" in w for w in result.warnings)

    def test_source_error_falls_back_to_template(self, products, settings):
        result = build_preview(products, "", plan_source=_FailingPlanSource(), settings=settings)
        assert result.success
        assert result.plan_origin == "template:T1"
        assert "Plan source failed: provider unavailable" in result.warnings


class TestRecordPathFailures:
    def test_no_arrays(self, settings):
        result = build_preview({"a": 1, "b": {"c": "x"}}, "", settings=settings)
        assert not result.success
        assert result.error_code == RECORDPATH_NOT_FOUND
        assert result.reason == ErrorReason.NO_RECORDSET_FOUND

    def test_missing_hint(self, weather_document, settings):
        result = build_preview(weather_document, "", record_path="/results/missing", settings=settings)
        assert result.error_code == RECORDPATH_NOT_FOUND
        assert result.reason == ErrorReason.WRONG_SHAPE

    def test_result_serializes_with_wire_names(self, products, settings):
        data = build_preview(products, "", settings=settings).to_dict()
        assert data["planOrigin"] == "template:T1"
        assert data["plan"]["source"]["recordPath"] == "/"
        assert "csvPreview" in data
