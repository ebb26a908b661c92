from __future__ import annotations

from json_plan_transformer.errors import ErrorReason
from json_plan_transformer.json_values import MISSING
from json_plan_transformer.normalizer import extract_and_normalize, normalize
from json_plan_transformer.resolver import aliases_for, lookup, read_field, resolve_field


class TestNormalize:
    def test_array_of_objects(self, products):
        result = normalize(products)
        assert result.success
        assert result.rows == products
        assert result.sample_row == products[0]
        assert result.warnings == []

    def test_idempotent_on_rows(self, products):
        once = normalize(products).rows
        assert normalize(once).rows == once

    def test_does_not_share_row_objects(self, products):
        rows = normalize(products).rows
        rows[0]["name"] = "changed"
        assert products[0]["name"] == "Pen"

    def test_single_object_becomes_one_row(self):
        assert normalize({"a": 1}).rows == [{"a": 1}]

    def test_null_is_empty_success(self):
        result = normalize(None)
        assert result.success
        assert result.rows == []
        assert result.sample_row == {}

    def test_primitives_are_wrapped_and_nulls_skipped(self):
        result = normalize([1, None, {"a": 2}, "x"])
        assert result.rows == [{"value": 1}, {"a": 2}, {"value": "x"}]
        assert len(result.warnings) == 2

    def test_primitive_document_is_wrong_shape(self):
        result = normalize("text")
        assert not result.success
        assert result.reason == ErrorReason.WRONG_SHAPE

    def test_extract_nested_path(self, weather_document):
        result = extract_and_normalize(weather_document, "/results/forecast")
        assert len(result.rows) == 3
        assert result.sample_row["condition"] == "storm"

    def test_extract_missing_path(self, weather_document):
        result = extract_and_normalize(weather_document, "/results/nothing")
        assert not result.success
        assert "/results/nothing" in result.error

    def test_root_aliases(self, products):
        for path in ("/", "", "(root)", None):
            assert normalize(products, path).rows == products


class TestResolveField:
    def test_exact(self):
        res = resolve_field("price", {"price": 1})
        assert res.was_resolved
        assert res.resolved_field == "price"
        assert res.resolved_path == "/price"
        assert res.warnings == []

    def test_pointer_reference(self):
        res = resolve_field("/price", {"price": 1})
        assert res.resolved_field == "price"

    def test_case_insensitive(self):
        res = resolve_field("Price", {"price": 1})
        assert res.was_resolved
        assert res.resolved_field == "price"
        assert "case-insensitive" in res.warnings[0]

    def test_alias(self):
        res = resolve_field("nome", {"name": "X"})
        assert res.was_resolved
        assert res.resolved_field == "name"
        assert "alias" in res.warnings[0]

    def test_alias_is_accent_insensitive(self):
        res = resolve_field("price", {"Preço": 9})
        assert res.resolved_field == "Preço"

    def test_unresolved_lists_available_fields(self):
        res = resolve_field("missing", {"a": 1, "b": 2})
        assert not res.was_resolved
        assert res.resolved_field == "missing"
        assert "Available: a, b" in res.warnings[0]

    def test_nested_segments_are_navigated(self):
        row = {"Address": {"city": "Lisbon"}}
        res = resolve_field("/address/city", row)
        assert res.resolved_path == "/Address/city"
        assert read_field(row, res) == "Lisbon"

    def test_aliases_for(self):
        assert "nombre" in aliases_for("Name")
        assert aliases_for("unknown") == []


class TestLookup:
    def test_missing_field_is_missing(self):
        value, res = lookup({"a": 1}, "b")
        assert value is MISSING
        assert not res.was_resolved

    def test_null_is_not_missing(self):
        value, _ = lookup({"a": None}, "a")
        assert value is None

    def test_empty_reference(self):
        value, res = lookup({"a": 1}, "")
        assert value is MISSING
        assert not res.was_resolved
