from __future__ import annotations

from json_plan_transformer.discovery import (
    discover,
    extract_goal_words,
    find_array_candidates,
    score_candidate,
)
from json_plan_transformer.errors import ErrorReason
from json_plan_transformer.models import RecordPathCandidate


def _candidate(path="/items", length=5, fields=3, objects=True, depth=1):
    return RecordPathCandidate(
        path=path,
        array_length=length,
        object_field_count=fields,
        has_object_items=objects,
        depth=depth,
    )


class TestScoring:
    def test_object_arrays_beat_primitive_arrays(self):
        assert score_candidate(_candidate(path="/things")) > score_candidate(
            _candidate(path="/things", objects=False, fields=0)
        )

    def test_well_known_name_bonus(self):
        assert score_candidate(_candidate(path="/items")) - score_candidate(_candidate(path="/stuff")) == 30

    def test_goal_word_exact_match_bonus(self):
        plain = score_candidate(_candidate(path="/forecast"))
        boosted = score_candidate(_candidate(path="/forecast"), frozenset({"forecast"}))
        assert boosted - plain == 35

    def test_depth_penalty(self):
        shallow = score_candidate(_candidate(path="/stuff", depth=1))
        deep = score_candidate(_candidate(path="/a/b/stuff", depth=3))
        assert shallow - deep == 10

    def test_goal_words_drop_short_and_stop_words(self):
        assert extract_goal_words("List the users by ID") == frozenset({"list", "users"})
        assert extract_goal_words("   ") == frozenset()


class TestCandidates:
    def test_root_array_is_single_candidate(self, products):
        candidates = find_array_candidates(products)
        assert [c.path for c in candidates] == ["/"]
        assert candidates[0].array_length == 4

    def test_nested_arrays_in_document_order(self, weather_document):
        paths = [c.path for c in find_array_candidates(weather_document)]
        assert paths == ["/meta/tags", "/results/users", "/results/forecast"]

    def test_keys_with_slash_are_escaped(self):
        paths = [c.path for c in find_array_candidates({"km/h": [{"v": 1}]})]
        assert paths == ["/km~1h"]

    def test_max_depth_limits_walk(self):
        doc = {"a": {"b": {"c": {"rows": [{"x": 1}]}}}}
        assert find_array_candidates(doc, max_depth=2) == []
        assert [c.path for c in find_array_candidates(doc, max_depth=3)] == ["/a/b/c/rows"]


class TestDiscover:
    def test_goal_sensitivity(self, weather_document):
        assert discover(weather_document, "weather forecast").record_path == "/results/forecast"
        assert discover(weather_document, "list users").record_path == "/results/users"

    def test_deterministic(self, weather_document):
        first = discover(weather_document, "forecast")
        second = discover(weather_document, "forecast")
        assert (first.record_path, first.score) == (second.record_path, second.score)

    def test_root_array(self, products):
        result = discover(products)
        assert result.success
        assert result.record_path == "/"

    def test_primitive_arrays_are_never_chosen(self):
        result = discover({"tags": ["a", "b", "c"]})
        assert not result.success
        assert result.reason == ErrorReason.NO_RECORDSET_FOUND
        assert [c.path for c in result.candidates] == ["/tags"]

    def test_empty_array_is_eligible(self):
        result = discover({"items": []})
        assert result.success
        assert result.record_path == "/items"

    def test_no_arrays(self):
        result = discover({"a": 1, "b": {"c": 2}})
        assert not result.success
        assert "No arrays" in result.error

    def test_primitive_root(self):
        result = discover(42)
        assert not result.success
        assert result.reason == ErrorReason.NO_RECORDSET_FOUND

    def test_serializes_camel_case(self, weather_document):
        payload = discover(weather_document).to_dict()
        assert "recordPath" in payload
        assert "arrayLength" in payload["candidates"][0]
        assert payload["success"] is True
