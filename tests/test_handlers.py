from __future__ import annotations

import json

import pytest

from json_plan_transformer import handlers


@pytest.fixture
def document(sales):
    return {"sales": sales}


@pytest.fixture
def upload(tmp_path, document):
    path = tmp_path / "upload.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return str(path)


class TestLoading:
    def test_no_file(self):
        data, _, message = handlers.prepare_dataset_payload(None)
        assert data is None
        assert message == "No file uploaded."

    def test_bad_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{oops", encoding="utf-8")
        data, _, message = handlers.prepare_dataset_payload(str(path))
        assert data is None
        assert message.startswith("Error parsing JSON")

    def test_load_and_discover(self, upload, document):
        data, dropdown, message, count, plan_text, download = handlers.load_and_discover(upload, "")
        assert data == document
        assert dropdown["value"] == "/sales"
        assert "using /sales" in message
        assert count == "Documents: 3"
        assert plan_text == ""
        assert download is None

    def test_root_change(self, document):
        assert handlers.handle_root_change(document, "/nope") == ("WrongShape: Path '/nope' not found in input", None)


class TestPlanAndPreview:
    def test_generate_plan(self, document):
        plan_text, status = handlers.generate_plan_handler(document, "total value by category", "/sales")
        assert json.loads(plan_text)["steps"][0] == {"op": "groupBy", "keys": ["/category"]}
        assert status.startswith("Template T5")

    def test_preview_with_edited_plan(self, document):
        plan_text = json.dumps({"planVersion": "1.0", "source": {"recordPath": "/sales"},
                                "steps": [{"op": "limit", "n": 1}]})
        rows, schema, status = handlers.preview_handler(document, "", plan_text, "/sales")
        assert rows == [{"category": "A", "value": 10}]
        assert schema["items"]["properties"]["value"] == {"type": "integer"}
        assert status.startswith("1 row(s) from /sales (explicit plan)")

    def test_pasted_plan_without_source_uses_selected_path(self, document):
        plan_text = json.dumps({"planVersion": "1.0", "steps": [{"op": "limit", "n": 2}]})
        rows, _, status = handlers.preview_handler(document, "", plan_text, "/sales")
        assert rows == document["sales"][:2]
        assert "from /sales" in status

    def test_preview_bad_plan_text(self, document):
        rows, schema, status = handlers.preview_handler(document, "", "{not json", "/sales")
        assert rows is None
        assert status.startswith("Error parsing plan")

    def test_preview_without_data(self):
        assert handlers.preview_handler(None, "", "") == (None, None, "No data loaded.")


class TestExport:
    def test_export(self, monkeypatch, tmp_path, document):
        monkeypatch.setattr(handlers.settings, "export_dir", str(tmp_path))
        path, status = handlers.export_data_handler(document, "", "", "JSON", "sales", "/sales")
        assert path == str(tmp_path / "sales.json")
        assert status.startswith("Export successful")
        with open(path, encoding="utf-8") as f:
            assert len(json.load(f)) == 3
