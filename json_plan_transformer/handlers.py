from __future__ import annotations

import logging
from typing import Any, Optional

import gradio as gr

from .config import load_settings
from .discovery import discover
from .flattening import write_export
from .io_utils import read_json_content, read_json_text
from .normalizer import extract_and_normalize
from .paths import ROOT_POINTER
from .pipeline import build_preview
from .templates import match_template

logger = logging.getLogger(__name__)

settings = load_settings()


def prepare_dataset_payload(file_obj, goal_text: str = ""):
    if file_obj is None:
        return None, gr.update(choices=[]), "No file uploaded."

    try:
        data = read_json_content(file_obj)
    except (OSError, ValueError) as e:
        return None, gr.update(choices=[]), f"Error parsing JSON: {str(e)}"

    discovery = discover(data, goal_text, max_depth=settings.discovery_max_depth)
    choices = [c.path for c in discovery.candidates] or [ROOT_POINTER]
    if not discovery.success:
        return data, gr.update(choices=choices, value=choices[0]), f"Loaded, but {discovery.error}"

    message = f"Successfully loaded. Found {len(discovery.candidates)} candidate record path(s); using {discovery.record_path}."
    return data, gr.update(choices=choices, value=discovery.record_path), message


def compute_document_count_text(data: Any, record_path: Optional[str] = ROOT_POINTER) -> str:
    if data is None:
        return ""
    normalized = extract_and_normalize(data, record_path or ROOT_POINTER)
    if not normalized.success:
        return normalized.error
    return f"Documents: {len(normalized.rows)}"


def load_and_discover(file_obj, goal_text: str = ""):
    data, root_dropdown, message = prepare_dataset_payload(file_obj, goal_text)
    if data is None:
        return None, root_dropdown, message, "", "", None

    count_text = compute_document_count_text(
        data,
        root_dropdown.get("value") if isinstance(root_dropdown, dict) else ROOT_POINTER,
    )
    return data, root_dropdown, message, count_text, "", None


def handle_root_change(data: Any, record_path: str):
    return compute_document_count_text(data, record_path), None


def generate_plan_handler(data: Any, goal_text: str, record_path: Optional[str]):
    if data is None:
        return "", "No data loaded."
    record_path = record_path or ROOT_POINTER
    normalized = extract_and_normalize(data, record_path)
    if not normalized.success:
        return "", normalized.error
    match = match_template(goal_text, record_path, normalized.sample_row)
    return match.plan.to_json(indent=2), f"Template {match.template_id}: {match.reason}"


def _status(result) -> str:
    if not result.success:
        return f"{result.error_code}: {result.error}"
    lines = [f"{len(result.rows)} row(s) from {result.record_path} ({result.plan_origin} plan)."]
    lines.extend(f"Warning: {w}" for w in result.warnings)
    return "\n".join(lines)


def _run(data: Any, goal_text: str, plan_text: str, record_path: Optional[str]):
    plan = read_json_text(plan_text) if plan_text and plan_text.strip() else None
    return build_preview(data, goal_text, plan=plan, record_path=record_path or None, settings=settings)


def preview_handler(data, goal_text, plan_text, record_path=None):
    if data is None:
        return None, None, "No data loaded."
    try:
        result = _run(data, goal_text, plan_text, record_path)
    except ValueError as e:
        return None, None, f"Error parsing plan: {str(e)}"
    if not result.success:
        return None, None, _status(result)
    return result.rows[: max(1, settings.preview_rows)], result.output_schema, _status(result)


def export_data_handler(data, goal_text, plan_text, output_format, file_name, record_path=None):
    if data is None:
        return None, "No data loaded."
    try:
        result = _run(data, goal_text, plan_text, record_path)
    except ValueError as e:
        return None, f"Error parsing plan: {str(e)}"
    if not result.success:
        return None, _status(result)

    try:
        path = write_export(result.rows, output_format, file_name, settings.export_dir)
    except OSError as e:
        logger.warning("Export failed: %s", e)
        return None, f"Error during export: {str(e)}"
    return path, f"Export successful! Saved to {path}"
