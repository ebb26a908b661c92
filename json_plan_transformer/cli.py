"""Command-line interface for the JSON plan transformer.

Entry point
-----------
``main()`` is registered as a console script in ``pyproject.toml``::

    [project.scripts]
    json-plan-transformer = "json_plan_transformer.cli:main"

Usage examples::

    json-plan-transformer discover weather.json --goal "weather forecast"
    json-plan-transformer plan sales.json --goal "total price per category"
    json-plan-transformer transform sales.json --goal "total price per category" --output totals.csv
    json-plan-transformer transform sales.json --plan plan.json --format json
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Optional

from .config import configure_logging, load_settings
from .io_utils import read_json_content


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="json-plan-transformer",
        description="Find the records in a JSON document and turn them into a table.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        default=False,
        help="Show version and exit.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (default: JPT_LOG_LEVEL or INFO).",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available subcommands")

    # -- discover ----------------------------------------------------------
    discover_parser = subparsers.add_parser(
        "discover",
        help="List candidate record paths.",
        description="Rank the arrays of a document by how likely they hold the records.",
    )
    discover_parser.add_argument("input", type=str, help="Path to a JSON document.")
    discover_parser.add_argument("--goal", type=str, default=None, help="Goal text used to break ties.")
    discover_parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Nesting levels to search (default: JPT_DISCOVERY_MAX_DEPTH or 3).",
    )

    # -- plan --------------------------------------------------------------
    plan_parser = subparsers.add_parser(
        "plan",
        help="Synthesize a plan from a goal.",
        description="Build a transform plan from the goal text using the built-in templates.",
    )
    plan_parser.add_argument("input", type=str, help="Path to a JSON document.")
    plan_parser.add_argument("--goal", type=str, default="", help="What the output table should contain.")
    plan_parser.add_argument("--record-path", type=str, default=None, help="Record path; discovered when omitted.")

    # -- transform ---------------------------------------------------------
    transform_parser = subparsers.add_parser(
        "transform",
        help="Run a plan and write the result.",
        description="Execute an explicit plan, or one synthesized from the goal, and export the rows.",
    )
    transform_parser.add_argument("input", type=str, help="Path to a JSON document.")
    transform_parser.add_argument("--goal", type=str, default="", help="What the output table should contain.")
    transform_parser.add_argument("--plan", type=str, default=None, help="Path to a plan JSON file.")
    transform_parser.add_argument("--record-path", type=str, default=None, help="Record path; discovered when omitted.")
    transform_parser.add_argument(
        "--format",
        type=str,
        default="csv",
        choices=["csv", "json"],
        help="Output format. (default: csv)",
    )
    transform_parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output file.  If omitted, prints to stdout.",
    )

    return parser


def _cmd_discover(args: argparse.Namespace) -> int:
    from .discovery import discover

    settings = load_settings()
    max_depth = args.max_depth if args.max_depth is not None else settings.discovery_max_depth
    result = discover(read_json_content(args.input), args.goal, max_depth=max_depth)
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0 if result.success else 1


def _cmd_plan(args: argparse.Namespace) -> int:
    from .discovery import discover
    from .normalizer import extract_and_normalize
    from .templates import match_template

    settings = load_settings()
    document = read_json_content(args.input)
    record_path: Optional[str] = args.record_path
    if not record_path:
        discovery = discover(document, args.goal, max_depth=settings.discovery_max_depth)
        if not discovery.success:
            print(f"Error: {discovery.error}", file=sys.stderr)
            return 1
        record_path = discovery.record_path

    normalized = extract_and_normalize(document, record_path)
    if not normalized.success:
        print(f"Error: {normalized.error}", file=sys.stderr)
        return 1

    match = match_template(args.goal, record_path, normalized.sample_row)
    print(f"# template {match.template_id}: {match.reason}", file=sys.stderr)
    print(match.plan.to_json(indent=2))
    return 0


def _cmd_transform(args: argparse.Namespace) -> int:
    from .flattening import rows_to_csv, write_export
    from .pipeline import build_preview

    settings = load_settings()
    plan = Path(args.plan).read_text(encoding="utf-8") if args.plan else None
    result = build_preview(
        read_json_content(args.input),
        args.goal,
        plan=plan,
        record_path=args.record_path,
        settings=settings,
    )
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    if not result.success:
        print(f"Error [{result.error_code}]: {result.error}", file=sys.stderr)
        return 1

    if args.output:
        directory, file_name = os.path.split(os.path.abspath(args.output))
        path = write_export(result.rows, args.format, file_name, directory)
        print(f"Wrote {len(result.rows)} rows to {path} ({result.plan_origin} plan)")
    elif args.format == "json":
        print(json.dumps(result.rows, indent=2, ensure_ascii=False))
    else:
        sys.stdout.write(rows_to_csv(result.rows))
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parameters
    ----------
    argv:
        Command-line arguments.  Defaults to ``sys.argv[1:]``.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from json_plan_transformer import __version__
        print(f"json-plan-transformer {__version__}")
        sys.exit(0)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    configure_logging(args.log_level or load_settings().log_level)

    handlers: dict[str, Any] = {
        "discover": _cmd_discover,
        "plan": _cmd_plan,
        "transform": _cmd_transform,
    }

    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        exit_code = handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        exit_code = 130
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
