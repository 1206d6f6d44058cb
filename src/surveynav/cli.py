"""
surveynav.cli - Command-line interface.

Inspect survey definitions without a UI:

    surveynav analyze survey.json     # diagnostics report
    surveynav dot survey.json -o s.dot --mode detailed
    surveynav evaluate "age >= 18" --context '{"age": 20}'

Without a survey path the built-in example survey is used.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from surveynav import __version__
from surveynav.analyzer import SurveyReport, analyze_survey
from surveynav.backends import DotMode, generate_dot
from surveynav.config import ConfigError, load_config
from surveynav.evaluator import evaluate
from surveynav.examples import build_example_survey
from surveynav.model import Survey
from surveynav.serialization import SurveyLoadError, load_survey


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="surveynav",
        description="Survey navigation engine tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  surveynav analyze survey.json           # Report rules, fields, reachability
  surveynav dot survey.yaml -o flow.dot   # Graphviz diagram of the page flow
  surveynav evaluate "country == 'US'" --context '{"country": "CA"}'
        """,
    )
    parser.add_argument("--version", action="version", version=f"surveynav {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--config", help="Engine configuration YAML file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser("analyze", help="Analyze a survey definition")
    analyze_parser.add_argument("survey", nargs="?", help="Survey JSON/YAML file (default: example survey)")
    analyze_parser.add_argument("--computed", action="append", default=[], metavar="FIELD",
                                help="Computed field name available to conditions (repeatable)")
    analyze_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    dot_parser = subparsers.add_parser("dot", help="Generate a Graphviz DOT diagram")
    dot_parser.add_argument("survey", nargs="?", help="Survey JSON/YAML file (default: example survey)")
    dot_parser.add_argument("--mode", choices=[m.value for m in DotMode], default=DotMode.SIMPLE.value)
    dot_parser.add_argument("-o", "--output", help="Write to this file instead of stdout")

    evaluate_parser = subparsers.add_parser("evaluate", help="Evaluate a condition against values")
    evaluate_parser.add_argument("condition", help="Condition text")
    evaluate_parser.add_argument("--context", default="{}", help="Values as a JSON object")

    return parser


def _load(args: argparse.Namespace) -> Survey:
    """Load the survey named on the command line, applying the configured default mode."""
    survey = build_example_survey() if args.survey is None else load_survey(args.survey)
    config = load_config(args.config)
    if survey.mode is None and config.default_mode is not None:
        survey.mode = config.default_mode
    return survey


def _report_to_dict(report: SurveyReport) -> dict:
    return {
        "surveyName": report.survey_name,
        "mode": report.mode,
        "totalPages": report.total_pages,
        "totalBlocks": report.total_blocks,
        "totalRules": report.total_rules,
        "totalConditions": report.total_conditions,
        "undefinedFields": sorted(report.undefined_fields),
        "unparseableConditions": [list(item) for item in report.unparseable_conditions],
        "danglingTargets": [list(item) for item in report.dangling_targets],
        "unreachablePages": report.unreachable_pages,
        "cycle": report.cycle_example,
        "warnings": report.warnings,
    }


def print_report(report: SurveyReport) -> None:
    """Pretty-print a SurveyReport."""
    print("=" * 70)
    print(f"SURVEY ANALYSIS REPORT: {report.survey_name or '(unnamed)'}")
    print("=" * 70)
    print(f"  Mode:                  {report.mode}")
    print(f"  Pages:                 {report.total_pages}")
    print(f"  Blocks:                {report.total_blocks}")
    print(f"  Navigation rules:      {report.total_rules} ({report.default_rules} default)")
    print(f"  Conditions:            {report.total_conditions} "
          f"({report.pattern_conditions} builder shapes, {report.expression_conditions} expressions)")
    print(f"  Blocks with visibleIf: {report.blocks_with_visibility}")
    print(f"  Fields declared:       {len(report.declared_fields)}")
    print(f"  Fields referenced:     {len(report.referenced_fields)}")
    for name, count in sorted(report.field_usage.items()):
        print(f"    {name}: {count} reference(s)")
    print(f"  Has cycles:            {'YES' if report.has_cycles else 'NO'}")
    print()
    if report.warnings:
        print(f"WARNINGS ({len(report.warnings)})")
        for warning in report.warnings:
            print(f"  - {warning}")
    else:
        print("No warnings.")


def analyze_command(args: argparse.Namespace) -> int:
    report = analyze_survey(_load(args), computed_fields=args.computed)
    if args.json:
        print(json.dumps(_report_to_dict(report), indent=2))
    else:
        print_report(report)
    return 1 if report.dangling_targets or report.unparseable_conditions else 0


def dot_command(args: argparse.Namespace) -> int:
    dot = generate_dot(_load(args), mode=DotMode(args.mode))
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(dot)
        print(f"Wrote {args.output}")
    else:
        print(dot)
    return 0


def evaluate_command(args: argparse.Namespace) -> int:
    context = json.loads(args.context)
    if not isinstance(context, dict):
        raise ValueError("--context must be a JSON object")
    result = evaluate(args.condition, context)
    print("true" if result else "false")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "analyze":
            return analyze_command(args)
        elif args.command == "dot":
            return dot_command(args)
        elif args.command == "evaluate":
            return evaluate_command(args)
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    except (SurveyLoadError, ConfigError, OSError, ValueError) as e:
        if args.verbose:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
