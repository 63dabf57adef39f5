#!/usr/bin/env python3
"""
Evaluate a rule graph from JSON files.

Usage:
    # Evaluate rules against an input snapshot
    rulegraph-evaluate --rules rules.json --inputs loan.json --as-of 2024-05-01T00:00:00Z

    # Include passing rules in the findings
    rulegraph-evaluate --rules rules.json --inputs loan.json --as-of 2024-05-01 --include-pass

    # Exit 1 when the aggregate result is warn or worse (for CI policy checks)
    rulegraph-evaluate --rules rules.json --inputs loan.json --as-of 2024-05-01 --fail-on warn

Files:
    --rules   JSON list of rule definitions (wire form: code, versionId, severityOnFail, ...)
    --inputs  JSON object with the input snapshot

Exit codes:
    0  evaluation completed (and did not reach --fail-on)
    1  evaluation completed and the result reached --fail-on
    2  the engine rejected the call (validation, graph or expression error)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

from rulegraph.core.config import settings
from rulegraph.core.errors import RuleGraphEngineError, ValidationError
from rulegraph.core.observability import configure_structured_logging, set_correlation_id
from rulegraph.domain.enums import RuleResult
from rulegraph.engine.canonicalizer import to_canonical_json_pretty
from rulegraph.engine.evaluator import evaluate_rule_graph
from rulegraph.engine.expression import ExpressionCache

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_POLICY = 1
EXIT_ERROR = 2


def _load_json(path: Path) -> Any:
    """Load a JSON file, keeping decimal literals exact."""
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f, parse_float=Decimal)
    except OSError as e:
        raise ValidationError(
            f"Cannot read {path}: {e.strerror}", details={"path": str(path)}
        ) from e
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"Invalid JSON in {path}: {e.msg} (line {e.lineno})",
            details={"path": str(path), "line": e.lineno},
        ) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rulegraph-evaluate",
        description="Evaluate a rule graph against an input snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--rules", type=Path, required=True, help="JSON list of rule definitions")
    parser.add_argument("--inputs", type=Path, required=True, help="JSON object of inputs")
    parser.add_argument("--as-of", required=True, help="ISO-8601 evaluation timestamp")
    parser.add_argument(
        "--include-pass", action="store_true", help="Report findings for passing rules"
    )
    parser.add_argument(
        "--shadow", action="store_true", help="Mark the run as shadow (actions are not executed)"
    )
    parser.add_argument(
        "--fail-on",
        choices=[RuleResult.WARN.value, RuleResult.FAIL.value],
        default=None,
        help="Exit 1 when the aggregate result reaches this severity",
    )
    parser.add_argument("--correlation-id", default=None, help="Correlation ID for log lines")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    configure_structured_logging(settings.app_log_level, settings.observability_structured_logs)
    if args.correlation_id:
        set_correlation_id(args.correlation_id)

    try:
        definitions = _load_json(args.rules)
        inputs = _load_json(args.inputs)
        summary = evaluate_rule_graph(
            definitions,
            inputs,
            {
                "asOf": args.as_of,
                "shadow": args.shadow,
                "includePassFindings": args.include_pass,
            },
            cache=ExpressionCache(maxsize=settings.expression_cache_size),
            settings=settings,
        )
    except RuleGraphEngineError as e:
        error = {"error": type(e).__name__, "message": e.message, "details": e.details}
        print(to_canonical_json_pretty(error), file=sys.stderr)
        return EXIT_ERROR

    print(to_canonical_json_pretty(summary.model_dump(mode="json", by_alias=True)))

    if args.fail_on and summary.result.rank >= RuleResult(args.fail_on).rank:
        logger.info("Result %s reached --fail-on %s", summary.result.value, args.fail_on)
        return EXIT_POLICY
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
