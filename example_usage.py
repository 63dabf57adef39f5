"""
Example usage of the rule-graph engine.

This file demonstrates how a caller (API handler, workflow activity) builds
rule definitions, evaluates them against a loan snapshot and reads the
summary. Run it directly:

    python example_usage.py
"""

from rulegraph.core.errors import CycleError, ExpressionError
from rulegraph.core.observability import configure_structured_logging, set_correlation_id
from rulegraph.domain.models import RuleDefinition
from rulegraph.engine.canonicalizer import to_canonical_json_pretty
from rulegraph.engine.evaluator import evaluate_rule_graph
from rulegraph.engine.expression import ExpressionCache

# ============================================================================
# Example 1: Rules with a dependency
# ============================================================================

FICO_MIN = RuleDefinition(
    id="fico-1",
    code="FICO_MIN",
    title="Minimum FICO",
    version_id="rv-fico-1",
    expression="inputs.borrower.fico < 620",
    severity_on_fail="fail",
    citations=["12 CFR §1026.43"],
    fail_message="FICO {{ inputs.borrower.fico }} below 620 threshold.",
    fail_explain="Borrower FICO {{ inputs.borrower.fico }} triggers failure.",
    pass_message="FICO {{ inputs.borrower.fico }} meets requirement.",
    pass_explain="Borrower FICO {{ inputs.borrower.fico }} meets policy.",
)

# Wire-form (camelCase) mappings are accepted as well
MANUAL_REVIEW = {
    "id": "fico-2",
    "code": "MANUAL_REVIEW",
    "title": "Manual Review",
    "versionId": "rv-review-1",
    "expression": "dependencies.FICO_MIN == 'fail'",
    "severityOnFail": "warn",
    "citations": ["HUD ML 2023-12"],
    "failMessage": "Manual review required for borrower.",
    "failExplain": "FICO_MIN was {{ dependencies.FICO_MIN.result }}.",
    "dependencies": ["FICO_MIN"],
    "actionsOnFail": {"type": "QUEUE_MANUAL", "queue": "compliance"},
}


def example_failing_borrower() -> None:
    summary = evaluate_rule_graph(
        [MANUAL_REVIEW, FICO_MIN],
        {"borrower": {"fico": 610}},
        {"asOf": "2024-05-01T00:00:00Z"},
    )
    print(f"result={summary.result.value} hash={summary.inputs_snapshot_hash[:12]}")
    for finding in summary.findings:
        print(f"  [{finding.severity.value}] {finding.code}: {finding.message}")
    print(f"  actions={summary.actions}")


# ============================================================================
# Example 2: Passing borrower, pass findings requested, shared parse cache
# ============================================================================


def example_passing_borrower(cache: ExpressionCache) -> None:
    summary = evaluate_rule_graph(
        [FICO_MIN, MANUAL_REVIEW],
        {"borrower": {"fico": 720}},
        {"asOf": "2024-05-01T00:00:00Z", "includePassFindings": True},
        cache=cache,
    )
    print(to_canonical_json_pretty(summary.model_dump(mode="json", by_alias=True)))


# ============================================================================
# Example 3: Errors abort the whole run
# ============================================================================


def example_errors() -> None:
    cyclic = [
        FICO_MIN.model_copy(update={"dependencies": ["MANUAL_REVIEW"]}),
        MANUAL_REVIEW,
    ]
    try:
        evaluate_rule_graph(cyclic, {"borrower": {"fico": 610}}, {"asOf": "2024-05-01"})
    except CycleError as e:
        print(f"cycle: {e.cycle}")

    try:
        evaluate_rule_graph([FICO_MIN], {"borrower": {}}, {"asOf": "2024-05-01"})
    except ExpressionError as e:
        print(f"rule {e.rule_code} failed: {e.details['error']}")


if __name__ == "__main__":
    configure_structured_logging("WARNING")
    set_correlation_id("example-usage")
    example_failing_borrower()
    example_passing_borrower(ExpressionCache(maxsize=64))
    example_errors()
