"""
Rule Graph Evaluator.

Evaluates a versioned rule set against one snapshot of borrower/loan inputs
and produces an explainable, citation-backed EvaluationSummary.

This is the CORE of the engine:
- Deterministic: same definitions and inputs give the same hash, findings
  order and result
- All-or-nothing: any graph, expression or validation error aborts the run;
  a partial verdict is never returned
- Stateless: safe to call concurrently; the only shared object is an
  optional caller-supplied ExpressionCache

The summary is the contract between the engine and its collaborators, which
persist it, audit it and decide whether to act on its actions.
"""

import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any

from rulegraph.core.config import Settings
from rulegraph.core.config import settings as default_settings
from rulegraph.core.errors import ExpressionError, RuleGraphEngineError
from rulegraph.core.observability import metrics
from rulegraph.domain.enums import RuleResult
from rulegraph.domain.models import (
    EvaluateOptions,
    EvaluationFinding,
    EvaluationSummary,
    RuleDefinition,
    RuleDependencyOutcome,
)
from rulegraph.engine.canonicalizer import canonicalize, compute_snapshot_hash
from rulegraph.engine.expression import ExpressionCache, evaluate_expression
from rulegraph.engine.sorter import sort_rules
from rulegraph.engine.templates import render_template
from rulegraph.engine.validator import (
    validate_inputs,
    validate_options,
    validate_rule_definitions,
)

logger = logging.getLogger(__name__)


def evaluate_rule_graph(
    definitions: Iterable[RuleDefinition | Mapping[str, Any]],
    inputs: Mapping[str, Any],
    options: EvaluateOptions | Mapping[str, Any],
    *,
    cache: ExpressionCache | None = None,
    settings: Settings | None = None,
) -> EvaluationSummary:
    """
    Evaluate a rule graph against one input snapshot.

    This is the main entry point of the engine. It:
    1. Validates options, definitions and inputs
    2. Canonicalizes inputs and hashes the raw snapshot
    3. Sorts definitions so dependencies precede dependents
    4. Evaluates each rule against inputs, asOf and its declared dependencies
    5. Aggregates severity (pass < warn < fail)
    6. Renders message/explain templates
    7. Collects findings and triggered actions in evaluation order

    Args:
        definitions: Rule definitions (models or wire-form mappings)
        inputs: JSON-like input snapshot
        options: EvaluateOptions or mapping ({"asOf": ..., "includePassFindings": ...})
        cache: Optional parse cache shared across calls
        settings: Engine settings (defaults to the environment-loaded settings)

    Returns:
        Complete EvaluationSummary

    Raises:
        ValidationError: If options, definitions or inputs are malformed
        GraphError: On duplicate codes, dependency cycles or missing dependencies
        ExpressionError: If any rule expression fails (rule_code is set)

    Example:
        >>> summary = evaluate_rule_graph(
        ...     [fico_rule, manual_review_rule],
        ...     {"borrower": {"fico": 610}},
        ...     {"asOf": "2024-05-01T00:00:00Z"},
        ... )
        >>> summary.result
        <RuleResult.FAIL: 'fail'>
        >>> [f.code for f in summary.findings]
        ['FICO_MIN', 'MANUAL_REVIEW']
    """
    settings = settings or default_settings

    # Step 0: Reject malformed calls before evaluation begins
    options = validate_options(options)
    definitions = validate_rule_definitions(definitions, settings)
    validate_inputs(inputs, settings.max_input_depth)

    start_time = time.perf_counter()

    try:
        # Step 1: Canonicalize once; hash the raw snapshot the caller supplied
        canonical_inputs = canonicalize(inputs)
        snapshot_hash = compute_snapshot_hash(inputs)

        # Step 2: Dependency order (GraphError propagates; no findings)
        ordered = sort_rules(definitions)

        findings: list[EvaluationFinding] = []
        actions: list[Any] = []
        outcomes: dict[str, RuleDependencyOutcome] = {}
        aggregate = RuleResult.PASS

        for definition in ordered:
            # Step 3: Only declared (and therefore already evaluated) dependencies are visible
            visible = {code: outcomes[code] for code in definition.dependencies}
            environment = {
                "inputs": canonical_inputs,
                "asOf": options.as_of,
                "dependencies": {code: outcome.result.value for code, outcome in visible.items()},
            }

            # Step 4: Evaluate and map to severity
            triggered = _evaluate_rule(definition, environment, cache)
            severity = definition.severity_on_fail if triggered else RuleResult.PASS

            # Step 5: Aggregate
            aggregate = RuleResult.worst(aggregate, severity)

            # Step 6: Explain
            context = {
                "inputs": canonical_inputs,
                "triggered": triggered,
                "severity": severity.value,
                "asOf": options.as_of,
                "dependencies": {
                    code: outcome.model_dump(mode="json") for code, outcome in visible.items()
                },
            }
            message, explain = _render_finding_text(definition, triggered, context)

            # Step 7: Record finding
            if severity != RuleResult.PASS or options.include_pass_findings:
                findings.append(
                    EvaluationFinding(
                        code=definition.code,
                        severity=severity,
                        message=message,
                        explain=explain,
                        rule_version_id=definition.version_id,
                        title=definition.title,
                        citations=list(definition.citations),
                        actions=definition.actions_on_fail if triggered else None,
                    )
                )

            # Step 8: Collect triggered actions (opaque, in evaluation order)
            if triggered and definition.actions_on_fail is not None:
                actions.append(definition.actions_on_fail)

            # Step 9: Publish outcome to later dependents
            outcomes[definition.code] = RuleDependencyOutcome(
                code=definition.code, result=severity, triggered=triggered
            )

        latency_ms = (time.perf_counter() - start_time) * 1000

    except RuleGraphEngineError as e:
        duration = time.perf_counter() - start_time
        logger.warning(
            "Rule graph evaluation aborted: %s",
            e.message,
            extra={"error_type": type(e).__name__, "details": e.details},
        )
        _record_evaluation_metrics(settings, "error", None, duration, 0, [])
        raise

    logger.info(
        "Evaluated rule graph: %d rules, result=%s, findings=%d, actions=%d, latency=%.3fms",
        len(ordered),
        aggregate.value,
        len(findings),
        len(actions),
        latency_ms,
        extra={"inputs_snapshot_hash": snapshot_hash, "shadow": options.shadow},
    )
    _record_evaluation_metrics(
        settings, "success", aggregate, latency_ms / 1000, len(ordered), findings
    )

    return EvaluationSummary(
        result=aggregate,
        findings=findings,
        actions=actions,
        inputs_snapshot_hash=snapshot_hash,
        inputs_canonical=canonical_inputs,
        latency_ms=round(latency_ms, 3),
    )


def _evaluate_rule(
    definition: RuleDefinition, environment: dict[str, Any], cache: ExpressionCache | None
) -> bool:
    """
    Evaluate one rule's expression.

    Raises:
        ExpressionError: Wrapping the underlying failure with the rule code
    """
    try:
        return evaluate_expression(definition.expression, environment, cache)
    except ExpressionError as e:
        raise ExpressionError(
            f"Expression evaluation failed for rule '{definition.code}': {e.message}",
            details={
                **e.details,
                "rule_code": definition.code,
                "rule_version_id": definition.version_id,
                "expression": definition.expression,
                "error": e.message,
            },
            rule_code=definition.code,
        ) from e


def _render_finding_text(
    definition: RuleDefinition, triggered: bool, context: dict[str, Any]
) -> tuple[str, str]:
    """
    Render message and explain for one rule outcome.

    Fail templates are used when triggered. Otherwise pass_message (or a
    generated "<title> passed.") and pass_explain, falling back to
    fail_explain when no pass explanation is authored. Text that renders
    empty is replaced by the template as authored.
    """
    if triggered:
        return (
            _render_or_template(definition.fail_message, context),
            _render_or_template(definition.fail_explain, context),
        )

    if definition.pass_message:
        message = _render_or_template(definition.pass_message, context)
    else:
        message = f"{definition.title} passed."

    # Without pass_explain the fail explanation is rendered as authored
    explain_template = (
        definition.pass_explain if definition.pass_explain is not None else definition.fail_explain
    )
    return message, _render_or_template(explain_template, context)


def _render_or_template(template: str | None, context: dict[str, Any]) -> str:
    return render_template(template, context) or template or ""


def _record_evaluation_metrics(
    settings: Settings,
    status: str,
    result: RuleResult | None,
    duration: float,
    rule_count: int,
    findings: list[EvaluationFinding],
) -> None:
    """
    Record evaluation metrics to Prometheus.

    Args:
        settings: Engine settings (metrics are skipped when observability is off)
        status: "success" or "error"
        result: Aggregate result (None on error)
        duration: Evaluation duration in seconds
        rule_count: Number of rules evaluated
        findings: Findings emitted
    """
    if not settings.observability_enabled:
        return

    metrics.evaluations_total.labels(
        status=status, result=result.value if result else "none"
    ).inc()
    metrics.evaluation_duration_seconds.observe(duration)

    if status == "success":
        metrics.evaluation_rules_count.observe(rule_count)
        for finding in findings:
            metrics.findings_total.labels(severity=finding.severity.value).inc()
