"""
Rule-graph evaluation engine.

This package evaluates declarative policy rules with dependencies against a
snapshot of inputs and returns explainable, citation-backed findings.

Key Components:
- canonicalizer: Deterministic input ordering and snapshot hashing
- sorter: Dependency ordering with cycle detection
- expression: Sandboxed predicate language
- templates: Finding message/explain rendering
- validator: Boundary validation of options, definitions and inputs
- evaluator: Orchestration (evaluate_rule_graph)

Design Principles:
- Determinism: Same input produces identical hash, findings and result
- All-or-nothing: Errors abort the run; no partial verdicts
- Explicitness: Rules only see the outcomes they declare as dependencies
"""

from rulegraph.engine.canonicalizer import canonicalize, compute_snapshot_hash, stable_stringify
from rulegraph.engine.evaluator import evaluate_rule_graph
from rulegraph.engine.expression import ExpressionCache, evaluate_expression
from rulegraph.engine.sorter import sort_rules
from rulegraph.engine.templates import render_template

__all__ = [
    "evaluate_rule_graph",
    "sort_rules",
    "canonicalize",
    "compute_snapshot_hash",
    "stable_stringify",
    "evaluate_expression",
    "ExpressionCache",
    "render_template",
]
