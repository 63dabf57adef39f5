"""
Rule definitions, evaluation options and evaluation results.

Attributes are snake_case; the camelCase aliases (severityOnFail, versionId,
inputsSnapshotHash, ...) are the wire names collaborators exchange. Both are
accepted on input and model_dump(by_alias=True) produces the wire form.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from rulegraph.domain.enums import RuleResult

_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel, populate_by_name=True, frozen=True, coerce_numbers_to_str=True
)


class RuleDefinition(BaseModel):
    """One immutable policy unit, pinned to a specific version."""

    model_config = _MODEL_CONFIG

    id: str
    code: str = Field(min_length=1)
    title: str
    version_id: str
    expression: str = Field(min_length=1)
    severity_on_fail: RuleResult
    citations: list[str] = Field(default_factory=list)
    fail_message: str
    fail_explain: str
    pass_message: str | None = None
    pass_explain: str | None = None
    # Forwarded verbatim when the rule triggers; action kinds are owned by callers
    actions_on_fail: Any = None
    dependencies: list[str] = Field(default_factory=list)

    @field_validator("severity_on_fail")
    @classmethod
    def validate_severity_on_fail(cls, v: RuleResult) -> RuleResult:
        """A triggered rule must produce warn or fail."""
        if v == RuleResult.PASS:
            raise ValueError("severity_on_fail must be 'warn' or 'fail'")
        return v

    @field_validator("dependencies", mode="before")
    @classmethod
    def default_dependencies(cls, v: Any) -> Any:
        return [] if v is None else v


class RuleDependencyOutcome(BaseModel):
    """Outcome of one rule, visible to its dependents within the same run."""

    model_config = _MODEL_CONFIG

    code: str
    result: RuleResult
    triggered: bool


class EvaluationFinding(BaseModel):
    model_config = _MODEL_CONFIG

    code: str
    severity: RuleResult
    message: str
    explain: str
    rule_version_id: str
    title: str
    citations: list[str]
    actions: Any = None


class EvaluationSummary(BaseModel):
    """
    Complete result of one evaluation.

    findings are in evaluation order (dependencies before dependents);
    actions holds the actions_on_fail payloads of triggered rules in the
    same order.
    """

    model_config = _MODEL_CONFIG

    result: RuleResult
    findings: list[EvaluationFinding]
    actions: list[Any]
    inputs_snapshot_hash: str
    inputs_canonical: Any
    latency_ms: float


class EvaluateOptions(BaseModel):
    """
    Per-call evaluation options.

    shadow is carried for collaborators that must not execute actions
    against live systems; the engine computes actions regardless.
    """

    model_config = _MODEL_CONFIG

    as_of: str
    shadow: bool = False
    include_pass_findings: bool = False

    @field_validator("as_of")
    @classmethod
    def validate_as_of(cls, v: str) -> str:
        """asOf must be an ISO-8601 date or timestamp."""
        try:
            datetime.fromisoformat(v)
        except ValueError as e:
            raise ValueError(f"as_of must be an ISO-8601 timestamp, got '{v}'") from e
        return v
