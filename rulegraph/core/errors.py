"""
Domain-specific exceptions for the rule-graph evaluation engine.

Every failure surfaced to callers derives from RuleGraphEngineError. The engine
never recovers internally: a run either returns a complete EvaluationSummary or
raises one of these. Callers (API layer, workflow workers) map them to their
own responses via get_status_code().
"""

from typing import Any


class RuleGraphEngineError(Exception):
    """Base exception for all rule-graph engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(RuleGraphEngineError):
    """
    Raised when inputs, options or rule definitions are malformed.

    Examples:
    - asOf is not an ISO-8601 timestamp
    - inputs contain a non-JSON value (set, object, NaN)
    - inputs reference themselves (cyclic structure)
    - a rule definition is missing a required field

    Rejected before evaluation begins.
    HTTP Status: 400 Bad Request
    """

    pass


class GraphError(RuleGraphEngineError):
    """
    Raised when the rule set itself is structurally broken.

    Not retryable without fixing the rule configuration.
    HTTP Status: 422 Unprocessable Entity
    """

    pass


class CycleError(GraphError):
    """Raised when rule dependencies form a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(
            f"Cycle detected in rule dependencies: {' -> '.join(self.cycle)}",
            details={"cycle": self.cycle},
        )


class MissingDependencyError(GraphError):
    """Raised when a rule depends on a code absent from the rule set."""

    def __init__(self, missing_code: str, required_by: str | None = None):
        self.missing_code = missing_code
        self.required_by = required_by
        super().__init__(
            f"Missing rule definition for dependency: {missing_code}",
            details={"missing_code": missing_code, "required_by": required_by},
        )


class DuplicateRuleCodeError(GraphError):
    """Raised when two definitions in one graph share a code."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(
            f"Duplicate rule code in rule set: {code}",
            details={"code": code},
        )


class ExpressionError(RuleGraphEngineError):
    """
    Raised when a rule expression cannot be parsed or evaluated.

    Examples:
    - Unknown identifier or input path
    - Comparing a string with a number
    - Division by zero
    - Reading a dependency the rule did not declare

    Fatal to the whole run; rule_code names the offending rule once the
    evaluator has attached it.
    HTTP Status: 422 Unprocessable Entity
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        rule_code: str | None = None,
    ):
        self.rule_code = rule_code
        super().__init__(message, details)


# HTTP Status Code Mapping
ERROR_STATUS_MAP = {
    ValidationError: 400,
    GraphError: 422,
    CycleError: 422,
    MissingDependencyError: 422,
    DuplicateRuleCodeError: 422,
    ExpressionError: 422,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    return ERROR_STATUS_MAP.get(type(error), 500)
