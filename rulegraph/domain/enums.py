"""
Domain enums shared by rule definitions and evaluation results.
"""

from enum import Enum


class RuleResult(str, Enum):
    """
    Outcome severity of a single rule and of a whole evaluation.

    Totally ordered: PASS < WARN < FAIL. The aggregate result of an
    evaluation is the worst severity seen across all rules.
    """

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @classmethod
    def worst(cls, current: "RuleResult", candidate: "RuleResult") -> "RuleResult":
        """Return the more severe of two results (ties keep current)."""
        return candidate if candidate.rank > current.rank else current


_RANK = {RuleResult.PASS: 0, RuleResult.WARN: 1, RuleResult.FAIL: 2}
