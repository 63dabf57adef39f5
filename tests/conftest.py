"""
Pytest configuration and shared fixtures for engine tests.

Provides:
- AnyIO backend selection for @pytest.mark.anyio tests
- Rule definition fixtures for the FICO_MIN / MANUAL_REVIEW scenario
- make_rule factory for ad-hoc definitions
- Engine settings with observability disabled
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]

# Add project root to path for imports
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402 (import after path setup)

from rulegraph.core.config import Settings  # noqa: E402
from rulegraph.domain.models import RuleDefinition  # noqa: E402


# =============================================================================
# AnyIO Backend Configuration
# =============================================================================
# Per AnyIO testing docs: https://anyio.readthedocs.io/en/stable/testing.html
@pytest.fixture
def anyio_backend():
    return "asyncio"


# =============================================================================
# Rule Definition Factories
# =============================================================================


@pytest.fixture
def make_rule() -> Callable[..., RuleDefinition]:
    """
    Factory for rule definitions with sensible defaults.

    Usage:
        rule = make_rule("A", "inputs.value > 0", dependencies=["B"])
    """

    def _make(code: str, expression: str = "false", **overrides: Any) -> RuleDefinition:
        fields: dict[str, Any] = {
            "id": f"id-{code}",
            "code": code,
            "title": f"Rule {code}",
            "version_id": f"rv-{code}",
            "expression": expression,
            "severity_on_fail": "fail",
            "citations": [],
            "fail_message": f"{code} failed",
            "fail_explain": f"{code} failed",
        }
        fields.update(overrides)
        return RuleDefinition(**fields)

    return _make


@pytest.fixture
def fico_rule() -> RuleDefinition:
    return RuleDefinition(
        id="fico-1",
        code="FICO_MIN",
        title="Minimum FICO",
        version_id="rv-fico-1",
        expression="inputs.borrower.fico < 620",
        severity_on_fail="fail",
        citations=["12 CFR §1026.43"],
        fail_message="FICO {{inputs.borrower.fico}} below 620 threshold.",
        fail_explain="Borrower FICO {{inputs.borrower.fico}} triggers failure.",
        pass_message="FICO {{inputs.borrower.fico}} meets requirement.",
        pass_explain="Borrower FICO {{inputs.borrower.fico}} meets policy.",
    )


@pytest.fixture
def manual_review_rule() -> RuleDefinition:
    return RuleDefinition(
        id="fico-2",
        code="MANUAL_REVIEW",
        title="Manual Review",
        version_id="rv-review-1",
        expression="dependencies.FICO_MIN == 'fail'",
        severity_on_fail="warn",
        citations=["HUD ML 2023-12"],
        fail_message="Manual review required for borrower.",
        fail_explain="Triggered due to downstream dependency.",
        dependencies=["FICO_MIN"],
        actions_on_fail={"type": "QUEUE_MANUAL", "queue": "compliance"},
    )


@pytest.fixture
def quiet_settings() -> Settings:
    """Settings with metrics disabled so tests do not share counter state."""
    return Settings(app_env="test", observability_enabled=False)
