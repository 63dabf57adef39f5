"""
Tests for dependency ordering of rule definitions.
"""

import pytest

from rulegraph.core.errors import (
    CycleError,
    DuplicateRuleCodeError,
    GraphError,
    MissingDependencyError,
)
from rulegraph.engine.sorter import sort_rules


def _codes(definitions):
    return [d.code for d in definitions]


class TestSortRules:
    """Test topological ordering."""

    @pytest.mark.anyio
    async def test_dependency_precedes_dependent(self, fico_rule, manual_review_rule):
        """Test that a dependency is evaluated first even when supplied last."""
        ordered = sort_rules([manual_review_rule, fico_rule])

        assert _codes(ordered) == ["FICO_MIN", "MANUAL_REVIEW"]

    @pytest.mark.anyio
    async def test_independent_rules_keep_caller_order(self, make_rule):
        rules = [make_rule("C"), make_rule("A"), make_rule("B")]

        assert _codes(sort_rules(rules)) == ["C", "A", "B"]

    @pytest.mark.anyio
    async def test_diamond(self, make_rule):
        rules = [
            make_rule("D", dependencies=["B", "C"]),
            make_rule("B", dependencies=["A"]),
            make_rule("C", dependencies=["A"]),
            make_rule("A"),
        ]

        assert _codes(sort_rules(rules)) == ["A", "B", "C", "D"]

    @pytest.mark.anyio
    async def test_returns_same_definitions(self, make_rule):
        rules = [make_rule("B", dependencies=["A"]), make_rule("A")]

        ordered = sort_rules(rules)

        assert ordered[0] is rules[1]
        assert ordered[1] is rules[0]
        assert _codes(rules) == ["B", "A"]

    @pytest.mark.anyio
    async def test_empty(self):
        assert sort_rules([]) == []

    @pytest.mark.anyio
    async def test_long_chain_does_not_recurse(self, make_rule):
        """A chain longer than the default recursion limit still sorts."""
        length = 3000
        rules = [
            make_rule(f"R{i}", dependencies=[f"R{i - 1}"] if i else []) for i in range(length)
        ]
        rules.reverse()

        ordered = sort_rules(rules)

        assert _codes(ordered) == [f"R{i}" for i in range(length)]

    @pytest.mark.anyio
    async def test_deterministic(self, make_rule):
        rules = [
            make_rule("X", dependencies=["Z"]),
            make_rule("Y"),
            make_rule("Z"),
        ]

        assert _codes(sort_rules(rules)) == _codes(sort_rules(rules)) == ["Z", "X", "Y"]


class TestSortRulesErrors:
    """Test structural errors in the rule graph."""

    @pytest.mark.anyio
    async def test_two_rule_cycle(self, make_rule):
        rules = [make_rule("A", dependencies=["B"]), make_rule("B", dependencies=["A"])]

        with pytest.raises(CycleError) as exc_info:
            sort_rules(rules)

        assert exc_info.value.cycle == ["A", "B", "A"]
        assert "A -> B -> A" in exc_info.value.message
        assert exc_info.value.details["cycle"] == ["A", "B", "A"]

    @pytest.mark.anyio
    async def test_self_dependency(self, make_rule):
        with pytest.raises(CycleError) as exc_info:
            sort_rules([make_rule("A", dependencies=["A"])])

        assert exc_info.value.cycle == ["A", "A"]

    @pytest.mark.anyio
    async def test_cycle_reported_without_acyclic_prefix(self, make_rule):
        rules = [
            make_rule("ROOT", dependencies=["A"]),
            make_rule("A", dependencies=["B"]),
            make_rule("B", dependencies=["C"]),
            make_rule("C", dependencies=["A"]),
        ]

        with pytest.raises(CycleError) as exc_info:
            sort_rules(rules)

        assert exc_info.value.cycle == ["A", "B", "C", "A"]

    @pytest.mark.anyio
    async def test_missing_dependency(self, make_rule):
        with pytest.raises(MissingDependencyError) as exc_info:
            sort_rules([make_rule("A", dependencies=["GHOST"])])

        assert exc_info.value.missing_code == "GHOST"
        assert exc_info.value.required_by == "A"
        assert "GHOST" in exc_info.value.message

    @pytest.mark.anyio
    async def test_duplicate_code(self, make_rule):
        with pytest.raises(DuplicateRuleCodeError) as exc_info:
            sort_rules([make_rule("A"), make_rule("B"), make_rule("A")])

        assert exc_info.value.code == "A"

    @pytest.mark.anyio
    async def test_graph_errors_share_base_class(self, make_rule):
        for rules in (
            [make_rule("A", dependencies=["A"])],
            [make_rule("A", dependencies=["MISSING"])],
            [make_rule("A"), make_rule("A")],
        ):
            with pytest.raises(GraphError):
                sort_rules(rules)
