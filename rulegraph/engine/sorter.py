"""
Dependency ordering for rule definitions.

Rules may read the outcomes of the rules they declare as dependencies, so a
rule set must be evaluated in topological order. The order is deterministic:
independent rules keep the order the caller supplied them in.
"""

import logging
from collections.abc import Sequence

from rulegraph.core.errors import CycleError, DuplicateRuleCodeError, MissingDependencyError
from rulegraph.domain.models import RuleDefinition

logger = logging.getLogger(__name__)

_IN_PROGRESS = 1
_DONE = 2


def sort_rules(definitions: Sequence[RuleDefinition]) -> list[RuleDefinition]:
    """
    Order rule definitions so every dependency precedes its dependents.

    Depth-first traversal with three-color marking (unvisited, in progress,
    done), starting from each definition in caller order. An explicit stack
    replaces recursion so long dependency chains cannot exhaust the
    interpreter stack.

    Args:
        definitions: Rule definitions keyed by their unique code

    Returns:
        New list with the same definitions in dependency order

    Raises:
        DuplicateRuleCodeError: If two definitions share a code
        CycleError: If dependencies form a cycle (carries the cycle path)
        MissingDependencyError: If a dependency names an unknown code

    Example:
        >>> [d.code for d in sort_rules([review_rule, fico_rule])]
        ['FICO_MIN', 'MANUAL_REVIEW']
    """
    by_code: dict[str, RuleDefinition] = {}
    for definition in definitions:
        if definition.code in by_code:
            raise DuplicateRuleCodeError(definition.code)
        by_code[definition.code] = definition

    state: dict[str, int] = {}
    ordered: list[RuleDefinition] = []

    for root in definitions:
        if state.get(root.code) == _DONE:
            continue

        # Each frame is (code, iterator over its remaining dependencies)
        path: list[str] = [root.code]
        stack = [(root.code, iter(root.dependencies))]
        state[root.code] = _IN_PROGRESS

        while stack:
            code, pending = stack[-1]
            dep = next(pending, None)

            if dep is None:
                stack.pop()
                path.pop()
                state[code] = _DONE
                ordered.append(by_code[code])
                continue

            dep_state = state.get(dep)
            if dep_state == _DONE:
                continue
            if dep_state == _IN_PROGRESS:
                cycle = path[path.index(dep) :] + [dep]
                logger.warning("Rule dependency cycle detected: %s", " -> ".join(cycle))
                raise CycleError(cycle)
            if dep not in by_code:
                raise MissingDependencyError(dep, required_by=code)

            state[dep] = _IN_PROGRESS
            path.append(dep)
            stack.append((dep, iter(by_code[dep].dependencies)))

    return ordered
