"""
Boundary validation for rule-graph evaluations.

Rejects malformed calls before any rule is evaluated:
- Options must carry an ISO-8601 asOf
- Rule definitions must be well-formed and within configured limits
- Inputs must be a JSON-like mapping: string keys, finite numbers,
  no cycles, bounded nesting depth

This validation is the gatekeeper that keeps canonicalization total and the
evaluation cost bounded.
"""

import math
import uuid
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any

import pydantic

from rulegraph.core.config import Settings
from rulegraph.core.errors import ValidationError
from rulegraph.domain.models import EvaluateOptions, RuleDefinition


def validate_options(options: EvaluateOptions | Mapping[str, Any]) -> EvaluateOptions:
    """
    Coerce and validate evaluation options.

    Args:
        options: EvaluateOptions or a mapping using wire (asOf) or
                 attribute (as_of) names

    Returns:
        Validated EvaluateOptions

    Raises:
        ValidationError: If asOf is missing or not ISO-8601
    """
    if isinstance(options, EvaluateOptions):
        return options
    if not isinstance(options, Mapping):
        raise ValidationError(
            "Evaluation options must be a mapping",
            details={"type": type(options).__name__},
        )
    try:
        return EvaluateOptions.model_validate(dict(options))
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid evaluation options", details={"errors": _error_list(e)}
        ) from e


def validate_rule_definitions(
    definitions: Iterable[RuleDefinition | Mapping[str, Any]], settings: Settings
) -> list[RuleDefinition]:
    """
    Coerce and validate rule definitions.

    Graph-level checks (duplicate codes, cycles, missing dependencies) are
    left to the sorter, which reports them as GraphError.

    Args:
        definitions: RuleDefinitions or mappings in wire form
        settings: Supplies max_rules and max_expression_length

    Returns:
        List of validated RuleDefinitions in caller order

    Raises:
        ValidationError: If any definition is malformed or a limit is exceeded
    """
    if isinstance(definitions, (str, bytes, Mapping)) or not isinstance(definitions, Iterable):
        raise ValidationError(
            "Rule definitions must be a list",
            details={"type": type(definitions).__name__},
        )

    validated: list[RuleDefinition] = []
    for i, definition in enumerate(definitions):
        path = f"$[{i}]"
        if not isinstance(definition, RuleDefinition):
            if not isinstance(definition, Mapping):
                raise ValidationError(
                    f"Rule definition must be an object at {path}",
                    details={"path": path, "type": type(definition).__name__},
                )
            try:
                definition = RuleDefinition.model_validate(dict(definition))
            except pydantic.ValidationError as e:
                raise ValidationError(
                    f"Invalid rule definition at {path}",
                    details={
                        "path": path,
                        "code": definition.get("code"),
                        "errors": _error_list(e),
                    },
                ) from e

        if len(definition.expression) > settings.max_expression_length:
            raise ValidationError(
                f"Expression of rule '{definition.code}' exceeds maximum length of "
                f"{settings.max_expression_length}",
                details={
                    "path": path,
                    "code": definition.code,
                    "length": len(definition.expression),
                },
            )
        validated.append(definition)

    if len(validated) > settings.max_rules:
        raise ValidationError(
            f"Rule set exceeds maximum of {settings.max_rules} rules",
            details={"rule_count": len(validated), "max_rules": settings.max_rules},
        )

    return validated


def validate_inputs(inputs: Any, max_depth: int) -> None:
    """
    Validate that inputs are a JSON-like mapping that canonicalization can handle.

    Accepted leaf types: None, bool, str, int, finite float/Decimal, date,
    datetime, UUID. Containers: mappings with string keys, lists, tuples.

    Args:
        inputs: Raw caller inputs
        max_depth: Maximum container nesting depth

    Raises:
        ValidationError: With the JSONPath of the first offending value
    """
    if not isinstance(inputs, Mapping):
        raise ValidationError(
            "Evaluation inputs must be an object", details={"type": type(inputs).__name__}
        )
    _validate_value(inputs, path="$", depth=0, max_depth=max_depth, ancestors=set())


def _validate_value(
    value: Any, path: str, depth: int, max_depth: int, ancestors: set[int]
) -> None:
    """
    Recursively validate one input value.

    Args:
        value: Current value being validated
        path: JSONPath to current value (for error reporting)
        depth: Current container depth
        max_depth: Maximum container depth
        ancestors: ids of containers on the current path (cycle detection)

    Raises:
        ValidationError: If validation fails at this value
    """
    if isinstance(value, str):
        _validate_text(value, path)
        return

    if value is None or isinstance(value, (bool, int, date, uuid.UUID)):
        return

    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(
                f"Non-finite number at {path}", details={"path": path, "value": str(value)}
            )
        return

    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValidationError(
                f"Non-finite number at {path}", details={"path": path, "value": str(value)}
            )
        return

    if not isinstance(value, (Mapping, list, tuple)):
        raise ValidationError(
            f"Unsupported value type at {path}: {type(value).__name__}",
            details={"path": path, "type": type(value).__name__},
        )

    if depth >= max_depth:
        raise ValidationError(
            f"Inputs exceed maximum nesting depth of {max_depth} at {path}",
            details={"path": path, "max_depth": max_depth},
        )

    if id(value) in ancestors:
        raise ValidationError(f"Cyclic reference in inputs at {path}", details={"path": path})

    ancestors.add(id(value))
    try:
        if isinstance(value, Mapping):
            for key, child in value.items():
                if not isinstance(key, str):
                    raise ValidationError(
                        f"Object keys must be strings at {path}",
                        details={"path": path, "key_type": type(key).__name__},
                    )
                _validate_text(key, path)
                _validate_value(child, f"{path}.{key}", depth + 1, max_depth, ancestors)
        else:
            for i, child in enumerate(value):
                _validate_value(child, f"{path}[{i}]", depth + 1, max_depth, ancestors)
    finally:
        ancestors.discard(id(value))


def _validate_text(text: str, path: str) -> None:
    # Lone surrogates survive json.loads but cannot be hashed as UTF-8
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValidationError(
            f"Text is not valid UTF-8 at {path}",
            details={"path": path, "position": e.start},
        ) from e


def _error_list(error: pydantic.ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
        for err in error.errors()
    ]
