"""
Message and explanation templates for findings.

Templates use ``{{ dotted.path }}`` placeholders resolved against the
per-rule context, e.g. ``FICO {{ inputs.borrower.fico }} below 620.``
Rendering never raises: unresolved paths render as empty strings.
"""

import re
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from rulegraph.engine.canonicalizer import format_decimal, to_canonical_json_string

_PLACEHOLDER_RE = re.compile(r"{{\s*([^}\s]+)\s*}}")

_MISSING = object()


def _resolve(path: str, context: Mapping[str, Any]) -> Any:
    current: Any = context
    for segment in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(segment, _MISSING)
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else _MISSING
        else:
            return _MISSING
        if current is _MISSING:
            return _MISSING
    return current


def _to_text(value: Any) -> str:
    if value is None or value is _MISSING:
        return ""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return format_decimal(value)
    if isinstance(value, (Mapping, list, tuple)):
        return to_canonical_json_string(value)
    return str(value)


def render_template(template: str | None, context: Mapping[str, Any]) -> str:
    """
    Interpolate ``{{ dotted.path }}`` placeholders from context.

    Each placeholder is replaced exactly once; substituted text is never
    scanned again, so input values cannot inject further placeholders.

    Args:
        template: Template text (None or empty renders as "")
        context: Values the placeholders resolve against

    Returns:
        Rendered text. Numbers use decimal formatting (610, not 610.0);
        objects and lists render as canonical JSON; missing values render
        as "".
    """
    if not template:
        return ""
    return _PLACEHOLDER_RE.sub(lambda match: _to_text(_resolve(match.group(1), context)), template)
