"""
Input canonicalization and snapshot hashing.

Ensures that the inputs of an evaluation serialize byte-for-byte identically
whenever they are semantically equal, by enforcing consistent key ordering
and number rendering.

This is CRITICAL for:
- Audit reproducibility (the snapshot hash is stored next to each result)
- Detecting whether two evaluations actually saw different inputs
"""

import hashlib
import json
import uuid
from collections.abc import Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

# Integers beyond this magnitude cannot round-trip through IEEE-754 consumers
MAX_SAFE_INTEGER = 2**53 - 1


def canonicalize(value: Any) -> Any:
    """
    Produce a deterministic, canonical representation of a JSON-like value.

    This function ensures:
    - All mapping keys are sorted lexicographically, recursively
    - Lists and tuples keep their order (tuples become lists)
    - datetimes become ISO-8601 UTC strings, dates become YYYY-MM-DD
    - UUIDs and integers outside the JSON-safe range become decimal strings

    Args:
        value: Python object (mapping, sequence, or primitive) to canonicalize

    Returns:
        Canonicalized copy; the input is never modified

    Example:
        >>> canonicalize({"z": 1, "a": {"c": 2, "b": 3}})
        {'a': {'b': 3, 'c': 2}, 'z': 1}

    Note:
        Cyclic structures are not supported; the boundary validator rejects
        them before canonicalization is reached.
    """
    if value is None:
        return None

    if isinstance(value, bool):
        return value

    if isinstance(value, int):
        if abs(value) > MAX_SAFE_INTEGER:
            return str(value)
        return value

    if isinstance(value, datetime):
        return _datetime_to_iso(value)

    if isinstance(value, date):
        return value.isoformat()

    if isinstance(value, uuid.UUID):
        return str(value)

    if isinstance(value, Mapping):
        return {k: canonicalize(value[k]) for k in sorted(value)}

    if isinstance(value, (list, tuple)):
        return [canonicalize(item) for item in value]

    # str, float, Decimal pass through unchanged
    return value


def _datetime_to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    utc = value.astimezone(UTC)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_decimal(number: int | float | Decimal) -> str:
    """
    Render a number through arbitrary-precision decimal formatting.

    Floats go through their shortest round-trip repr, so 0.1 renders as
    "0.1" rather than its binary expansion. Equal values render equally:
    1, 1.0 and Decimal("1.00") all render as "1".

    Example:
        >>> format_decimal(610.0)
        '610'
        >>> format_decimal(Decimal("1E+3"))
        '1000'
    """
    if isinstance(number, Decimal):
        dec = number
    elif isinstance(number, float):
        dec = Decimal(repr(number))
    else:
        dec = Decimal(number)

    if not dec.is_finite():
        return str(dec)
    if dec.is_zero():
        return "0"
    return format(_strip_trailing_zeros(dec), "f")


def _strip_trailing_zeros(dec: Decimal) -> Decimal:
    # Decimal.normalize() would round to the context precision (28 digits)
    sign, digits, exponent = dec.as_tuple()
    digits = list(digits)
    while exponent < 0 and len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    return Decimal((sign, tuple(digits), exponent))


def stable_stringify(value: Any) -> str:
    """
    Serialize a canonical value to compact JSON with stable number rendering.

    Every number (not bool) is emitted as a JSON string of format_decimal(n)
    so that float formatting never leaks into the hash. Mapping keys are
    sorted; datetimes and dates are emitted as ISO strings.

    Example:
        >>> stable_stringify({"b": 1.0, "a": [True, None]})
        '{"a":[true,null],"b":"1"}'
    """
    return json.dumps(
        _prepare_for_stringify(value), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _prepare_for_stringify(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, float, Decimal)):
        return format_decimal(value)
    if isinstance(value, (datetime, date, uuid.UUID)):
        return canonicalize(value)
    if isinstance(value, Mapping):
        return {str(k): _prepare_for_stringify(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_prepare_for_stringify(item) for item in value]
    return str(value)


def compute_snapshot_hash(inputs: Any) -> str:
    """
    Compute the SHA-256 snapshot hash of evaluation inputs.

    Args:
        inputs: Raw caller inputs (canonicalized internally)

    Returns:
        Lowercase hex digest, identical for inputs that differ only in key
        order or in the numeric representation of equal values
    """
    canonical = canonicalize(inputs)
    payload = stable_stringify(canonical)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def to_canonical_json_string(obj: Any) -> str:
    """
    Convert a Python object to a canonical JSON string.

    Unlike stable_stringify, numbers stay JSON numbers. Used for log lines,
    CLI output and rendering structured values into finding text.

    Example:
        >>> to_canonical_json_string({"version": 7, "code": "FICO_MIN"})
        '{"code":"FICO_MIN","version":7}'
    """
    canonical = canonicalize(obj)
    return json.dumps(
        canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )


def to_canonical_json_pretty(obj: Any) -> str:
    """
    Convert a Python object to a pretty-printed canonical JSON string.

    Useful for human-readable output in the CLI or debugging.
    """
    canonical = canonicalize(obj)
    return json.dumps(canonical, sort_keys=True, indent=2, ensure_ascii=False, default=str)
