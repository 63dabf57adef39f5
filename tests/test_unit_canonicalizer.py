"""
Tests for input canonicalization and snapshot hashing.

These tests verify:
- Key ordering, list order preservation and idempotence
- Normalization of dates, UUIDs and unsafe integers
- Decimal number formatting shared with templates
- Snapshot hash stability under key reordering and numeric representation
"""

import hashlib
import uuid
from datetime import UTC, date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from rulegraph.engine.canonicalizer import (
    MAX_SAFE_INTEGER,
    canonicalize,
    compute_snapshot_hash,
    format_decimal,
    stable_stringify,
    to_canonical_json_pretty,
    to_canonical_json_string,
)


class TestCanonicalize:
    """Test deterministic canonicalization of nested inputs."""

    @pytest.mark.anyio
    async def test_sorts_object_keys(self):
        """Test that keys are sorted at every level."""
        canonical = canonicalize({"b": 1, "a": {"z": 2, "y": 3}})

        assert list(canonical.keys()) == ["a", "b"]
        assert list(canonical["a"].keys()) == ["y", "z"]

    @pytest.mark.anyio
    async def test_preserves_list_order(self):
        """Test that list order is preserved (not sorted)."""
        canonical = canonicalize({"items": [3, 1, 2]})

        assert canonical["items"] == [3, 1, 2]

    @pytest.mark.anyio
    async def test_canonicalizes_dicts_inside_lists(self):
        canonical = canonicalize({"liabilities": [{"z": 1, "a": 2}, {"m": 3, "b": 4}]})

        assert list(canonical["liabilities"][0].keys()) == ["a", "z"]
        assert list(canonical["liabilities"][1].keys()) == ["b", "m"]

    @pytest.mark.anyio
    async def test_tuples_become_lists(self):
        assert canonicalize({"t": (1, 2)}) == {"t": [1, 2]}

    @pytest.mark.anyio
    async def test_datetimes_normalized_to_utc_iso(self):
        eastern = timezone(timedelta(hours=-4))
        canonical = canonicalize(
            {
                "aware": datetime(2024, 5, 1, 8, 30, tzinfo=eastern),
                "naive": datetime(2024, 5, 1, 12, 0),
                "day": date(2024, 5, 1),
            }
        )

        assert canonical["aware"] == "2024-05-01T12:30:00.000Z"
        assert canonical["naive"] == "2024-05-01T12:00:00.000Z"
        assert canonical["day"] == "2024-05-01"

    @pytest.mark.anyio
    async def test_identifiers_normalized_to_strings(self):
        loan_id = uuid.UUID("12345678-1234-5678-1234-567812345678")
        canonical = canonicalize({"loanId": loan_id, "big": MAX_SAFE_INTEGER + 1, "ok": 42})

        assert canonical["loanId"] == "12345678-1234-5678-1234-567812345678"
        assert canonical["big"] == str(MAX_SAFE_INTEGER + 1)
        assert canonical["ok"] == 42

    @pytest.mark.anyio
    async def test_null_preserved_and_input_not_mutated(self):
        original = {"b": None, "a": [{"d": 1, "c": 2}]}
        canonical = canonicalize(original)

        assert canonical == {"a": [{"c": 2, "d": 1}], "b": None}
        assert list(original.keys()) == ["b", "a"]
        assert list(original["a"][0].keys()) == ["d", "c"]

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "value",
        [
            {"z": {"b": [1, {"y": 2, "x": None}]}, "a": "text"},
            [{"b": 1, "a": 2}, 3, "four"],
            {"when": datetime(2024, 1, 1, tzinfo=UTC), "amount": Decimal("1.50")},
            "scalar",
            None,
        ],
    )
    async def test_idempotent(self, value):
        """canonicalize(canonicalize(x)) == canonicalize(x)."""
        once = canonicalize(value)
        twice = canonicalize(once)

        assert twice == once
        assert stable_stringify(twice) == stable_stringify(once)


class TestFormatDecimal:
    """Test arbitrary-precision number rendering."""

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        ("number", "expected"),
        [
            (610, "610"),
            (610.0, "610"),
            (Decimal("610.00"), "610"),
            (0.1, "0.1"),
            (Decimal("1E+3"), "1000"),
            (1e21, "1000000000000000000000"),
            (-0.0, "0"),
            (-12.5, "-12.5"),
            (Decimal("0.123456789012345678901234567890123"), "0.123456789012345678901234567890123"),
        ],
    )
    async def test_renders_plain_decimal(self, number, expected):
        assert format_decimal(number) == expected


class TestStableStringify:
    """Test the serialization used for hashing."""

    @pytest.mark.anyio
    async def test_numbers_rendered_as_decimal_strings(self):
        assert stable_stringify({"b": 1.0, "a": [True, None]}) == '{"a":[true,null],"b":"1"}'

    @pytest.mark.anyio
    async def test_non_ascii_kept(self):
        payload = stable_stringify({"citation": "12 CFR §1026.43"})

        assert payload == '{"citation":"12 CFR §1026.43"}'

    @pytest.mark.anyio
    async def test_dates_rendered_as_iso(self):
        assert stable_stringify({"d": date(2024, 5, 1)}) == '{"d":"2024-05-01"}'


class TestSnapshotHash:
    """Test snapshot hash determinism."""

    @pytest.mark.anyio
    async def test_stable_under_key_reorder(self):
        assert compute_snapshot_hash({"a": 1, "b": {"c": 2}}) == compute_snapshot_hash(
            {"b": {"c": 2}, "a": 1}
        )

    @pytest.mark.anyio
    async def test_stable_under_numeric_representation(self):
        as_int = compute_snapshot_hash({"loan": {"amount": 350000, "ltv": 0.8}})
        as_float = compute_snapshot_hash({"loan": {"amount": 350000.0, "ltv": 0.80}})
        as_decimal = compute_snapshot_hash(
            {"loan": {"amount": Decimal("350000.00"), "ltv": Decimal("0.800")}}
        )

        assert as_int == as_float == as_decimal

    @pytest.mark.anyio
    async def test_differs_for_different_values(self):
        assert compute_snapshot_hash({"fico": 610}) != compute_snapshot_hash({"fico": 611})

    @pytest.mark.anyio
    async def test_is_sha256_of_stable_payload(self):
        expected = hashlib.sha256('{"borrower":{"fico":"610"}}'.encode()).hexdigest()

        digest = compute_snapshot_hash({"borrower": {"fico": 610}})

        assert digest == expected
        assert len(digest) == 64
        assert digest == digest.lower()


class TestCanonicalJson:
    """Test canonical JSON helpers used for logs and CLI output."""

    @pytest.mark.anyio
    async def test_canonical_json_string_determinism(self):
        obj1 = {"z": 1, "a": {"c": 2, "b": 3}}
        obj2 = {"a": {"b": 3, "c": 2}, "z": 1}

        assert to_canonical_json_string(obj1) == to_canonical_json_string(obj2)
        assert to_canonical_json_string(obj1) == '{"a":{"b":3,"c":2},"z":1}'

    @pytest.mark.anyio
    async def test_canonical_json_pretty_readable(self):
        result = to_canonical_json_pretty({"code": "FICO_MIN", "version": 7})

        assert '"code"' in result
        assert "\n" in result
