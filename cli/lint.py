"""CLI wrapper: Run linter and format check."""

from __future__ import annotations

import sys

from cli._runner import run_all

PATHS = ["rulegraph", "cli", "tests", "example_usage.py"]


def main() -> None:
    run_all(
        [
            [sys.executable, "-m", "ruff", "check", *PATHS, *sys.argv[1:]],
            [sys.executable, "-m", "ruff", "format", "--check", *PATHS],
        ]
    )
