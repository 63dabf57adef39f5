"""CLI wrapper: Run unit tests with the test environment settings."""

from __future__ import annotations

import sys

from cli._runner import run


def main() -> None:
    run(
        [sys.executable, "-m", "pytest", "-q", *sys.argv[1:]],
        env={"RULEGRAPH_APP_ENV": "test"},
    )
