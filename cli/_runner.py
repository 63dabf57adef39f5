"""
Shared CLI runner helper.

Runs developer tooling (pytest, ruff) as subprocesses of the current
interpreter so the wrappers behave the same inside any virtualenv.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping, Sequence


def run(cmd: Sequence[str], env: Mapping[str, str] | None = None) -> None:
    """
    Run a command and exit with its return code.

    Args:
        cmd: Command and arguments to execute
        env: Extra environment variables layered over os.environ

    Example:
        >>> run([sys.executable, "-m", "pytest", "-q"], env={"RULEGRAPH_APP_ENV": "test"})
    """
    raise SystemExit(_call(cmd, env))


def run_all(commands: Sequence[Sequence[str]]) -> None:
    """
    Run commands in order, stopping at the first failure.

    The exit code is the first non-zero return code, or 0.
    """
    for cmd in commands:
        code = _call(cmd, None)
        if code != 0:
            raise SystemExit(code)
    raise SystemExit(0)


def _call(cmd: Sequence[str], env: Mapping[str, str] | None) -> int:
    merged = {**os.environ, **env} if env else None
    return subprocess.run(list(cmd), env=merged).returncode
