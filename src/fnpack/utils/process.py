"""Thin subprocess wrapper for package-manager and ``zip`` invocations."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from fnpack.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SpawnResult:
    returncode: int
    stdout: str
    stderr: str


class CommandNotFoundError(RuntimeError):
    """Raised when a required binary is not on PATH."""


class SpawnError(RuntimeError):
    """Raised when a command exits non-zero and the caller asked for ``check``."""

    def __init__(self, command: list[str], result: SpawnResult):
        self.command = command
        self.result = result
        detail = result.stderr.strip() or result.stdout.strip()
        super().__init__(f"{' '.join(command)} exited with {result.returncode}: {detail}")


def find_binary(name: str) -> str:
    """Resolve ``name`` on PATH."""
    binary = shutil.which(name)
    if binary is None:
        raise CommandNotFoundError(f"{name} not found on PATH")
    return binary


def spawn(
    command: list[str],
    *,
    cwd: str | Path | None = None,
    check: bool = True,
    timeout: float | None = None,
    input: str | None = None,
) -> SpawnResult:
    """Run ``command`` and capture its output as text."""
    executable = find_binary(command[0])
    logger.debug("process.spawn", command=command, cwd=str(cwd) if cwd else None)

    proc = subprocess.run(
        [executable, *command[1:]],
        cwd=str(cwd) if cwd else None,
        capture_output=True,
        text=True,
        timeout=timeout,
        input=input,
    )
    result = SpawnResult(returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
    if check and proc.returncode != 0:
        raise SpawnError(command, result)
    return result
