"""
Shared pytest fixtures for fnpack tests.

This module provides:
- Log capture for every test (structlog events as dicts)
- A build directory builder
- A recording fake compiler
- Service definition factories
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest
import structlog

from fnpack.config import CompilerConfig
from fnpack.models import FunctionDefinition, PackageConfig, ServiceDefinition


@pytest.fixture(autouse=True)
def captured_logs():
    """Capture structlog events instead of printing them."""
    with structlog.testing.capture_logs() as logs:
        yield logs


def write_files(root: Path, files: dict[str, str | bytes]) -> Path:
    """Create ``files`` (relative path -> content) under ``root``."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def make_files():
    return write_files


class RecordingCompiler:
    """Compiler double: emits ``// compiled <entry>`` for every call."""

    def __init__(self, map_text: str | None = None, fail_on: set[str] | None = None):
        self.calls: list[CompilerConfig] = []
        self.map_text = map_text
        self.fail_on = fail_on or set()

    @property
    def entries(self) -> list[str]:
        return [c.entry for c in self.calls]

    def __call__(self, config: CompilerConfig) -> dict[str, Any]:
        self.calls.append(config)
        if config.entry in self.fail_on:
            raise RuntimeError(f"syntax error in {config.entry}")
        return {
            os.path.basename(config.entry): {
                "code": f"// compiled {config.entry}\n",
                "map": self.map_text,
            }
        }


@pytest.fixture
def compiler() -> RecordingCompiler:
    return RecordingCompiler()


def make_service(
    functions: dict[str, dict[str, Any]],
    *,
    individually: bool = True,
    provider: str = "aws",
    patterns: list[str] | None = None,
    name: str = "demo",
) -> ServiceDefinition:
    return ServiceDefinition(
        service=name,
        provider=provider,
        package=PackageConfig(individually=individually, patterns=patterns or []),
        functions={alias: FunctionDefinition(**spec) for alias, spec in functions.items()},
    )


@pytest.fixture
def service_factory():
    return make_service


@pytest.fixture
def compiler_factory():
    return RecordingCompiler
