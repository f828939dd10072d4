"""Data models for the build-and-pack pipeline.

Two families live here:

- **Framework models** (pydantic): :class:`ServiceDefinition` and
  :class:`FunctionDefinition` mirror the hosting framework's service file.
  Their ``package.artifact`` fields are the only thing the pipeline writes.
- **Pipeline values** (frozen dataclasses): :class:`FunctionEntry`,
  :class:`BuildResult`, :class:`FunctionBuildResult`, :class:`CandidateFile`,
  :class:`PackageSpec` and the dependency tree. They are created once per
  run and never mutated.

Tags:
    models, pydantic, dataclasses, fnpack
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Private staging prefix: ``__only_<alias>/...`` belongs to one function.
ONLY_PREFIX = "__only_"

# Output folder (under the work dir) that receives every archive.
SERVERLESS_FOLDER = ".serverless"


# ---------------------------------------------------------------------------
# Framework models
# ---------------------------------------------------------------------------


class PackageConfig(BaseModel):
    """``package`` block of a service or a function."""

    model_config = ConfigDict(extra="allow")

    individually: bool = False
    patterns: list[str] = Field(default_factory=list)
    artifact: str | None = None


class FunctionDefinition(BaseModel):
    """A logical function as declared in the service file."""

    model_config = ConfigDict(extra="allow")

    handler: str | None = None
    name: str | None = None
    runtime: str | None = None
    events: list[Any] = Field(default_factory=list)
    package: PackageConfig = Field(default_factory=PackageConfig)
    skip_build: bool = Field(
        default=False,
        description="Ship an already-built artifact instead of compiling",
    )
    entrypoint: str | None = Field(
        default=None,
        description="Explicit source entry overriding the handler path",
    )


class ServiceDefinition(BaseModel):
    """The service: its name, provider and functions keyed by alias."""

    model_config = ConfigDict(extra="allow")

    service: str
    provider: str = "aws"
    package: PackageConfig = Field(default_factory=PackageConfig)
    functions: dict[str, FunctionDefinition] = Field(default_factory=dict)

    @property
    def individually(self) -> bool:
        return self.package.individually


# ---------------------------------------------------------------------------
# Pipeline values
# ---------------------------------------------------------------------------


class ProviderStrategy(str, Enum):
    """Cloud target adjustments applied by the file selector."""

    GENERIC = "generic"
    GOOGLE = "google"

    @classmethod
    def for_provider(cls, provider: str | None) -> ProviderStrategy:
        return cls.GOOGLE if provider == "google" else cls.GENERIC


@dataclass(frozen=True)
class FunctionEntry:
    """A function's source entry, created before compilation."""

    entry: str
    func: FunctionDefinition | None
    function_alias: str | None = None


@dataclass(frozen=True)
class CompiledOutput:
    """What the compiler emitted for one file."""

    code: str
    map: str | None = None

    @classmethod
    def coerce(cls, value: Any) -> CompiledOutput:
        """Accept a ``CompiledOutput`` or a ``{"code", "map"}`` mapping."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls(code=value.get("code") or "", map=value.get("map"))
        raise TypeError(f"Unsupported compiler output: {type(value).__name__}")


@dataclass(frozen=True)
class BuildResult:
    """Build cache value: one per unique entry."""

    bundle_path: str
    entry: str
    result: CompiledOutput


@dataclass(frozen=True)
class FunctionBuildResult:
    """A function joined with the bundle built from its entry."""

    bundle_path: str
    func: FunctionDefinition
    function_alias: str


@dataclass(frozen=True)
class CandidateFile:
    """A file under the build directory that may go into an archive."""

    local_path: str
    root_path: str


@dataclass(frozen=True)
class PackageSpec:
    """Per-function packaging policy handed to the file selector."""

    included_files: tuple[str, ...] = ()
    excluded_files: tuple[str, ...] = ()
    is_individually: bool = False
    has_externals: bool = False


@dataclass
class DependencyNode:
    """One installed package in a dependency tree."""

    version: str
    is_root_dep: bool = False
    dependencies: dict[str, DependencyNode] = field(default_factory=dict)


DependencyTree = dict[str, DependencyNode]


__all__ = [
    "ONLY_PREFIX",
    "SERVERLESS_FOLDER",
    "PackageConfig",
    "FunctionDefinition",
    "ServiceDefinition",
    "ProviderStrategy",
    "FunctionEntry",
    "CompiledOutput",
    "BuildResult",
    "FunctionBuildResult",
    "CandidateFile",
    "PackageSpec",
    "DependencyNode",
    "DependencyTree",
]
