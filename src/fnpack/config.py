"""Build configuration for the packaging pipeline.

``BuildConfiguration`` is the typed, enumerated set of options the pipeline
understands. Unknown keys are ignored rather than passed to the compiler,
so the compiler only ever sees :class:`CompilerConfig`, built from the
fields listed here.

Key Concepts:
    BuildConfiguration: pipeline + compiler options (pydantic v2).
        ``from_env()`` overlays ``FNPACK_*`` environment variables.
    CompilerConfig: the exact payload handed to the external compiler
        for one entry.
    validate_output_extension: the format / extension checks that must
        pass before any compilation starts.
    load_service: reads a YAML service file into a
        :class:`~fnpack.models.ServiceDefinition` and its build config.

Override precedence for ``from_env()``: kwargs > env vars > field defaults.

Tags:
    config, pydantic, yaml, compiler, fnpack
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fnpack.core.errors import ConfigurationError
from fnpack.models import ServiceDefinition

OutputExtension = Literal[".js", ".cjs", ".mjs"]
PackagerId = Literal["npm", "pnpm", "yarn"]
SourceMapMode = bool | Literal["inline"]

DEFAULT_RESOLVE_EXTENSIONS = [".ts", ".js", ".mjs", ".cjs", ".tsx", ".jsx"]

ESM_CJS_ERROR = 'ERROR: format "esm" or platform "neutral" should not output a file with extension ".cjs".'
NON_ESM_MJS_ERROR = 'ERROR: Non esm builds should not output a file with extension ".mjs".'


class NodeExternalsOptions(BaseModel):
    """Extra packages shipped from node_modules."""

    model_config = ConfigDict(extra="ignore")

    allow_list: list[str] = Field(default_factory=list)


class BuildConfiguration(BaseModel):
    """Options for one pipeline run.

    Example::

        config = BuildConfiguration(
            concurrency=4,
            output_file_extension=".cjs",
            external=["sharp"],
        )
    """

    model_config = ConfigDict(extra="ignore")

    # Concurrency (None = unbounded)
    concurrency: int | None = Field(default=None, gt=0, description="Parallel compiles")
    zip_concurrency: int | None = Field(default=None, gt=0, description="Parallel archives")

    # Dependencies
    external: list[str] = Field(
        default_factory=list,
        description="Modules kept out of the bundle and shipped from node_modules",
    )
    exclude: Literal["*"] | list[str] = Field(
        default_factory=lambda: ["aws-sdk"],
        description="Modules kept out of the bundle and never shipped",
    )
    packager: PackagerId = "npm"
    node_externals: NodeExternalsOptions = Field(default_factory=NodeExternalsOptions)

    # Archive
    native_zip: bool = Field(default=False, description="Use the native zip binary")

    # Output layout
    output_file_extension: OutputExtension = ".js"
    output_work_folder: str = ".fnpack"
    output_build_folder: str = ".build"
    package_output_path: str = ".serverless"
    keep_output_directory: bool = Field(default=False, description="Keep the build folder after the run")

    # Compiler
    target: str = "node"
    platform: Literal["node", "browser", "neutral"] | None = None
    format: Literal["cjs", "esm"] | None = None
    source_maps: SourceMapMode = True
    minify: bool = False
    resolve_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_RESOLVE_EXTENSIONS))
    strip_entry_resolve_extensions: bool = False

    # Pre-built artifacts
    skip_build: bool = False
    skip_build_exclude_fns: list[str] = Field(default_factory=list)

    @field_validator("concurrency", "zip_concurrency", mode="before")
    @classmethod
    def _unbounded(cls, value: Any) -> Any:
        if isinstance(value, float) and math.isinf(value):
            return None
        return value

    @property
    def is_esm(self) -> bool:
        """ESM output: explicit ``format="esm"`` or neutral platform without a format."""
        return self.format == "esm" or (self.platform == "neutral" and self.format is None)

    @property
    def exclude_list(self) -> list[str]:
        return ["*"] if self.exclude == "*" else list(self.exclude)

    @property
    def external_modules(self) -> list[str]:
        """Modules the compiler must leave unresolved."""
        exclude = self.exclude_list
        return [*self.external, *([] if "*" in exclude else exclude)]

    @property
    def externals(self) -> list[str]:
        """Packages that must be shipped from node_modules.

        ``external`` followed by the ``node_externals`` allow list. Empty when
        ``exclude`` is ``"*"``: nothing from node_modules ships.
        """
        exclude = self.exclude_list
        if "*" in exclude:
            return []
        names = dict.fromkeys([*self.external, *self.node_externals.allow_list])
        return [name for name in names if name not in exclude]

    @classmethod
    def from_env(cls, **overrides: Any) -> BuildConfiguration:
        """Create config from FNPACK_* environment variables.

        Raises:
            ValidationError: an environment value or override is invalid.
        """
        env_map = {
            "concurrency": "FNPACK_CONCURRENCY",
            "zip_concurrency": "FNPACK_ZIP_CONCURRENCY",
            "native_zip": "FNPACK_NATIVE_ZIP",
            "packager": "FNPACK_PACKAGER",
            "output_file_extension": "FNPACK_OUTPUT_FILE_EXTENSION",
            "skip_build": "FNPACK_SKIP_BUILD",
            "keep_output_directory": "FNPACK_KEEP_OUTPUT_DIRECTORY",
            "external": "FNPACK_EXTERNAL",
        }
        values: dict[str, Any] = {}
        for field_name, env_var in env_map.items():
            env_val = os.environ.get(env_var)
            if env_val is None:
                continue
            # Raw strings go to pydantic so bad values fail validation.
            if field_name in ("concurrency", "zip_concurrency") and env_val.lower() in ("", "inf", "unbounded"):
                values[field_name] = None
            elif field_name == "external":
                values[field_name] = [t.strip() for t in env_val.split(",") if t.strip()]
            else:
                values[field_name] = env_val
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class OutputTarget:
    path: str
    name: str


@dataclass(frozen=True)
class CompilerConfig:
    """Everything the external compiler receives for one entry."""

    entry: str
    output: OutputTarget
    external_modules: tuple[str, ...] = ()
    target: str = "node"
    platform: str | None = None
    format: str | None = None
    source_maps: SourceMapMode = True
    minify: bool = False


def validate_output_extension(config: BuildConfiguration) -> None:
    """Reject output format / extension combinations that cannot load.

    Raises:
        ConfigurationError: ESM with ``.cjs``, or non-ESM with ``.mjs``.
    """
    if config.is_esm and config.output_file_extension == ".cjs":
        raise ConfigurationError(ESM_CJS_ERROR)

    if not config.is_esm and config.output_file_extension == ".mjs":
        raise ConfigurationError(NON_ESM_MJS_ERROR)


def load_service(path: str | Path) -> tuple[ServiceDefinition, BuildConfiguration]:
    """Load a YAML service file.

    The build options live under ``custom.fnpack``; environment variables
    fill in whatever the file leaves unset.

    Raises:
        ConfigurationError: the file is missing, is not a mapping, or fails
            validation.
    """
    service_path = Path(path)
    if not service_path.is_file():
        raise ConfigurationError(f"Service file not found: {service_path}", path=str(service_path))

    try:
        raw = yaml.safe_load(service_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {service_path}: {exc}", cause=exc) from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Service file must be a mapping: {service_path}")

    provider = raw.get("provider")
    if isinstance(provider, dict):
        raw["provider"] = provider.get("name", "aws")

    custom = raw.pop("custom", None) or {}
    build_options = custom.get("fnpack") or {}

    try:
        service = ServiceDefinition.model_validate(raw)
        config = BuildConfiguration.from_env(**build_options)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid service file {service_path}: {exc}", cause=exc) from exc

    return service, config


__all__ = [
    "DEFAULT_RESOLVE_EXTENSIONS",
    "ESM_CJS_ERROR",
    "NON_ESM_MJS_ERROR",
    "BuildConfiguration",
    "CompilerConfig",
    "OutputTarget",
    "NodeExternalsOptions",
    "load_service",
    "validate_output_extension",
]
