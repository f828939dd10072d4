"""Pre-built Artifact Copier.

Functions that skip the build ship an archive produced elsewhere. The
copier moves that archive to the canonical location the deploy step reads
(``<work_dir>/.serverless/<name>.zip``) and points the function (or the
service) at it.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from fnpack.config import BuildConfiguration
from fnpack.core.errors import CopyError, FnpackError
from fnpack.core.logging import get_logger
from fnpack.entries import is_prebuilt
from fnpack.execution import pool
from fnpack.models import ServiceDefinition
from fnpack.pack import archive_path_for

logger = get_logger(__name__)


@dataclass(frozen=True)
class CopiedArtifact:
    name: str
    source: Path
    destination: Path
    function_alias: str | None = None


@dataclass
class CopyResult:
    copied: list[CopiedArtifact] = field(default_factory=list)
    failures: list[FnpackError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class _CopyUnit:
    name: str
    source: Path
    function_alias: str | None


def source_artifact(
    name: str,
    declared: str | None,
    config: BuildConfiguration,
    service_dir: str | Path,
) -> Path:
    """Declared artifact, else ``<package_output_path>/<name>.zip``; relative paths join ``service_dir``."""
    source = Path(declared) if declared else Path(config.package_output_path) / f"{name}.zip"
    return source if source.is_absolute() else Path(service_dir) / source


def _copy_file(unit: _CopyUnit, destination: Path) -> None:
    if not unit.source.is_file():
        raise CopyError(
            f"Pre-built artifact for {unit.name} not found: {unit.source}",
            function_alias=unit.function_alias,
            path=str(unit.source),
        )
    if destination.exists() and os.path.samefile(unit.source, destination):
        return
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        shutil.copyfile(unit.source, destination)
    except OSError as exc:
        raise CopyError(
            f"Failed to copy pre-built artifact for {unit.name}: {exc}",
            function_alias=unit.function_alias,
            path=str(unit.source),
            cause=exc,
        ) from exc


async def copy_pre_built_resources(
    service: ServiceDefinition,
    config: BuildConfiguration,
    *,
    work_dir: str | Path,
    service_dir: str | Path,
) -> CopyResult:
    """Copy pre-built archives into place and rewrite artifact pointers."""
    if service.individually:
        units = [
            _CopyUnit(
                name=alias,
                source=source_artifact(alias, func.package.artifact, config, service_dir),
                function_alias=alias,
            )
            for alias, func in service.functions.items()
            if is_prebuilt(alias, func, config)
        ]
    elif config.skip_build and all(is_prebuilt(a, f, config) for a, f in service.functions.items()):
        units = [
            _CopyUnit(
                name=service.service,
                source=source_artifact(service.service, service.package.artifact, config, service_dir),
                function_alias=None,
            )
        ]
    else:
        # The service archive is rebuilt when any function still builds.
        skipped = [a for a, f in service.functions.items() if is_prebuilt(a, f, config)]
        if skipped:
            logger.warning("prebuilt.ignored_for_service_archive", functions=skipped)
        return CopyResult()

    if not units:
        return CopyResult()

    async def _copy_one(unit: _CopyUnit) -> CopiedArtifact:
        destination = archive_path_for(work_dir, unit.name)
        await asyncio.to_thread(_copy_file, unit, destination)
        logger.info("prebuilt.copied", name=unit.name, source=str(unit.source), destination=str(destination))
        return CopiedArtifact(
            name=unit.name, source=unit.source, destination=destination, function_alias=unit.function_alias
        )

    outcomes = await pool.map_settled(units, _copy_one, concurrency=config.zip_concurrency)

    result = CopyResult()
    for unit, outcome in zip(units, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, FnpackError):
                raise outcome
            if unit.function_alias is None:
                outcome.with_context(service=service.service)
            logger.error("prebuilt.copy_failed", **outcome.to_dict())
            result.failures.append(outcome)
            continue

        if unit.function_alias is None:
            service.package.artifact = str(outcome.destination)
        else:
            func = service.functions[unit.function_alias]
            func.package.artifact = os.path.relpath(outcome.destination, service_dir)
        result.copied.append(outcome)

    return result


__all__ = ["CopiedArtifact", "CopyResult", "copy_pre_built_resources", "source_artifact"]
