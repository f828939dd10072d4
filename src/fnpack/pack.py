"""Archiver — one zip per function, or one for the whole service.

Individually packaged services get ``<work_dir>/.serverless/<alias>.zip``
per function, built under ``zip_concurrency``; otherwise a single
``<work_dir>/.serverless/<service>.zip`` is produced. The produced path is
written back to ``func.package.artifact`` (relative to the service
directory) or ``service.package.artifact`` (absolute).

Archive failures are scoped to one function: siblings still get their
archives and the caller receives every failure in :class:`PackResult`.
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from fnpack import archive
from fnpack.config import BuildConfiguration
from fnpack.core.errors import FnpackError, PackagingError
from fnpack.core.logging import get_logger
from fnpack.execution import pool
from fnpack.models import (
    SERVERLESS_FOLDER,
    CandidateFile,
    FunctionBuildResult,
    PackageSpec,
    ProviderStrategy,
    ServiceDefinition,
)
from fnpack.packagers import Packager, get_packager
from fnpack.selection import (
    bundle_exclusion_pattern,
    filter_files_for_zip_package,
    flatten_dependencies,
    list_candidate_files,
    private_alias,
    strip_private_prefix,
)
from fnpack.utils.patterns import split_patterns, to_posix

logger = get_logger(__name__)


@dataclass(frozen=True)
class ArchiveRecord:
    """An archive produced by the archiver."""

    path: Path
    entries: tuple[str, ...]
    size_bytes: int
    function_alias: str | None = None


@dataclass
class PackResult:
    archives: list[ArchiveRecord] = field(default_factory=list)
    failures: list[FnpackError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"


def archive_path_for(work_dir: str | Path, name: str) -> Path:
    return Path(work_dir) / SERVERLESS_FOLDER / f"{name}.zip"


def prepare_entries(files: Sequence[CandidateFile]) -> list[CandidateFile]:
    """Strip ``__only_<alias>/`` prefixes; a private file overrides a shared one."""
    entries: dict[str, CandidateFile] = {}
    private: set[str] = set()
    for candidate in files:
        local_path = to_posix(candidate.local_path)
        stripped = strip_private_prefix(local_path)
        is_private = private_alias(local_path) is not None
        if stripped in entries and (stripped in private or not is_private):
            continue
        entries[stripped] = CandidateFile(local_path=stripped, root_path=candidate.root_path)
        if is_private:
            private.add(stripped)
    return list(entries.values())


def probe_files(entries: Sequence[CandidateFile], unit: str) -> None:
    """Stat every file; missing or empty files fail the archive."""
    for entry in entries:
        try:
            size = os.stat(entry.root_path).st_size
        except FileNotFoundError:
            raise PackagingError(
                f"Packaging failed for {unit}: missing file {entry.root_path}",
                function_alias=unit,
                path=entry.root_path,
            ) from None
        if size == 0:
            raise PackagingError(
                f"Packaging failed for {unit}: empty file {entry.root_path}",
                function_alias=unit,
                path=entry.root_path,
            )


def write_unit(unit: str, selected: Sequence[CandidateFile], artifact_path: Path, native_zip: bool) -> ArchiveRecord:
    """Assemble and write one archive (runs in a worker thread)."""
    started = time.perf_counter()
    entries = prepare_entries(selected)
    probe_files(entries, unit)
    try:
        archive.write_archive(artifact_path, entries, native_zip)
    except PackagingError as exc:
        raise exc.with_context(function_alias=unit)

    size = artifact_path.stat().st_size
    logger.info(
        "pack.archive_written",
        unit=unit,
        path=str(artifact_path),
        size=human_size(size),
        entries=len(entries),
        elapsed_ms=round((time.perf_counter() - started) * 1000),
    )
    return ArchiveRecord(
        path=artifact_path,
        entries=tuple(sorted(e.local_path for e in entries)),
        size_bytes=size,
    )


async def write_unit_in_thread(
    unit: str, selected: Sequence[CandidateFile], artifact_path: Path, native_zip: bool
) -> ArchiveRecord:
    """Run :func:`write_unit` in a worker thread; any failure surfaces as :class:`PackagingError`."""
    try:
        return await asyncio.to_thread(write_unit, unit, selected, artifact_path, native_zip)
    except FnpackError:
        raise
    except Exception as exc:
        raise PackagingError(
            f"Packaging failed for {unit}: {exc}", function_alias=unit, path=str(artifact_path), cause=exc
        ) from exc


async def resolve_dep_white_list(
    externals: Sequence[str],
    build_dir: str | Path,
    packager: Packager,
) -> list[str]:
    """Package names allowed from node_modules for the configured externals."""
    if not externals:
        return []
    tree = await asyncio.to_thread(packager.get_prod_dependencies, build_dir)
    white_list = flatten_dependencies(tree, externals)
    logger.debug("pack.dep_white_list", externals=list(externals), packages=len(white_list))
    return white_list


async def pack_all(
    build_results: Sequence[FunctionBuildResult],
    service: ServiceDefinition,
    config: BuildConfiguration,
    *,
    build_dir: str | Path,
    work_dir: str | Path,
    service_dir: str | Path,
    packager: Packager | None = None,
) -> PackResult:
    """Write the archives and update artifact pointers.

    Raises:
        PackagerError: the dependency tree could not be read (only when
            externals are configured).
    """
    provider = ProviderStrategy.for_provider(service.provider)
    files = list_candidate_files(build_dir, provider)
    if not files:
        logger.warning("pack.no_files", build_dir=str(build_dir))
        return PackResult()

    externals = config.externals
    has_externals = bool(externals)
    dep_white_list = await resolve_dep_white_list(
        externals, build_dir, packager or get_packager(config.packager)
    )
    service_include, service_exclude = split_patterns(service.package.patterns)

    if not service.individually:
        return await _pack_service(
            files,
            service,
            config,
            PackageSpec(
                included_files=tuple(service_include),
                excluded_files=tuple(service_exclude),
                is_individually=False,
                has_externals=has_externals,
            ),
            dep_white_list,
            provider,
            work_dir,
        )

    by_alias: dict[str, FunctionBuildResult] = {}
    for result in build_results:
        by_alias.setdefault(result.function_alias, result)
    units = list(by_alias.values())
    bundle_paths = list(dict.fromkeys(to_posix(r.bundle_path) for r in units))

    def spec_for(result: FunctionBuildResult) -> PackageSpec:
        fn_include, fn_exclude = split_patterns(result.func.package.patterns)
        own_bundle = to_posix(result.bundle_path)
        other_bundles = [bundle_exclusion_pattern(b) for b in bundle_paths if b != own_bundle]
        return PackageSpec(
            included_files=tuple(service_include + fn_include),
            excluded_files=tuple(other_bundles + service_exclude + fn_exclude),
            is_individually=True,
            has_externals=has_externals,
        )

    async def _zip_one(result: FunctionBuildResult) -> ArchiveRecord:
        alias = result.function_alias
        spec = spec_for(result)
        selected = filter_files_for_zip_package(
            files,
            function_alias=alias,
            dep_white_list=dep_white_list,
            has_externals=spec.has_externals,
            included_files=spec.included_files,
            excluded_files=spec.excluded_files,
            provider=provider,
        )
        bundle_local = to_posix(result.bundle_path)
        if not any(f.local_path == bundle_local for f in selected):
            selected.append(CandidateFile(local_path=bundle_local, root_path=str(Path(build_dir) / bundle_local)))

        artifact_path = archive_path_for(work_dir, alias)
        record = await write_unit_in_thread(alias, selected, artifact_path, config.native_zip)
        return ArchiveRecord(
            path=record.path, entries=record.entries, size_bytes=record.size_bytes, function_alias=alias
        )

    logger.info("pack.start", functions=len(units), zip_concurrency=config.zip_concurrency or "unbounded")
    outcomes = await pool.map_settled(units, _zip_one, concurrency=config.zip_concurrency)

    result = PackResult()
    for unit, outcome in zip(units, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, FnpackError):
                raise outcome
            logger.error("pack.function_failed", **outcome.to_dict())
            result.failures.append(outcome)
            continue
        unit.func.package.artifact = os.path.relpath(outcome.path, service_dir)
        result.archives.append(outcome)

    logger.info("pack.complete", archives=len(result.archives), failed=len(result.failures))
    return result


async def _pack_service(
    files: list[CandidateFile],
    service: ServiceDefinition,
    config: BuildConfiguration,
    spec: PackageSpec,
    dep_white_list: list[str],
    provider: ProviderStrategy,
    work_dir: str | Path,
) -> PackResult:
    selected = filter_files_for_zip_package(
        files,
        function_alias=None,
        dep_white_list=dep_white_list,
        has_externals=spec.has_externals,
        included_files=spec.included_files,
        excluded_files=spec.excluded_files,
        provider=provider,
    )
    artifact_path = archive_path_for(work_dir, service.service)
    try:
        record = await write_unit_in_thread(service.service, selected, artifact_path, config.native_zip)
    except FnpackError as exc:
        exc.with_context(function_alias=None, service=service.service)
        logger.error("pack.service_failed", **exc.to_dict())
        return PackResult(failures=[exc])

    service.package.artifact = str(artifact_path)
    return PackResult(archives=[record])


__all__ = [
    "ArchiveRecord",
    "PackResult",
    "archive_path_for",
    "human_size",
    "pack_all",
    "prepare_entries",
    "probe_files",
    "resolve_dep_white_list",
    "write_unit",
    "write_unit_in_thread",
]
