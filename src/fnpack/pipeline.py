"""
Packaging pipeline — compile, join, archive, copy.

Manifesto:
    A deploy needs one archive per function (or one for the service) and
    nothing else. The pipeline owns the order of the phases and the shape
    of the outcome; each phase owns its own rules.

Architecture:
    ::

        extract_function_entries ──► compile_all ──► join_build_results
                                                          │
                     copy_pre_built_resources ◄── pack_all ◄┘
                                │
                         PipelineOutcome

    Compile failures abort the run. Archive and copy failures are scoped to
    one unit and collected; the outcome is failed when any unit failed.

    Compiled output from earlier runs is cleared before compiling. The build
    folder is removed after the run unless ``keep_output_directory`` is set;
    archives under ``<work_dir>/.serverless`` always stay.

Examples:
    >>> pipeline = PackagingPipeline(service, config, compiler, service_dir)  # doctest: +SKIP
    >>> outcome = pipeline.run()  # doctest: +SKIP
    >>> [a.path.name for a in outcome.archives]  # doctest: +SKIP
    ['hello1.zip', 'hello2.zip']

Tags:
    pipeline, orchestration, asyncio, fnpack
"""

from __future__ import annotations

import asyncio
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from fnpack.compiler import CompileFn, compile_all, join_build_results
from fnpack.config import BuildConfiguration
from fnpack.core.errors import ConfigurationError, FnpackError, PipelineFailedError
from fnpack.core.logging import LogContext, get_logger
from fnpack.entries import extract_function_entries
from fnpack.models import FunctionBuildResult, FunctionEntry, ServiceDefinition
from fnpack.pack import ArchiveRecord, pack_all
from fnpack.packagers import Packager
from fnpack.prebuilt import CopiedArtifact, copy_pre_built_resources
from fnpack.selection import clear_build_output

logger = get_logger(__name__)


@dataclass
class PipelineOutcome:
    """Everything one run produced."""

    run_id: str
    build_results: list[FunctionBuildResult] = field(default_factory=list)
    archives: list[ArchiveRecord] = field(default_factory=list)
    copied: list[CopiedArtifact] = field(default_factory=list)
    failures: list[FnpackError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PipelineFailedError(self.failures, run_id=self.run_id)


class PackagingPipeline:
    """Build and package every function of a service."""

    def __init__(
        self,
        service: ServiceDefinition,
        config: BuildConfiguration,
        compiler: CompileFn | None,
        service_dir: str | Path,
        packager: Packager | None = None,
        work_dir: str | Path | None = None,
    ):
        self.service = service
        self.config = config
        self.compiler = compiler
        self.service_dir = Path(service_dir)
        self.packager = packager
        self.work_dir = Path(work_dir) if work_dir else self.service_dir / config.output_work_folder
        self.build_dir = self.work_dir / config.output_build_folder

    async def arun(self, *, raise_on_failure: bool = True) -> PipelineOutcome:
        """Run every phase.

        Raises:
            ConfigurationError: invalid options or unresolvable handlers.
            CompileError: any entry failed to compile.
            PipelineFailedError: an archive or copy failed (when
                ``raise_on_failure``).
        """
        outcome = PipelineOutcome(run_id=uuid.uuid4().hex[:12])

        async with LogContext(run_id=outcome.run_id, service=self.service.service):
            logger.info(
                "pipeline.start",
                functions=len(self.service.functions),
                individually=self.service.individually,
                skip_build=self.config.skip_build,
            )

            entries = extract_function_entries(
                self.service_dir,
                self.service.functions,
                self.config.resolve_extensions,
                self.config,
            )
            if entries and self.compiler is None:
                raise ConfigurationError("A compiler is required unless skip_build is set")
            # With skip_build on, only functions in skip_build_exclude_fns are built.
            if entries or not self.config.skip_build:
                try:
                    await self._build_and_pack(outcome, entries)
                finally:
                    self._remove_build_dir()
            else:
                logger.info("pipeline.skip_build")

            copied = await copy_pre_built_resources(
                self.service, self.config, work_dir=self.work_dir, service_dir=self.service_dir
            )
            outcome.copied.extend(copied.copied)
            outcome.failures.extend(copied.failures)

            logger.info(
                "pipeline.complete",
                archives=len(outcome.archives),
                copied=len(outcome.copied),
                failed=len(outcome.failures),
            )

        if raise_on_failure:
            outcome.raise_for_failures()
        return outcome

    def run(self, *, raise_on_failure: bool = True) -> PipelineOutcome:
        """Synchronous wrapper around :meth:`arun`."""
        return asyncio.run(self.arun(raise_on_failure=raise_on_failure))

    async def _build_and_pack(self, outcome: PipelineOutcome, entries: list[FunctionEntry]) -> None:
        clear_build_output(self.build_dir)
        if entries:
            cache = await compile_all(entries, self.config, self.build_dir, self.compiler)
            outcome.build_results = join_build_results(entries, cache)

        packed = await pack_all(
            outcome.build_results,
            self.service,
            self.config,
            build_dir=self.build_dir,
            work_dir=self.work_dir,
            service_dir=self.service_dir,
            packager=self.packager,
        )
        outcome.archives.extend(packed.archives)
        outcome.failures.extend(packed.failures)

    def _remove_build_dir(self) -> None:
        if self.config.keep_output_directory:
            logger.debug("pipeline.build_dir_kept", build_dir=str(self.build_dir))
            return
        shutil.rmtree(self.build_dir, ignore_errors=True)


__all__ = ["PackagingPipeline", "PipelineOutcome"]
