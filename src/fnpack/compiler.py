"""Compiler Invoker and Build Cache.

Functions frequently share one source file (several handlers exported from
``src/api.ts``). The invoker compiles every unique entry exactly once, under
the configured concurrency bound, and returns a :class:`BuildCache` that the
join step maps back onto each function.

Flow::

    FunctionEntry[]  ──dedupe──►  unique entries  ──map_bounded──►  compile_one
                                                                      │
                         BuildCache (ordered list + index)  ◄─────────┘
                                      │
    join_build_results(entries, cache) ──► FunctionBuildResult[]

The compiler is a black box: a callable (sync or async) taking a
:class:`~fnpack.config.CompilerConfig` and returning a mapping from output
file base name to ``{"code": str, "map": str | None}``.

The compile phase is all-or-nothing. The first failure is raised as
:class:`~fnpack.core.errors.CompileError`; no cache is returned.
"""

from __future__ import annotations

import asyncio
import base64
import inspect
import os
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping, Sequence
from pathlib import Path, PurePath
from typing import Any

from fnpack.config import BuildConfiguration, CompilerConfig, OutputTarget, validate_output_extension
from fnpack.core.errors import CompileError, FnpackError
from fnpack.core.logging import get_logger
from fnpack.execution import pool
from fnpack.models import BuildResult, CompiledOutput, FunctionBuildResult, FunctionEntry

logger = get_logger(__name__)

CompileFn = Callable[[CompilerConfig], "Mapping[str, Any] | Awaitable[Mapping[str, Any]]"]


class BuildCache:
    """Build results for one run: an ordered list plus an index by entry."""

    def __init__(self, results: Iterable[BuildResult] = ()) -> None:
        self._results: list[BuildResult] = []
        self._index: dict[str, BuildResult] = {}
        for result in results:
            if result.entry in self._index:
                continue
            self._results.append(result)
            self._index[result.entry] = result

    def get(self, entry: str) -> BuildResult | None:
        return self._index.get(entry)

    @property
    def entries(self) -> list[str]:
        return [r.entry for r in self._results]

    def __contains__(self, entry: object) -> bool:
        return entry in self._index

    def __iter__(self) -> Iterator[BuildResult]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)


def strip_entry_resolve_extension(entry: str, extensions: Sequence[str]) -> str:
    """``src/fn.custom.ts`` -> ``src/fn.ts`` when ``.custom.ts`` is a resolve extension.

    Only multi-part extensions are stripped; the longest match wins.
    """
    for ext in sorted(extensions, key=len, reverse=True):
        if ext.count(".") > 1 and entry.endswith(ext):
            return entry[: -len(ext)] + "." + ext.rsplit(".", 1)[1]
    return entry


def bundle_path_for(entry: str, output_extension: str, strip_extensions: Sequence[str] = ()) -> str:
    """``src/file1.ts`` + ``.cjs`` -> ``src/file1.cjs``."""
    if strip_extensions:
        entry = strip_entry_resolve_extension(entry, strip_extensions)
    return os.path.splitext(entry)[0] + output_extension


def _bundle_path(entry: str, config: BuildConfiguration) -> str:
    strip = config.resolve_extensions if config.strip_entry_resolve_extensions else ()
    return bundle_path_for(entry, config.output_file_extension, strip)


def unique_entries(entries: Iterable[FunctionEntry]) -> list[str]:
    """Distinct source paths in first-seen order."""
    return list(dict.fromkeys(e.entry for e in entries))


def build_compiler_config(entry: str, config: BuildConfiguration, build_dir: str | Path) -> CompilerConfig:
    bundle_path = _bundle_path(entry, config)
    return CompilerConfig(
        entry=entry,
        output=OutputTarget(
            path=os.path.join(str(build_dir), os.path.dirname(entry)),
            name=os.path.basename(bundle_path),
        ),
        external_modules=tuple(config.external_modules),
        target=config.target,
        platform=config.platform,
        format=config.format,
        source_maps=config.source_maps,
        minify=config.minify,
    )


async def _invoke(compiler: CompileFn, compiler_config: CompilerConfig) -> Any:
    if inspect.iscoroutinefunction(compiler):
        return await compiler(compiler_config)
    emitted = await asyncio.to_thread(compiler, compiler_config)
    if inspect.isawaitable(emitted):
        emitted = await emitted
    return emitted


def write_bundle(output_dir: str | Path, name: str, output: CompiledOutput, source_maps: Any) -> Path:
    """Write emitted code (and its source map, per ``source_maps``) to disk."""
    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    out_file = out_path / name

    code = output.code
    if output.map and source_maps == "inline":
        encoded = base64.b64encode(output.map.encode("utf-8")).decode("ascii")
        code += f"\n//# sourceMappingURL=data:application/json;charset=utf-8;base64,{encoded}"
    elif output.map and source_maps:
        (out_path / f"{name}.map").write_text(output.map, encoding="utf-8")
        code += f"\n//# sourceMappingURL={name}.map"

    if code:
        out_file.write_text(code, encoding="utf-8")
    return out_file


async def compile_all(
    entries: Iterable[FunctionEntry],
    config: BuildConfiguration,
    build_dir: str | Path,
    compiler: CompileFn,
) -> BuildCache:
    """Compile every unique entry once and return the build cache.

    Raises:
        ConfigurationError: invalid format / extension combination (before
            any compiler call or file write).
        CompileError: the compiler raised or returned nothing for an entry.
    """
    validate_output_extension(config)

    uniques = unique_entries(entries)
    logger.info(
        "compile.start",
        entries=len(uniques),
        concurrency=config.concurrency or "unbounded",
        target=config.target,
    )

    async def _compile_one(entry: str) -> BuildResult:
        compiler_config = build_compiler_config(entry, config, build_dir)
        bundle_path = _bundle_path(entry, config)
        try:
            emitted = await _invoke(compiler, compiler_config)
            raw = (emitted or {}).get(PurePath(entry).name)
            if raw is None:
                raise CompileError(f"Compile failed for {entry}: no output emitted", entry=entry)

            output = CompiledOutput.coerce(raw)
            await asyncio.to_thread(
                write_bundle,
                compiler_config.output.path,
                compiler_config.output.name,
                output,
                config.source_maps,
            )
        except FnpackError:
            raise
        except Exception as exc:
            raise CompileError(f"Compile failed for {entry}: {exc}", entry=entry, cause=exc) from exc

        logger.debug("compile.entry_done", entry=entry, bundle_path=bundle_path)
        return BuildResult(bundle_path=bundle_path, entry=entry, result=output)

    try:
        results = await pool.map_bounded(uniques, _compile_one, concurrency=config.concurrency)
    except CompileError as exc:
        logger.error("compile.failed", **exc.to_dict())
        raise

    logger.info("compile.complete", entries=len(results))
    return BuildCache(results)


def join_build_results(entries: Sequence[FunctionEntry], cache: BuildCache) -> list[FunctionBuildResult]:
    """Map build results back onto functions, preserving entry order.

    Placeholder entries (``func is None``) and entries without a usable
    result are dropped.
    """
    joined: list[FunctionBuildResult] = []
    for function_entry in entries:
        result = cache.get(function_entry.entry)
        bundle_path = result.bundle_path if result else None

        if not isinstance(bundle_path, str) or function_entry.func is None:
            logger.debug("compile.join_skipped", entry=function_entry.entry, alias=function_entry.function_alias)
            continue

        alias = function_entry.function_alias or function_entry.func.name or PurePath(bundle_path).stem
        joined.append(
            FunctionBuildResult(bundle_path=bundle_path, func=function_entry.func, function_alias=alias)
        )
    return joined


__all__ = [
    "BuildCache",
    "CompileFn",
    "build_compiler_config",
    "bundle_path_for",
    "compile_all",
    "join_build_results",
    "strip_entry_resolve_extension",
    "unique_entries",
    "write_bundle",
]
