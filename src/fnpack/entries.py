"""Function entry extraction.

Turns the service's functions into :class:`~fnpack.models.FunctionEntry`
values. A handler ``src/handlers/user.create`` names the export ``create``
of the module ``src/handlers/user``; the module is resolved against the
configured extensions, in order.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

from fnpack.config import DEFAULT_RESOLVE_EXTENSIONS, BuildConfiguration
from fnpack.core.errors import ConfigurationError
from fnpack.core.logging import get_logger
from fnpack.models import FunctionDefinition, FunctionEntry

logger = get_logger(__name__)


def is_node_function(func: FunctionDefinition) -> bool:
    """Functions without a runtime inherit the provider's (assumed node)."""
    return func.runtime is None or func.runtime.startswith("nodejs")


def is_prebuilt(alias: str, func: FunctionDefinition, config: BuildConfiguration | None) -> bool:
    """True when the function ships an existing artifact instead of a build.

    ``skip_build_exclude_fns`` names the functions that are still built while
    ``skip_build`` is on.
    """
    if func.skip_build:
        return True
    if config is None or not config.skip_build:
        return False
    return alias not in config.skip_build_exclude_fns


def resolve_handler(service_dir: Path, handler: str, extensions: Sequence[str]) -> str:
    """Source file (relative, POSIX) for a ``path/file.export`` handler.

    Raises:
        ConfigurationError: no file with any of ``extensions`` exists.
    """
    module, _, _export = handler.rpartition(".")
    if not module:
        raise ConfigurationError(f"Invalid handler {handler!r}: expected 'path/to/file.export'")

    for ext in extensions:
        candidate = service_dir / f"{module}{ext}"
        if candidate.is_file():
            return candidate.relative_to(service_dir).as_posix()

    raise ConfigurationError(
        f"Cannot locate entrypoint for handler {handler!r}; tried extensions {', '.join(extensions)}",
        path=module,
    )


def extract_function_entries(
    service_dir: str | Path,
    functions: Mapping[str, FunctionDefinition],
    resolve_extensions: Sequence[str] | None = None,
    build_config: BuildConfiguration | None = None,
) -> list[FunctionEntry]:
    """One entry per function that needs compiling, in declaration order.

    Raises:
        ConfigurationError: a handler or explicit entrypoint does not exist.
    """
    root = Path(service_dir)
    extensions = list(resolve_extensions or DEFAULT_RESOLVE_EXTENSIONS)
    entries: list[FunctionEntry] = []

    for alias, func in functions.items():
        if is_prebuilt(alias, func, build_config):
            logger.debug("entries.skip_prebuilt", alias=alias)
            continue
        if not is_node_function(func):
            logger.debug("entries.skip_runtime", alias=alias, runtime=func.runtime)
            continue

        if func.entrypoint:
            entry_file = root / func.entrypoint
            if not entry_file.is_file():
                raise ConfigurationError(
                    f"Entrypoint for function {alias!r} does not exist: {func.entrypoint}",
                    function_alias=alias,
                    path=func.entrypoint,
                )
            entry = entry_file.relative_to(root).as_posix()
        elif func.handler:
            try:
                entry = resolve_handler(root, func.handler, extensions)
            except ConfigurationError as exc:
                raise exc.with_context(function_alias=alias)
        else:
            logger.debug("entries.skip_no_handler", alias=alias)
            continue

        entries.append(FunctionEntry(entry=entry, func=func, function_alias=alias))

    logger.info("entries.extracted", functions=len(functions), entries=len(entries))
    return entries


__all__ = ["extract_function_entries", "is_node_function", "is_prebuilt", "resolve_handler"]
