"""
Root Typer application for the fnpack CLI.

Commands::

    fnpack package serverless.yml --compiler my_build:compile
    fnpack package --compiler my_build:compile      # $FNPACK_SERVICE_DIR/serverless.yml
    fnpack inspect .fnpack/.serverless/hello.zip
    fnpack config
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from typer import Typer

from fnpack.archive import read_archive_listing
from fnpack.cli.utils import console, fail, load_compiler, print_json, print_table
from fnpack.config import BuildConfiguration, load_service
from fnpack.core.errors import ConfigurationError, FnpackError
from fnpack.core.logging import configure_logging
from fnpack.core.settings import get_settings
from fnpack.pack import human_size
from fnpack.pipeline import PackagingPipeline

app = Typer(
    name="fnpack",
    help="fnpack — compile functions once and package them into deployable archives.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from fnpack import __version__

        typer.echo(f"fnpack {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override FNPACK_LOG_LEVEL."),
) -> None:
    """fnpack CLI — build, package and inspect function archives."""
    settings = get_settings()
    configure_logging(level=log_level or settings.log_level, json_format=settings.log_json)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("package")
def package(
    service_file: Path | None = typer.Argument(
        None, help="Service definition (YAML). Default: $FNPACK_SERVICE_DIR/serverless.yml."
    ),
    compiler: str | None = typer.Option(
        None, "--compiler", "-c", help="Compiler as 'module:callable'. Not needed with skip_build."
    ),
    work_dir: Path | None = typer.Option(None, "--work-dir", help="Output directory (default: <service>/.fnpack)."),
    as_json: bool = typer.Option(False, "--json", help="Print the outcome as JSON."),
) -> None:
    """Compile and package every function of a service."""
    if service_file is None:
        service_file = get_settings().default_service_file
    try:
        service, config = load_service(service_file)
    except FnpackError as e:
        fail(e)

    compile_fn = load_compiler(compiler) if compiler else None
    if compile_fn is None and not config.skip_build:
        raise typer.BadParameter("required unless skip_build is set", param_hint="--compiler")

    pipeline = PackagingPipeline(
        service,
        config,
        compile_fn,
        service_dir=service_file.resolve().parent,
        work_dir=work_dir,
    )
    try:
        outcome = pipeline.run(raise_on_failure=False)
    except FnpackError as e:
        fail(e)

    if as_json:
        print_json(
            {
                "run_id": outcome.run_id,
                "ok": outcome.ok,
                "archives": outcome.archives,
                "copied": outcome.copied,
                "failures": [f.to_dict() for f in outcome.failures],
                "artifacts": {alias: fn.package.artifact for alias, fn in service.functions.items()},
                "service_artifact": service.package.artifact,
            }
        )
    else:
        rows = [
            {"unit": a.function_alias or service.service, "archive": str(a.path), "size": human_size(a.size_bytes)}
            for a in outcome.archives
        ]
        rows += [
            {"unit": c.function_alias or service.service, "archive": str(c.destination), "size": "pre-built"}
            for c in outcome.copied
        ]
        print_table(rows, title=f"{service.service} archives")
        for failure in outcome.failures:
            console.print(f"[red]✗[/red] {failure.message}")

    if not outcome.ok:
        raise typer.Exit(code=1)


@app.command("inspect")
def inspect_archive(
    archive: Path = typer.Argument(..., exists=True, dir_okay=False, help="Archive to list."),
    as_json: bool = typer.Option(False, "--json", help="Print entries as JSON."),
) -> None:
    """List archive entries in stored order."""
    entries = read_archive_listing(archive)
    if as_json:
        print_json(entries)
        return
    for name in entries:
        console.print(name)


@app.command("config")
def show_config(
    as_json: bool = typer.Option(False, "--json", help="Print settings as JSON."),
) -> None:
    """Show effective settings and the default build configuration."""
    settings = get_settings()
    try:
        build = BuildConfiguration.from_env()
    except ValidationError as e:
        fail(ConfigurationError(f"Invalid FNPACK_* environment: {e}", cause=e))

    if as_json:
        print_json({"settings": settings, "build": build})
        return

    print_table(
        [{"setting": k, "value": v} for k, v in settings.model_dump().items()],
        title="Settings",
    )
    print_table(
        [{"option": k, "value": v} for k, v in build.model_dump().items()],
        title="Build configuration",
    )
