"""
CLI layer for fnpack.

Provides a Typer application that drives :class:`fnpack.pipeline.PackagingPipeline`.
All packaging logic lives in the pipeline modules; this package handles only
terminal transport: argument parsing, coloured output and table formatting.

Entry point::

    fnpack --help
"""

from fnpack.cli.app import app

__all__ = ["app"]
