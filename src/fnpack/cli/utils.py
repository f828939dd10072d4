"""
CLI utility helpers — output formatting and compiler loading.
"""

from __future__ import annotations

import importlib
import json
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from fnpack.core.errors import FnpackError

console = Console()
err_console = Console(stderr=True)


# ── Compiler loading ─────────────────────────────────────────────────────


def load_compiler(spec: str) -> Any:
    """Import ``module:callable`` and return the callable."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise typer.BadParameter(f"expected 'module:callable', got {spec!r}", param_hint="--compiler")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"cannot import {module_name!r}: {e}", param_hint="--compiler") from e

    target: Any = module
    for part in attr.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise typer.BadParameter(f"{module_name!r} has no attribute {attr!r}", param_hint="--compiler")
    if not callable(target):
        raise typer.BadParameter(f"{spec!r} is not callable", param_hint="--compiler")
    return target


# ── Output helpers ───────────────────────────────────────────────────────


def to_jsonable(obj: Any) -> Any:
    """Convert dataclasses / pydantic models / paths to plain JSON values."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if is_dataclass(obj) and not isinstance(obj, type):
        return {k: to_jsonable(v) for k, v in asdict(obj).items()}
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, list | tuple):
        return [to_jsonable(v) for v in obj]
    if isinstance(obj, Path):
        return str(obj)
    return obj


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(to_jsonable(payload), default=str))


def fail(error: FnpackError | str) -> None:
    """Print an error and exit with code 1."""
    if isinstance(error, FnpackError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=1)


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) if v is not None else "-" for v in row.values()))
    console.print(table)
