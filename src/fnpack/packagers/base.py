"""Packager interface shared by the npm, pnpm and yarn adapters."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from fnpack.core.errors import PackagerError
from fnpack.core.logging import get_logger
from fnpack.models import DependencyTree
from fnpack.utils.process import CommandNotFoundError, SpawnResult, spawn

logger = get_logger(__name__)


class Packager(ABC):
    """A package manager as seen by the pipeline.

    Only the production dependency tree is consumed; installing packages is
    the responsibility of whoever prepared the build directory.
    """

    #: Packager id (``npm``, ``pnpm``, ``yarn``)
    name: str = ""

    @property
    @abstractmethod
    def lockfile_name(self) -> str:
        """Lockfile this package manager writes."""

    @abstractmethod
    def list_command(self) -> list[str]:
        """Command that prints the production dependency tree as JSON."""

    @abstractmethod
    def parse_tree(self, data: Any) -> DependencyTree:
        """Convert the command's JSON output into a :data:`DependencyTree`."""

    def get_prod_dependencies(self, cwd: str | Path) -> DependencyTree:
        """Production dependency tree of the package.json found in ``cwd``.

        A non-zero exit is tolerated when the output still parses: npm and
        yarn report peer-dependency problems that way.

        Raises:
            PackagerError: the binary is missing or the output is unusable.
        """
        command = self.list_command()
        try:
            result = spawn(command, cwd=cwd, check=False)
        except CommandNotFoundError as exc:
            raise PackagerError(str(exc), cause=exc, packager=self.name) from exc

        data = self._load_json(result, command)
        if result.returncode != 0:
            logger.warning(
                "packager.nonzero_exit",
                packager=self.name,
                returncode=result.returncode,
                stderr=result.stderr.strip()[:500],
            )

        tree = self.parse_tree(data)
        logger.debug("packager.tree_loaded", packager=self.name, root_packages=len(tree))
        return tree

    def _load_json(self, result: SpawnResult, command: list[str]) -> Any:
        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise PackagerError(
                f"{' '.join(command)} produced invalid JSON (exit {result.returncode}): "
                f"{(result.stderr or result.stdout).strip()[:500]}",
                cause=exc,
                packager=self.name,
            ) from exc
