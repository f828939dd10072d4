"""pnpm adapter.

pnpm keeps transitive dependencies out of the root ``node_modules``, so
nothing below the root level is flagged ``is_root_dep``.
"""

from __future__ import annotations

from typing import Any

from fnpack.models import DependencyNode, DependencyTree
from fnpack.packagers.base import Packager


class Pnpm(Packager):
    name = "pnpm"

    @property
    def lockfile_name(self) -> str:
        return "pnpm-lock.yaml"

    def list_command(self) -> list[str]:
        return ["pnpm", "ls", "--json", "--prod", "--depth", "Infinity"]

    def parse_tree(self, data: Any) -> DependencyTree:
        # One entry per workspace project; the build directory has one.
        projects = data if isinstance(data, list) else [data or {}]
        root = projects[0] if projects else {}

        def convert(deps: dict[str, Any]) -> DependencyTree:
            return {
                name: DependencyNode(
                    version=(info or {}).get("version", ""),
                    dependencies=convert((info or {}).get("dependencies") or {}),
                )
                for name, info in deps.items()
            }

        return convert(root.get("dependencies") or {})
