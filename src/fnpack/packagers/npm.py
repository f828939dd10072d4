"""npm adapter.

``npm ls --json --omit=dev --all`` prints the whole installed tree. npm
hoists aggressively, so a nested package whose version matches the root
copy lives in the root ``node_modules`` and is flagged ``is_root_dep``.
"""

from __future__ import annotations

from typing import Any

from fnpack.models import DependencyNode, DependencyTree
from fnpack.packagers.base import Packager


class NPM(Packager):
    name = "npm"

    @property
    def lockfile_name(self) -> str:
        return "package-lock.json"

    def list_command(self) -> list[str]:
        return ["npm", "ls", "--json", "--omit=dev", "--all"]

    def parse_tree(self, data: Any) -> DependencyTree:
        root_deps: dict[str, Any] = (data or {}).get("dependencies") or {}
        root_versions = {name: (info or {}).get("version", "") for name, info in root_deps.items()}

        def convert(deps: dict[str, Any], at_root: bool) -> DependencyTree:
            tree: DependencyTree = {}
            for name, info in deps.items():
                info = info or {}
                version = info.get("version", "")
                if not at_root and root_versions.get(name) == version:
                    tree[name] = DependencyNode(version=version, is_root_dep=True)
                    continue
                tree[name] = DependencyNode(
                    version=version,
                    dependencies=convert(info.get("dependencies") or {}, at_root=False),
                )
            return tree

        return convert(root_deps, at_root=True)
