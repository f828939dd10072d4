"""Yarn (classic) adapter.

``yarn list --json --production`` prints every package in the root
``node_modules`` as a top-level tree named ``name@version``. Children marked
``shadow`` are hoisted to the root; the others are nested installs.
"""

from __future__ import annotations

from typing import Any

from fnpack.models import DependencyNode, DependencyTree
from fnpack.packagers.base import Packager


def split_name_version(spec: str) -> tuple[str, str]:
    """``@scope/pkg@1.2.3`` -> (``@scope/pkg``, ``1.2.3``)."""
    index = spec.rfind("@")
    if index <= 0:
        return spec, ""
    return spec[:index], spec[index + 1 :]


class Yarn(Packager):
    name = "yarn"

    @property
    def lockfile_name(self) -> str:
        return "yarn.lock"

    def list_command(self) -> list[str]:
        return ["yarn", "list", "--json", "--production", "--no-progress"]

    def parse_tree(self, data: Any) -> DependencyTree:
        trees = ((data or {}).get("data") or {}).get("trees") or []

        def convert(children: list[dict[str, Any]], at_root: bool) -> DependencyTree:
            tree: DependencyTree = {}
            for child in children:
                name, version = split_name_version(child.get("name", ""))
                if not name:
                    continue
                if not at_root and child.get("shadow"):
                    tree[name] = DependencyNode(version=version, is_root_dep=True)
                    continue
                tree[name] = DependencyNode(
                    version=version,
                    dependencies=convert(child.get("children") or [], at_root=False),
                )
            return tree

        return convert(trees, at_root=True)
