"""
Package manager adapters.

Usage::

    packager = get_packager("yarn")
    tree = packager.get_prod_dependencies(build_dir)
"""

from __future__ import annotations

from functools import cache

from fnpack.core.errors import ConfigurationError
from fnpack.packagers.base import Packager
from fnpack.packagers.npm import NPM
from fnpack.packagers.pnpm import Pnpm
from fnpack.packagers.yarn import Yarn

_REGISTRY: dict[str, type[Packager]] = {
    "npm": NPM,
    "pnpm": Pnpm,
    "yarn": Yarn,
}


@cache
def get_packager(packager_id: str) -> Packager:
    """Return the (cached) packager for ``packager_id``.

    Raises:
        ConfigurationError: unknown packager id.
    """
    try:
        packager_cls = _REGISTRY[packager_id]
    except KeyError:
        raise ConfigurationError(
            f"Unknown packager {packager_id!r}; expected one of {', '.join(sorted(_REGISTRY))}"
        ) from None
    return packager_cls()


__all__ = ["NPM", "Packager", "Pnpm", "Yarn", "get_packager"]
