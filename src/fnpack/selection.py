"""File Selector — which files from the build directory go into an archive.

The build directory is shared by every function::

    .build/
      src/hello1.js             ← bundles (one per unique entry)
      src/hello1.js.map
      src/hello2.js
      node_modules/sharp/...    ← installed externals
      __only_hello2/bin/magick  ← staged for hello2 only

:func:`filter_files_for_zip_package` decides, for one function (or for the
whole service when ``function_alias`` is None), which of those files ship:

1. ``__only_<alias>/`` files of other functions never ship.
2. Dependency files (``node_modules/<pkg>/...``) ship only when the function
   has externals, the provider ships dependencies, and ``<pkg>`` is in the
   externals whitelist (an empty whitelist or ``"*"`` allows every package).
3. ``included_files`` globs force files back in; ``excluded_files`` globs
   then remove files. Exclude wins on conflict.

The result keeps the input order. :func:`list_candidate_files` produces a
listing sorted by local path, so selection output is deterministic.
"""

from __future__ import annotations

import glob
import os
import shutil
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from fnpack.core.logging import get_logger
from fnpack.models import ONLY_PREFIX, CandidateFile, DependencyTree, ProviderStrategy
from fnpack.utils.patterns import matches_any_pattern, to_posix

logger = get_logger(__name__)

DEPENDENCY_DIR = "node_modules"

# Package manager manifests never shipped from the build root.
PACKAGER_MANIFESTS = ("package-lock.json", "pnpm-lock.yaml", "package.json", "yarn.lock")


@dataclass(frozen=True)
class ProviderRules:
    listing_exclusions: frozenset[str]
    ships_dependencies: bool
    normalize_paths: bool


_RULES: dict[ProviderStrategy, ProviderRules] = {
    ProviderStrategy.GENERIC: ProviderRules(
        listing_exclusions=frozenset(PACKAGER_MANIFESTS),
        ships_dependencies=True,
        normalize_paths=False,
    ),
    # Google Cloud Functions installs dependencies from package.json itself.
    ProviderStrategy.GOOGLE: ProviderRules(
        listing_exclusions=frozenset(PACKAGER_MANIFESTS) - {"package.json"},
        ships_dependencies=False,
        normalize_paths=True,
    ),
}


def rules_for(provider: ProviderStrategy) -> ProviderRules:
    return _RULES[ProviderStrategy(provider)]


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def private_alias(local_path: str) -> str | None:
    """Alias owning a ``__only_<alias>/...`` path, else None."""
    if not local_path.startswith(ONLY_PREFIX):
        return None
    head, sep, _ = local_path.partition("/")
    if not sep:
        return None
    return head[len(ONLY_PREFIX) :]


def strip_private_prefix(local_path: str) -> str:
    """``__only_hello/bin/x`` -> ``bin/x``; other paths unchanged."""
    if private_alias(local_path) is None:
        return local_path
    return local_path.partition("/")[2]


def dependency_package(local_path: str) -> str | None:
    """Top-level package a ``node_modules`` path belongs to."""
    parts = local_path.split("/")
    if len(parts) < 3 or parts[0] != DEPENDENCY_DIR:
        return None
    if parts[1].startswith("@"):
        return f"{parts[1]}/{parts[2]}" if len(parts) >= 4 else None
    return parts[1]


def bundle_exclusion_pattern(bundle_path: str) -> str:
    """Glob matching a bundle and its derived files (``.map``)."""
    stem = os.path.splitext(to_posix(bundle_path))[0]
    return f"{glob.escape(stem)}.*"


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def list_candidate_files(
    build_dir: str | Path,
    provider: ProviderStrategy = ProviderStrategy.GENERIC,
) -> list[CandidateFile]:
    """Every file under ``build_dir`` (dotfiles included), sorted by local path."""
    root = Path(build_dir)
    if not root.is_dir():
        return []

    exclusions = rules_for(provider).listing_exclusions
    files: list[CandidateFile] = []
    # Real paths of each pending directory's ancestors; a link back into them is a cycle.
    ancestry: dict[str, frozenset[str]] = {}
    for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
        chain = ancestry.pop(dirpath, frozenset()) | {os.path.realpath(dirpath)}
        kept: list[str] = []
        for dirname in sorted(dirnames):
            child = os.path.join(dirpath, dirname)
            if os.path.realpath(child) in chain:
                logger.warning("selection.symlink_cycle", path=child)
                continue
            ancestry[child] = chain
            kept.append(dirname)
        dirnames[:] = kept
        for filename in filenames:
            absolute = Path(dirpath) / filename
            local_path = absolute.relative_to(root).as_posix()
            if local_path in exclusions:
                continue
            files.append(CandidateFile(local_path=local_path, root_path=str(absolute)))

    files.sort(key=lambda f: f.local_path)
    return files


# ---------------------------------------------------------------------------
# Housekeeping
# ---------------------------------------------------------------------------


def is_staged_input(name: str) -> bool:
    """Top-level build-directory entries placed there before the compile."""
    return name == DEPENDENCY_DIR or name.startswith(ONLY_PREFIX) or name in PACKAGER_MANIFESTS


def clear_build_output(build_dir: str | Path) -> list[str]:
    """Remove compiled output left by earlier runs.

    Installed dependencies, ``__only_<alias>/`` folders and packager
    manifests stay; everything else at the top of ``build_dir`` goes.
    Returns the removed top-level names.
    """
    root = Path(build_dir)
    if not root.is_dir():
        return []

    removed: list[str] = []
    for child in sorted(root.iterdir()):
        if is_staged_input(child.name):
            continue
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()
        removed.append(child.name)

    if removed:
        logger.debug("selection.build_output_cleared", build_dir=str(root), removed=removed)
    return removed



# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def filter_files_for_zip_package(
    files: Sequence[CandidateFile],
    *,
    function_alias: str | None,
    dep_white_list: Sequence[str] = (),
    has_externals: bool = False,
    included_files: Sequence[str] = (),
    excluded_files: Sequence[str] = (),
    provider: ProviderStrategy = ProviderStrategy.GENERIC,
) -> list[CandidateFile]:
    """Files from ``files`` that belong in ``function_alias``'s archive.

    ``function_alias=None`` selects for the whole-service archive: private
    files of every function are admitted.
    """
    rules = rules_for(provider)
    allow_all_deps = not dep_white_list or "*" in dep_white_list
    whitelist = frozenset(dep_white_list)

    selected: list[CandidateFile] = []
    for candidate in files:
        local_path = to_posix(candidate.local_path)
        owner = private_alias(local_path)

        if owner is not None and function_alias is not None and owner != function_alias:
            continue

        keep = True
        package = dependency_package(local_path) if owner is None else None
        if package is not None:
            if not has_externals or not rules.ships_dependencies:
                keep = False
            elif not allow_all_deps and package not in whitelist:
                keep = False

        if not keep and matches_any_pattern(local_path, included_files):
            keep = True

        if keep and (
            matches_any_pattern(local_path, excluded_files)
            or matches_any_pattern(strip_private_prefix(local_path), excluded_files)
        ):
            keep = False

        if not keep:
            continue

        if rules.normalize_paths and local_path != candidate.local_path:
            candidate = CandidateFile(local_path=local_path, root_path=candidate.root_path)
        selected.append(candidate)

    return selected


# ---------------------------------------------------------------------------
# Externals whitelist
# ---------------------------------------------------------------------------


def flatten_dependencies(root: DependencyTree, root_filter: Iterable[str]) -> list[str]:
    """Package names that must ship for the externals in ``root_filter``.

    Starts from the root packages named in ``root_filter`` and follows their
    dependencies. Packages hoisted to the root (``is_root_dep``) are added
    and followed through the root tree; nested installs ship inside their
    parent's folder and are only walked through.
    """
    wanted = set(root_filter)
    found: dict[str, None] = {}

    def visit(deps: DependencyTree, at_root: bool) -> None:
        for name, node in deps.items():
            if at_root and name not in wanted:
                continue
            if at_root or node.is_root_dep:
                if name in found:
                    continue
                found[name] = None
                root_node = root.get(name)
                visit(root_node.dependencies if root_node else {}, at_root=False)
                continue
            visit(node.dependencies, at_root=False)

    visit(root, at_root=True)
    return list(found)


__all__ = [
    "DEPENDENCY_DIR",
    "PACKAGER_MANIFESTS",
    "ProviderRules",
    "bundle_exclusion_pattern",
    "clear_build_output",
    "dependency_package",
    "filter_files_for_zip_package",
    "flatten_dependencies",
    "is_staged_input",
    "list_candidate_files",
    "private_alias",
    "rules_for",
    "strip_private_prefix",
]
