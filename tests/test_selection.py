"""Tests for fnpack.selection — per-function file selection and the externals whitelist."""

from __future__ import annotations

import os

import pytest

from fnpack.models import CandidateFile, DependencyNode, ProviderStrategy
from fnpack.selection import (
    bundle_exclusion_pattern,
    clear_build_output,
    dependency_package,
    filter_files_for_zip_package,
    flatten_dependencies,
    is_staged_input,
    list_candidate_files,
    private_alias,
    strip_private_prefix,
)


def _files(*paths: str) -> list[CandidateFile]:
    return [CandidateFile(local_path=p, root_path=f"/build/{p}") for p in paths]


def _paths(files: list[CandidateFile]) -> list[str]:
    return [f.local_path for f in files]


BUILD = _files(
    "__only_hello1/bin/tool",
    "__only_hello2/bin/tool",
    "__only_hello2/data/model.bin",
    "node_modules/@img/sharp/index.js",
    "node_modules/lodash/index.js",
    "node_modules/sharp/index.js",
    "src/hello1.js",
    "src/hello1.js.map",
    "src/hello2.js",
)


class TestPathHelpers:
    def test_private_alias(self):
        assert private_alias("__only_hello/bin/x") == "hello"
        assert private_alias("src/__only_hello/x") is None
        assert private_alias("__only_hello") is None

    def test_strip_private_prefix(self):
        assert strip_private_prefix("__only_hello/bin/x") == "bin/x"
        assert strip_private_prefix("src/a.js") == "src/a.js"

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("node_modules/sharp/index.js", "sharp"),
            ("node_modules/@img/sharp/lib/x.js", "@img/sharp"),
            ("node_modules/.bin", None),
            ("src/node_modules/x/y.js", None),
        ],
    )
    def test_dependency_package(self, path, expected):
        assert dependency_package(path) == expected

    def test_bundle_exclusion_pattern(self):
        assert bundle_exclusion_pattern("src/hello1.js") == "src/hello1.*"
        assert bundle_exclusion_pattern("src/[id].js") == "src/[[]id].*"


class TestIsolation:
    def test_other_functions_private_files_never_ship(self):
        selected = filter_files_for_zip_package(BUILD, function_alias="hello1")
        assert "__only_hello1/bin/tool" in _paths(selected)
        assert not [p for p in _paths(selected) if p.startswith("__only_hello2/")]

    def test_include_cannot_override_isolation(self):
        selected = filter_files_for_zip_package(BUILD, function_alias="hello1", included_files=["**"])
        assert not [p for p in _paths(selected) if p.startswith("__only_hello2/")]

    def test_service_archive_admits_every_private_file(self):
        selected = filter_files_for_zip_package(BUILD, function_alias=None)
        assert {"__only_hello1/bin/tool", "__only_hello2/bin/tool"} <= set(_paths(selected))


class TestDependencies:
    def test_dropped_without_externals(self):
        selected = filter_files_for_zip_package(BUILD, function_alias="hello1", has_externals=False)
        assert not [p for p in _paths(selected) if p.startswith("node_modules/")]

    def test_whitelist(self):
        selected = filter_files_for_zip_package(
            BUILD, function_alias="hello1", has_externals=True, dep_white_list=["sharp", "@img/sharp"]
        )
        deps = [p for p in _paths(selected) if p.startswith("node_modules/")]
        assert deps == ["node_modules/@img/sharp/index.js", "node_modules/sharp/index.js"]

    @pytest.mark.parametrize("white_list", [[], ["*"]])
    def test_empty_or_star_whitelist_allows_all(self, white_list):
        selected = filter_files_for_zip_package(
            BUILD, function_alias="hello1", has_externals=True, dep_white_list=white_list
        )
        assert len([p for p in _paths(selected) if p.startswith("node_modules/")]) == 3

    def test_google_ships_no_dependencies(self):
        selected = filter_files_for_zip_package(
            BUILD,
            function_alias="hello1",
            has_externals=True,
            dep_white_list=["sharp"],
            provider=ProviderStrategy.GOOGLE,
        )
        assert not [p for p in _paths(selected) if p.startswith("node_modules/")]

    def test_include_forces_dependency_back_in(self):
        selected = filter_files_for_zip_package(
            BUILD, function_alias="hello1", included_files=["node_modules/lodash/**"]
        )
        assert "node_modules/lodash/index.js" in _paths(selected)


class TestPatterns:
    def test_exclude_removes_files(self):
        selected = filter_files_for_zip_package(BUILD, function_alias="hello1", excluded_files=["src/hello2.*"])
        assert _paths(selected) == ["__only_hello1/bin/tool", "src/hello1.js", "src/hello1.js.map"]

    def test_exclude_wins_over_include(self):
        selected = filter_files_for_zip_package(
            BUILD,
            function_alias="hello1",
            included_files=["node_modules/lodash/**"],
            excluded_files=["node_modules/lodash/**"],
        )
        assert "node_modules/lodash/index.js" not in _paths(selected)

    def test_exclude_matches_stripped_private_path(self):
        selected = filter_files_for_zip_package(BUILD, function_alias="hello2", excluded_files=["data/*.bin"])
        assert "__only_hello2/data/model.bin" not in _paths(selected)
        assert "__only_hello2/bin/tool" in _paths(selected)

    def test_output_preserves_input_order_and_is_stable(self):
        first = filter_files_for_zip_package(BUILD, function_alias="hello2", has_externals=True)
        second = filter_files_for_zip_package(BUILD, function_alias="hello2", has_externals=True)
        assert first == second
        assert _paths(first) == sorted(_paths(first))


class TestListCandidateFiles:
    def test_sorted_with_dotfiles_and_no_manifests(self, tmp_path, make_files):
        make_files(
            tmp_path,
            {
                "src/b.js": "b",
                "src/a.js": "a",
                ".env": "X=1",
                "package.json": "{}",
                "package-lock.json": "{}",
                "yarn.lock": "",
                "pnpm-lock.yaml": "",
                "node_modules/x/package.json": "{}",
            },
        )
        files = list_candidate_files(tmp_path)
        assert _paths(files) == [".env", "node_modules/x/package.json", "src/a.js", "src/b.js"]
        assert files[0].root_path == str(tmp_path / ".env")

    def test_google_keeps_package_json(self, tmp_path, make_files):
        make_files(tmp_path, {"package.json": "{}", "yarn.lock": "", "index.js": "x"})
        assert _paths(list_candidate_files(tmp_path, ProviderStrategy.GOOGLE)) == ["index.js", "package.json"]

    def test_missing_dir(self, tmp_path):
        assert list_candidate_files(tmp_path / "nope") == []

    def test_symlink_cycle_is_not_followed(self, tmp_path, make_files, captured_logs):
        make_files(tmp_path, {"node_modules/a/index.js": "a"})
        os.symlink(tmp_path / "node_modules", tmp_path / "node_modules" / "a" / "loop")

        files = list_candidate_files(tmp_path)

        assert _paths(files) == ["node_modules/a/index.js"]
        assert "selection.symlink_cycle" in [e["event"] for e in captured_logs]

    def test_linked_package_listed_under_each_path(self, tmp_path, make_files):
        make_files(tmp_path, {"node_modules/.pnpm/sharp@1/node_modules/sharp/index.js": "sharp"})
        os.symlink(
            tmp_path / "node_modules" / ".pnpm" / "sharp@1" / "node_modules" / "sharp",
            tmp_path / "node_modules" / "sharp",
        )
        assert _paths(list_candidate_files(tmp_path)) == [
            "node_modules/.pnpm/sharp@1/node_modules/sharp/index.js",
            "node_modules/sharp/index.js",
        ]


class TestClearBuildOutput:
    def test_keeps_staged_inputs(self, tmp_path, make_files):
        make_files(
            tmp_path,
            {
                "src/old.js": "old",
                "stale.js.map": "{}",
                "node_modules/sharp/index.js": "sharp",
                "__only_hello/bin/tool": "tool",
                "package.json": "{}",
                "yarn.lock": "",
            },
        )
        assert clear_build_output(tmp_path) == ["src", "stale.js.map"]
        assert sorted(p.name for p in tmp_path.iterdir()) == ["__only_hello", "node_modules", "package.json", "yarn.lock"]

    def test_missing_dir(self, tmp_path):
        assert clear_build_output(tmp_path / "nope") == []

    @pytest.mark.parametrize(
        "name,expected",
        [("node_modules", True), ("__only_fn", True), ("package-lock.json", True), ("src", False), (".env", False)],
    )
    def test_is_staged_input(self, name, expected):
        assert is_staged_input(name) is expected


class TestFlattenDependencies:
    def test_follows_hoisted_packages(self):
        root = {
            "a": DependencyNode(
                "1.0.0",
                dependencies={
                    "b": DependencyNode("2.0.0", is_root_dep=True),
                    "c": DependencyNode("1.0.0", dependencies={"d": DependencyNode("1.0.0", is_root_dep=True)}),
                },
            ),
            "b": DependencyNode("2.0.0", dependencies={"e": DependencyNode("3.0.0", is_root_dep=True)}),
            "d": DependencyNode("1.0.0"),
            "e": DependencyNode("3.0.0"),
            "unrelated": DependencyNode("1.0.0"),
        }
        assert flatten_dependencies(root, ["a"]) == ["a", "b", "e", "d"]

    def test_cycles_terminate(self):
        root = {
            "a": DependencyNode("1", dependencies={"b": DependencyNode("1", is_root_dep=True)}),
            "b": DependencyNode("1", dependencies={"a": DependencyNode("1", is_root_dep=True)}),
        }
        assert flatten_dependencies(root, ["a"]) == ["a", "b"]

    def test_unknown_filter_names_ignored(self):
        assert flatten_dependencies({"a": DependencyNode("1")}, ["zzz"]) == []
