"""Tests for fnpack.pack — per-function and service archives."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from fnpack import pack as pack_module
from fnpack.archive import read_archive_listing
from fnpack.config import BuildConfiguration
from fnpack.core.errors import PackagingError
from fnpack.execution import pool
from fnpack.models import CandidateFile, DependencyNode, FunctionBuildResult
from fnpack.pack import human_size, pack_all, prepare_entries, probe_files

BUILD_FILES = {
    "src/hello1.js": "h1",
    "src/hello1.js.map": "{}",
    "src/hello2.js": "h2",
    "node_modules/sharp/index.js": "sharp",
    "node_modules/lodash/index.js": "lodash",
    "__only_hello2/bin/tool": "tool",
    "package.json": "{}",
}


@pytest.fixture
def layout(tmp_path, make_files):
    service_dir = tmp_path / "svc"
    work_dir = service_dir / ".fnpack"
    build_dir = work_dir / ".build"
    make_files(build_dir, BUILD_FILES)
    return service_dir, work_dir, build_dir


@pytest.fixture
def packager():
    fake = MagicMock()
    fake.get_prod_dependencies.return_value = {"sharp": DependencyNode("0.33.0")}
    return fake


def _results(service):
    return [
        FunctionBuildResult(bundle_path=f"src/{alias}.js", func=func, function_alias=alias)
        for alias, func in service.functions.items()
    ]


async def _pack(service, config, layout, packager):
    service_dir, work_dir, build_dir = layout
    return await pack_all(
        _results(service),
        service,
        config,
        build_dir=build_dir,
        work_dir=work_dir,
        service_dir=service_dir,
        packager=packager,
    )


class TestIndividually:
    @pytest.mark.asyncio
    async def test_one_archive_per_function(self, layout, packager, service_factory):
        service = service_factory({"hello1": {"handler": "src/hello1.handler"}, "hello2": {"handler": "src/hello2.handler"}})
        config = BuildConfiguration(external=["sharp"])
        result = await _pack(service, config, layout, packager)

        assert result.ok
        assert [a.function_alias for a in result.archives] == ["hello1", "hello2"]
        assert read_archive_listing(result.archives[0].path) == [
            "node_modules/sharp/index.js",
            "src/hello1.js",
            "src/hello1.js.map",
        ]
        assert read_archive_listing(result.archives[1].path) == [
            "bin/tool",
            "node_modules/sharp/index.js",
            "src/hello2.js",
        ]
        packager.get_prod_dependencies.assert_called_once_with(layout[2])

    @pytest.mark.asyncio
    async def test_artifact_paths_relative_to_service(self, layout, packager, service_factory):
        service = service_factory({"hello1": {}, "hello2": {}})
        await _pack(service, BuildConfiguration(), layout, packager)
        assert service.functions["hello1"].package.artifact == os.path.join(".fnpack", ".serverless", "hello1.zip")
        assert (layout[1] / ".serverless" / "hello2.zip").is_file()
        assert service.package.artifact is None

    @pytest.mark.asyncio
    async def test_no_externals_no_dependency_lookup(self, layout, packager, service_factory):
        service = service_factory({"hello1": {}, "hello2": {}})
        result = await _pack(service, BuildConfiguration(), layout, packager)
        packager.get_prod_dependencies.assert_not_called()
        assert read_archive_listing(result.archives[0].path) == ["src/hello1.js", "src/hello1.js.map"]

    @pytest.mark.asyncio
    async def test_function_patterns(self, layout, packager, service_factory):
        service = service_factory(
            {"hello1": {"package": {"patterns": ["node_modules/lodash/**", "!src/*.map"]}}, "hello2": {}},
            patterns=["!node_modules/lodash/README*"],
        )
        result = await _pack(service, BuildConfiguration(), layout, packager)
        assert read_archive_listing(result.archives[0].path) == ["node_modules/lodash/index.js", "src/hello1.js"]

    @pytest.mark.asyncio
    async def test_empty_file_fails_only_its_function(self, layout, packager, service_factory, make_files):
        make_files(layout[2], {"__only_hello2/bin/empty": ""})
        service = service_factory({"hello1": {}, "hello2": {}})
        result = await _pack(service, BuildConfiguration(), layout, packager)

        assert not result.ok
        assert [a.function_alias for a in result.archives] == ["hello1"]
        (failure,) = result.failures
        assert isinstance(failure, PackagingError)
        assert failure.function_alias == "hello2"
        assert "empty file" in failure.message
        assert service.functions["hello2"].package.artifact is None
        assert not (layout[1] / ".serverless" / "hello2.zip").exists()

    @pytest.mark.asyncio
    async def test_allow_list_ships_dependency(self, layout, packager, service_factory):
        packager.get_prod_dependencies.return_value = {
            "sharp": DependencyNode("0.33.0"),
            "lodash": DependencyNode("4.17.21"),
        }
        service = service_factory({"hello1": {}, "hello2": {}})
        config = BuildConfiguration(node_externals={"allow_list": ["lodash"]})
        result = await _pack(service, config, layout, packager)

        packager.get_prod_dependencies.assert_called_once()
        assert read_archive_listing(result.archives[0].path) == [
            "node_modules/lodash/index.js",
            "src/hello1.js",
            "src/hello1.js.map",
        ]

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_packaging_error(self, layout, packager, service_factory, monkeypatch):
        def broken(unit, *args):
            raise OSError(f"disk full writing {unit}")

        monkeypatch.setattr(pack_module, "write_unit", broken)
        service = service_factory({"hello1": {}, "hello2": {}})
        result = await _pack(service, BuildConfiguration(), layout, packager)

        assert [f.function_alias for f in result.failures] == ["hello1", "hello2"]
        assert all(isinstance(f, PackagingError) for f in result.failures)
        assert "disk full writing hello1" in result.failures[0].message

    @pytest.mark.asyncio
    async def test_zip_concurrency_forwarded(self, layout, packager, service_factory, monkeypatch):
        seen = []
        original = pool.map_settled

        async def spy(items, mapper, *, concurrency):
            seen.append((len(items), concurrency))
            return await original(items, mapper, concurrency=concurrency)

        monkeypatch.setattr(pool, "map_settled", spy)
        service = service_factory({"hello1": {}, "hello2": {}})
        await _pack(service, BuildConfiguration(zip_concurrency=1), layout, packager)
        assert seen == [(2, 1)]

    @pytest.mark.asyncio
    async def test_archives_are_reproducible(self, layout, packager, service_factory):
        service = service_factory({"hello1": {}, "hello2": {}})
        first = await _pack(service, BuildConfiguration(external=["sharp"]), layout, packager)
        before = [a.path.read_bytes() for a in first.archives]
        second = await _pack(service, BuildConfiguration(external=["sharp"]), layout, packager)
        assert [a.path.read_bytes() for a in second.archives] == before


class TestServiceArchive:
    @pytest.mark.asyncio
    async def test_single_archive_with_absolute_pointer(self, layout, packager, service_factory):
        service = service_factory({"hello1": {}, "hello2": {}}, individually=False, name="demo")
        result = await _pack(service, BuildConfiguration(external=["sharp"]), layout, packager)

        (record,) = result.archives
        assert record.path == layout[1] / ".serverless" / "demo.zip"
        assert Path(service.package.artifact).is_absolute()
        assert service.package.artifact == str(record.path)
        assert service.functions["hello1"].package.artifact is None
        assert read_archive_listing(record.path) == [
            "bin/tool",
            "node_modules/sharp/index.js",
            "src/hello1.js",
            "src/hello1.js.map",
            "src/hello2.js",
        ]

    @pytest.mark.asyncio
    async def test_unexpected_error_collected_as_failure(self, layout, packager, service_factory, monkeypatch):
        def broken(unit, *args):
            raise OSError("disk full")

        monkeypatch.setattr(pack_module, "write_unit", broken)
        service = service_factory({"hello1": {}, "hello2": {}}, individually=False, name="demo")
        result = await _pack(service, BuildConfiguration(), layout, packager)

        assert result.archives == []
        (failure,) = result.failures
        assert isinstance(failure, PackagingError)
        assert failure.context.service == "demo"
        assert failure.function_alias is None
        assert isinstance(failure.cause, OSError)
        assert service.package.artifact is None


@pytest.mark.asyncio
async def test_no_files_warns_without_archive(tmp_path, packager, service_factory, captured_logs):
    service = service_factory({"hello1": {}})
    result = await pack_all(
        [],
        service,
        BuildConfiguration(),
        build_dir=tmp_path / "empty",
        work_dir=tmp_path,
        service_dir=tmp_path,
        packager=packager,
    )
    assert result.archives == [] and result.ok
    assert "pack.no_files" in [e["event"] for e in captured_logs]
    assert not (tmp_path / ".serverless").exists()


class TestPrepareEntries:
    def test_private_overrides_shared(self):
        files = [
            CandidateFile(local_path="__only_a/config.json", root_path="/p/config.json"),
            CandidateFile(local_path="config.json", root_path="/s/config.json"),
            CandidateFile(local_path="src/a.js", root_path="/s/src/a.js"),
        ]
        entries = prepare_entries(files)
        assert [(e.local_path, e.root_path) for e in entries] == [
            ("config.json", "/p/config.json"),
            ("src/a.js", "/s/src/a.js"),
        ]

    def test_private_after_shared_still_wins(self):
        files = [
            CandidateFile(local_path="config.json", root_path="/s/config.json"),
            CandidateFile(local_path="__only_a/config.json", root_path="/p/config.json"),
        ]
        assert prepare_entries(files)[0].root_path == "/p/config.json"


class TestProbeFiles:
    def test_missing(self, tmp_path):
        with pytest.raises(PackagingError, match="missing file") as exc:
            probe_files([CandidateFile("a.js", str(tmp_path / "a.js"))], "hello")
        assert exc.value.context.path == str(tmp_path / "a.js")
        assert exc.value.function_alias == "hello"

    def test_ok(self, tmp_path):
        (tmp_path / "a.js").write_text("x")
        probe_files([CandidateFile("a.js", str(tmp_path / "a.js"))], "hello")


def test_human_size():
    assert human_size(512) == "512 B"
    assert human_size(2048) == "2.00 KB"
    assert human_size(3 * 1024 * 1024) == "3.00 MB"
