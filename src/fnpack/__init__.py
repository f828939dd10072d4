"""
fnpack - compile functions once, package them into deployable archives.

Usage::

    from fnpack import PackagingPipeline, load_service

    service, config = load_service("serverless.yml")
    outcome = PackagingPipeline(service, config, compiler, "path/to/service").run()
"""

from fnpack.compiler import BuildCache, compile_all, join_build_results
from fnpack.config import BuildConfiguration, load_service
from fnpack.pack import PackResult, pack_all
from fnpack.pipeline import PackagingPipeline, PipelineOutcome
from fnpack.prebuilt import copy_pre_built_resources
from fnpack.selection import filter_files_for_zip_package

__version__ = "0.1.0"

__all__ = [
    "BuildCache",
    "BuildConfiguration",
    "PackResult",
    "PackagingPipeline",
    "PipelineOutcome",
    "compile_all",
    "copy_pre_built_resources",
    "filter_files_for_zip_package",
    "join_build_results",
    "load_service",
    "pack_all",
    "__version__",
]
