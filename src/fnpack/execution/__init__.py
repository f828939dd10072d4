"""
fnpack.execution - bounded concurrency for the compile and archive phases.
"""

from fnpack.execution.pool import map_bounded, map_settled, resolve_limit

__all__ = ["map_bounded", "map_settled", "resolve_limit"]
