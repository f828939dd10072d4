"""
fnpack.core - errors, logging and settings shared by every pipeline stage.
"""

from fnpack.core.errors import (
    CompileError,
    ConfigurationError,
    CopyError,
    ErrorCategory,
    ErrorContext,
    FnpackError,
    PackagerError,
    PackagingError,
    PipelineFailedError,
)
from fnpack.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "CompileError",
    "ConfigurationError",
    "CopyError",
    "ErrorCategory",
    "ErrorContext",
    "FnpackError",
    "PackagerError",
    "PackagingError",
    "PipelineFailedError",
    "LogContext",
    "configure_logging",
    "get_logger",
]
