"""
Structured error types for the fnpack pipeline.

Every failure the pipeline can surface is a ``FnpackError`` subclass that
carries a category, a structured context (function alias, entry, path,
service) and the chained underlying exception. The category decides how the
pipeline propagates the error:

- **CONFIG / BUILD:** fatal to the whole run, raised before or during the
  compile phase.
- **PACKAGING / STORAGE:** scoped to one function (or the service archive);
  collected so sibling units keep going, then reported as a failed outcome.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                       FnpackError                        │
        │            (category, context, cause)                    │
        ├──────────────────────────────────────────────────────────┤
        │  ConfigurationError   CompileError     PackagingError    │
        │  (CONFIG)             (BUILD)          (PACKAGING)       │
        │                                                          │
        │  CopyError            PackagerError    PipelineFailedError│
        │  (STORAGE)            (DEPENDENCY)     (PACKAGING)       │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> error = CompileError("Compile failed for src/a.ts: boom", entry="src/a.ts")
    >>> error.context.entry
    'src/a.ts'
    >>> error.to_dict()["category"]
    'BUILD'

Tags:
    error-handling, exception-hierarchy, error-context, fnpack
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    CONFIG = "CONFIG"  # Invalid option combinations, unresolvable handlers
    BUILD = "BUILD"  # Compiler failures
    PACKAGING = "PACKAGING"  # Archive assembly failures
    STORAGE = "STORAGE"  # File copy / filesystem failures
    DEPENDENCY = "DEPENDENCY"  # Package manager failures
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are emitted by ``to_dict()`` so log lines stay
    compact. Anything that has no dedicated field goes into ``metadata``.
    """

    function_alias: str | None = None
    entry: str | None = None
    path: str | None = None
    service: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["function_alias", "entry", "path", "service"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FnpackError(Exception):
    """
    Base exception for all fnpack errors.

    Subclasses set ``default_category``. Context fields can be passed as
    keyword arguments directly (``entry=...``, ``function_alias=...``) or
    added later with :meth:`with_context`.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        **context_fields: Any,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if context_fields:
            self.with_context(**context_fields)

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FnpackError:
        """
        Add context to this error (fluent API).

        Usage:
            raise PackagingError("Empty file").with_context(function_alias="hello")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigurationError(FnpackError):
    """
    Invalid configuration.

    Detected before any work starts; fatal to the run.
    """

    default_category = ErrorCategory.CONFIG


# =============================================================================
# BUILD / PACKAGING ERRORS
# =============================================================================


class CompileError(FnpackError):
    """The external compiler failed or produced no output for an entry."""

    default_category = ErrorCategory.BUILD

    @property
    def entry(self) -> str | None:
        return self.context.entry


class PackagingError(FnpackError):
    """Archive assembly failed for one function (or the service archive)."""

    default_category = ErrorCategory.PACKAGING

    @property
    def function_alias(self) -> str | None:
        return self.context.function_alias


class CopyError(FnpackError):
    """A pre-built artifact was missing or could not be copied."""

    default_category = ErrorCategory.STORAGE


class PackagerError(FnpackError):
    """The package manager could not report the dependency tree."""

    default_category = ErrorCategory.DEPENDENCY


class PipelineFailedError(FnpackError):
    """
    One or more per-function units failed.

    Raised at the end of a run so the caller sees a failed outcome even
    though sibling archives were still produced.
    """

    default_category = ErrorCategory.PACKAGING

    def __init__(self, failures: list[FnpackError], **kwargs: Any):
        self.failures = list(failures)
        names = ", ".join(
            f.context.function_alias or f.context.service or "?" for f in self.failures
        )
        super().__init__(f"{len(self.failures)} packaging unit(s) failed: {names}", **kwargs)


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FnpackError",
    "ConfigurationError",
    "CompileError",
    "PackagingError",
    "CopyError",
    "PackagerError",
    "PipelineFailedError",
]
