"""Process-level settings for fnpack.

``FnpackSettings`` covers what belongs to the process rather than to a
service: log level, log format and the default service directory. Build
options that belong to a service live in :mod:`fnpack.config`.

Examples:
    >>> from fnpack.core.settings import FnpackSettings
    >>> settings = FnpackSettings()
    >>> settings.log_level
    'INFO'

Environment variables use the ``FNPACK_`` prefix (``FNPACK_LOG_LEVEL=DEBUG``)
and may also come from a ``.env`` file.

Tags:
    settings, configuration, pydantic, environment, fnpack
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FnpackSettings(BaseSettings):
    """Settings read from ``FNPACK_*`` environment variables.

    Fields
    ──────
    log_level    : Structlog log level
    log_json     : Force JSON (True) or console (False) rendering; auto if unset
    service_dir  : Directory searched for serverless.yml when no service file is given
    """

    model_config = SettingsConfigDict(
        env_prefix="FNPACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Filesystem ───────────────────────────────────────────────
    service_dir: Path = Field(
        default_factory=Path.cwd,
        description="Default service directory",
    )

    @property
    def default_service_file(self) -> Path:
        return self.service_dir / "serverless.yml"


@lru_cache(maxsize=1)
def get_settings() -> FnpackSettings:
    """Return the cached settings instance."""
    return FnpackSettings()
