"""Environment-driven settings for lifespine.

``LifespineSettings`` holds the few values the framework needs before any
configuration layer exists: where the local config file lives, which file
provides application defaults, and how logging is set up.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    Layered runtime configuration (see lifespine.core.config) covers the
    per-operation data; these settings only bootstrap it.

    - **Pydantic validation:** Type-checked at startup
    - **Environment-driven:** ``LIFESPINE_*`` env vars and ``.env`` files
    - **Sensible defaults:** Works out of the box for development

Examples:
    >>> from lifespine.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.config_path.name
    'config.yaml'

Tags:
    settings, configuration, pydantic, environment, lifespine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LifespineSettings(BaseSettings):
    """Bootstrap settings for the configuration stack and logging.

    Fields
    ──────
    data_path       : Directory holding the local config file
    config_filename : Local config file name (relative to data_path)
    defaults_file   : Optional YAML file with application defaults
    log_level       : Structlog log level
    log_json        : Force JSON (True) or console (False) logs; None = auto
    """

    model_config = SettingsConfigDict(
        env_prefix="LIFESPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    data_path: Path = Field(
        default_factory=lambda: Path.home() / ".lifespine",
        description="Directory holding the local config file",
    )
    config_filename: str = "config.yaml"
    defaults_file: Path | None = None

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @property
    def config_path(self) -> Path:
        """Full path of the local config file."""
        path = Path(self.config_filename).expanduser()
        if path.is_absolute():
            return path
        return self.data_path.expanduser() / path


@lru_cache(maxsize=1)
def get_settings() -> LifespineSettings:
    """Return the process-wide settings (read once from the environment)."""
    return LifespineSettings()


def reset_settings() -> None:
    """Forget cached settings (for testing)."""
    get_settings.cache_clear()


__all__ = ["LifespineSettings", "get_settings", "reset_settings"]
