"""Process-wide settings for pharos.

``PharosSettings`` holds the knobs the query core needs at runtime: default
row limit and schema, pool sizing and timeouts, and log output.  Values come
from ``PHAROS_*`` environment variables or a ``.env`` file and are validated
once at startup.

Per-connection details (host, user, SSL mode) are not settings; they come
from the ``ConfigStore`` collaborator in :mod:`pharos.core.protocols`.

Examples:
    >>> from pharos.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.default_limit
    1000

Tags:
    settings, configuration, pydantic, environment, pharos
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PharosSettings(BaseSettings):
    """Runtime configuration, read from ``PHAROS_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PHAROS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Query defaults ───────────────────────────────────────────
    default_limit: int = Field(default=1000, ge=0, description="Rows returned when the caller gives no limit")
    default_schema: str = Field(default="public", description="Schema paired with unqualified table names")
    cursor_prefetch: int = Field(default=50, ge=1, description="Rows fetched per cursor round trip")

    # ── Pool ─────────────────────────────────────────────────────
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=5, ge=1)
    acquire_timeout: float = Field(default=10.0, gt=0, description="Seconds to wait for a pooled connection")
    connect_timeout: float = Field(default=10.0, gt=0, description="Seconds to wait for a new server connection")
    command_timeout: float | None = Field(default=None, description="Per-statement timeout, None for no limit")

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = False

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> PharosSettings:
        if self.pool_min_size > self.pool_max_size:
            raise ValueError(
                f"pool_min_size ({self.pool_min_size}) exceeds pool_max_size ({self.pool_max_size})"
            )
        return self


_settings_cache: dict[str, PharosSettings] = {}


def get_settings(*, _force_reload: bool = False) -> PharosSettings:
    """Load, validate, and cache a :class:`PharosSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = PharosSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Forget the cached settings (tests, profile switches)."""
    _settings_cache.clear()


__all__ = [
    "PharosSettings",
    "get_settings",
    "clear_settings_cache",
]
