"""dyntable configuration.

``DyntableSettings`` reads ``DYNTABLE_*`` environment variables and an
optional ``.env`` file. A model constructed without an explicit
connection string falls back to these settings.

Fields
──────
connection_string            : Default connection string
provider_name                : Provider used when the connection string has no ProviderName
connection_strings           : Named connection strings (``DYNTABLE_CONNECTION_STRINGS='{"main": "..."}'``)
default_sequence             : Overrides every plugin's default primary-key sequence name
auto_dereference_fetch_size  : Rows per FETCH when dereferencing PostgreSQL cursors
log_level / log_json         : Used by ``configure_logging`` callers

Examples:
    >>> import os
    >>> os.environ["DYNTABLE_PROVIDER_NAME"] = "sqlite"
    >>> get_settings(_force_reload=True).provider_name
    'sqlite'
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DyntableSettings(BaseSettings):
    """Process-wide defaults for ``DynamicModel``."""

    model_config = SettingsConfigDict(
        env_prefix="DYNTABLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Connections ──────────────────────────────────────────────
    connection_string: str = Field(default="", description="Default connection string")
    provider_name: str = Field(default="", description="Provider when none is embedded")
    connection_strings: dict[str, str] = Field(default_factory=dict)

    # ── Identity / sequences ─────────────────────────────────────
    default_sequence: str | None = Field(default=None)

    # ── Cursors ──────────────────────────────────────────────────
    auto_dereference_fetch_size: int = Field(default=10000)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_json: bool | None = Field(default=None)

    @field_validator("auto_dereference_fetch_size")
    @classmethod
    def _positive_fetch_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("auto_dereference_fetch_size must be positive")
        return value


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, DyntableSettings] = {}


def get_settings(*, _force_reload: bool = False) -> DyntableSettings:
    """Load, validate, and cache a :class:`DyntableSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = DyntableSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, reconfiguration)."""
    _settings_cache.clear()


__all__ = ["DyntableSettings", "get_settings", "clear_settings_cache"]
