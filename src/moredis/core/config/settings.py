"""
Runtime settings for moredis.

:class:`MoredisSettings` is built once at startup from (in increasing
priority) defaults, a ``.env`` file, and environment variables. Command line
flags are layered on top with :func:`apply_overrides`. The resulting frozen
object is passed explicitly to the code that needs it; nothing in the core
reads the environment.

Tags:
    moredis, configuration, settings, pydantic

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MONGO_URL = "localhost:27017"
DEFAULT_REDIS_URL = "localhost:6379"


class MoredisSettings(BaseSettings):
    """moredis configuration.

    Connection URLs honour the bare ``MONGO_URL`` / ``REDIS_URL`` variables as
    well as the ``MOREDIS_``-prefixed forms. Every other field uses the
    ``MOREDIS_`` prefix (e.g. ``MOREDIS_FLUSH_INTERVAL=500``).
    """

    model_config = SettingsConfigDict(
        env_prefix="MOREDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # ── Connections ──────────────────────────────────────────────
    mongo_url: str = Field(
        default=DEFAULT_MONGO_URL,
        validation_alias=AliasChoices("MOREDIS_MONGO_URL", "MONGO_URL"),
    )
    redis_url: str = Field(
        default=DEFAULT_REDIS_URL,
        validation_alias=AliasChoices("MOREDIS_REDIS_URL", "REDIS_URL"),
        description="host:port, redis:// URL, or sentinel://host:port[,host:port]/master",
    )
    mongo_database: str = Field(default="test", description="Database used when the Mongo URL names none")

    # ── Timeouts (seconds) ───────────────────────────────────────
    connect_timeout: float = Field(default=15.0, gt=0)
    read_timeout: float = Field(default=10.0, gt=0)
    write_timeout: float = Field(default=10.0, gt=0)

    # ── Cache build ──────────────────────────────────────────────
    config_file: str = Field(default="./config.yml")
    key_prefix: str = Field(default="moredis", min_length=1)
    flush_interval: int = Field(default=100, ge=1)

    # ── Logging ──────────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, MoredisSettings] = {}


def get_settings(*, _force_reload: bool = False) -> MoredisSettings:
    """Load, validate, and cache a :class:`MoredisSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = MoredisSettings()
    _settings_cache["default"] = settings
    return settings


def apply_overrides(settings: MoredisSettings, **overrides: Any) -> MoredisSettings:
    """Return a copy with every non-empty override applied.

    Empty values (``None`` or ``""``) fall through to the existing setting,
    which is how a flag that was not given defers to the environment.
    """
    update = {key: value for key, value in overrides.items() if value not in (None, "")}
    if not update:
        return settings
    unknown = set(update) - set(MoredisSettings.model_fields)
    if unknown:
        raise ValueError(f"unknown settings: {', '.join(sorted(unknown))}")
    return MoredisSettings.model_validate({**settings.model_dump(), **update})


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "DEFAULT_MONGO_URL",
    "DEFAULT_REDIS_URL",
    "MoredisSettings",
    "apply_overrides",
    "clear_settings_cache",
    "get_settings",
]
