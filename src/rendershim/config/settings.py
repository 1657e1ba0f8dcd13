"""
Environment-driven settings for rendershim.

All fields can be set via ``RENDERSHIM_*`` environment variables or a
``.env`` file. The per-type overrides (``RENDERSHIM_PDF_BINARY`` and friends)
win over whatever the TOML config file says, so a deployment can point at a
different binary without editing files.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rendershim.errors import ConfigError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["console", "json"]

# Spellings of "no timeout" accepted on the env overrides
_NO_TIMEOUT = frozenset({"false", "off", "none", "no"})


class RenderShimSettings(BaseSettings):
    """rendershim process-level configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RENDERSHIM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Sources ──────────────────────────────────────────────────
    config_file: Path | None = Field(default=None, description="TOML file with [pdf] / [image] tables")
    base_path: Path = Field(default_factory=Path.cwd, description="Relative binaries resolve against this")

    # ── Invocation ───────────────────────────────────────────────
    kill_timeout_seconds: float = Field(default=5.0, ge=0, description="SIGTERM → SIGKILL grace period")

    # ── Logging ──────────────────────────────────────────────────
    log_level: LogLevel = Field(default="INFO")
    log_format: LogFormat = Field(default="console", description="console or json")

    # ── Per-type overrides ───────────────────────────────────────
    pdf_enabled: bool | None = None
    pdf_binary: str | None = None
    pdf_timeout: float | bool | None = None
    image_enabled: bool | None = None
    image_binary: str | None = None
    image_timeout: float | bool | None = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("log_format", mode="before")
    @classmethod
    def _lower_format(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("pdf_timeout", "image_timeout", mode="before")
    @classmethod
    def _coerce_timeout(cls, value: Any) -> Any:
        # `false` disables a timeout set in the config file
        if isinstance(value, str):
            text = value.strip().lower()
            if not text:
                return None
            if text in _NO_TIMEOUT:
                return False
            try:
                return float(text)
            except ValueError:
                return value
        return value

    def overrides_for(self, document_type: str) -> dict[str, object]:
        """Return the explicitly set overrides for one document type."""
        result: dict[str, object] = {}
        for key in ("enabled", "binary", "timeout"):
            value = getattr(self, f"{document_type}_{key}")
            if value is not None:
                result[key] = value
        return result


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, RenderShimSettings] = {}


def get_settings(*, _force_reload: bool = False) -> RenderShimSettings:
    """Load, validate, and cache a :class:`RenderShimSettings` instance.

    Raises:
        ConfigError: an environment variable or ``.env`` entry is invalid
    """
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    try:
        settings = RenderShimSettings()
    except ValidationError as exc:
        raise ConfigError(f"Invalid RENDERSHIM_* settings: {exc}", cause=exc) from exc
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, reload)."""
    _settings_cache.clear()
