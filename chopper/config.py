# chopper/config.py
"""
Chopper Configuration

Pydantic-based settings read from CHOPPER_* environment variables.
"""

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_NAME = "chopper"
TRUTHY_VALUES = frozenset({"1", "true", "yes", "on"})


def _xdg_dir(variable: str, fallback: str) -> Path:
    base = os.environ.get(variable, "").strip()
    root = Path(base) if base else Path.home() / fallback
    return root / APP_NAME


class Settings(BaseSettings):
    """Launcher settings loaded from environment variables."""

    # No env_file: a launcher runs from arbitrary working directories
    model_config = SettingsConfigDict(
        env_prefix="CHOPPER_",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # LOCATIONS
    # ==========================================================================
    config_dir: Optional[Path] = None
    cache_dir: Optional[Path] = None

    # ==========================================================================
    # DEBUG SWITCHES
    # ==========================================================================
    disable_cache: bool = False
    disable_reconcile: bool = False

    # ==========================================================================
    # LOGGING
    # ==========================================================================
    log_level: str = "WARNING"

    @field_validator("config_dir", "cache_dir", mode="before")
    @classmethod
    def _blank_dir_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return Path(value).expanduser() if value else None
        return value

    @field_validator("disable_cache", "disable_reconcile", mode="before")
    @classmethod
    def _parse_switch(cls, value: Any) -> Any:
        # Unrecognized values mean "off", never a startup error
        if isinstance(value, str):
            return value.strip().lower() in TRUTHY_VALUES
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or "WARNING"
        return value

    # ==========================================================================
    # PROPERTIES
    # ==========================================================================
    @property
    def config_root(self) -> Path:
        return self.config_dir or _xdg_dir("XDG_CONFIG_HOME", ".config")

    @property
    def cache_root(self) -> Path:
        return self.cache_dir or _xdg_dir("XDG_CACHE_HOME", ".cache")

    @property
    def aliases_dir(self) -> Path:
        return self.config_root / "aliases"


def get_settings() -> Settings:
    """Read settings from the current environment."""
    return Settings()
