"""
lazycatalog Configuration.

Settings for the cache, extraction, watching and logging, read from
LAZYCATALOG_* environment variables or a .env file.
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _xdg_path(env_var: str, home_default: str, fallback: str, *parts: str) -> str:
    # $XDG_* wins, then $HOME/<home_default>, then a cwd-relative fallback
    base = os.getenv(env_var)
    if base:
        return str(Path(base, *parts))

    home = os.getenv("HOME")
    if not home:
        return fallback
    return str(Path(home, home_default, *parts))


def get_xdg_cache_dir() -> str:
    """
    Cache directory for lazycatalog.

    $XDG_CACHE_HOME/lazycatalog, else ~/.cache/lazycatalog, else
    .lazycatalog_cache when no home directory is known.
    """
    return _xdg_path("XDG_CACHE_HOME", ".cache", ".lazycatalog_cache", "lazycatalog")


def get_xdg_state_dir() -> str:
    """Log directory under $XDG_STATE_HOME (or ~/.local/state)."""
    return _xdg_path(
        "XDG_STATE_HOME", ".local/state", "./logs", "lazycatalog", "logs"
    )


class Settings(BaseSettings):
    """Runtime settings; every field can be overridden via LAZYCATALOG_<FIELD>."""

    model_config = SettingsConfigDict(
        env_prefix="LAZYCATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Metadata cache
    cache_dir: str = f"{get_xdg_cache_dir()}/parts"

    # Isolated extraction
    extraction_timeout: float = 30.0  # Seconds before a child process is killed
    extraction_workers: int = 1  # Modules extracted concurrently
    extraction_start_method: str = "spawn"  # multiprocessing start method

    # Discovery
    default_pattern: str = "*.py"

    # Watching
    watch_debounce_seconds: float = 1.0

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # Defaults to XDG state dir if empty
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True
    log_file_enabled: bool = False
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    @property
    def cache_directory(self) -> Path:
        """Get the metadata cache directory as a Path."""
        return Path(self.cache_dir).expanduser()

    @property
    def log_directory(self) -> Path:
        """Log directory; falls back to the XDG state directory."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())


settings = Settings()
