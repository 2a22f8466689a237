"""Centralized engine configuration using Pydantic Settings (v2).

This module exposes a single, cached `settings` instance that reads from:
- Real environment variables (highest precedence)
- `.env` files at the repository root: .env, .env.local, .env.dev/.env.test/.env.prod

Durations (`cache_ttl`, `persist_debounce`, `api_timeout`, ...) are float seconds.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["dev", "test", "prod"]
LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Typed engine configuration loaded from env and `.env` files.

    Attributes
    ----------
    environment : EnvName
        Runtime environment flag; maps from `FLOWSTATE_ENV`.
    log_level : LogLevelName
        Global log level string; maps from `LOG_LEVEL`.
    cache_ttl : float
        Default time-to-live of cache entries, in seconds.
    videos_ttl : float
        Time-to-live of the cached video feed, in seconds.
    history_limit : int
        Number of trailing commits kept in the history ring.
    persist_debounce : float
        Quiet period after the last commit before fields are written out.
    storage_prefix : str
        Namespace prefix prepended to every persisted field name.
    state_dir : Path
        Directory used by the file-backed persistence adapter.
    api_base_url : str
        Base URL of the remote service that receives domain actions.
    api_timeout : float
        Network timeout for remote calls, in seconds.
    """

    environment: EnvName = Field(default="dev", alias="FLOWSTATE_ENV")
    log_level: LogLevelName = Field(default="INFO", alias="LOG_LEVEL")

    cache_ttl: float = Field(default=30.0, gt=0, alias="FLOWSTATE_CACHE_TTL")
    videos_ttl: float = Field(default=60.0, gt=0, alias="FLOWSTATE_VIDEOS_TTL")
    history_limit: int = Field(default=50, ge=1, alias="FLOWSTATE_HISTORY_LIMIT")
    persist_debounce: float = Field(default=1.0, ge=0, alias="FLOWSTATE_PERSIST_DEBOUNCE")
    storage_prefix: str = Field(default="flowstate_", alias="FLOWSTATE_STORAGE_PREFIX")
    state_dir: Path = Field(default=Path("artifacts") / "state", alias="FLOWSTATE_STATE_DIR")

    api_base_url: str = Field(default="http://localhost:8080", alias="FLOWSTATE_API_BASE_URL")
    api_timeout: float = Field(default=30.0, gt=0, alias="FLOWSTATE_API_TIMEOUT")

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local", ".env.dev", ".env.test", ".env.prod"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_dev(self) -> bool:
        """Return True if running in the development environment."""
        return self.environment == "dev"

    @property
    def is_test(self) -> bool:
        """Return True if running in the test environment."""
        return self.environment == "test"

    @property
    def is_prod(self) -> bool:
        """Return True if running in the production environment."""
        return self.environment == "prod"

    def log_level_numeric(self) -> int:
        """Return the numeric logging level corresponding to `self.log_level`."""
        return getattr(logging, self.log_level, logging.INFO)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Create and cache a `Settings` instance.

    We keep this behind an LRU cache so tests can force a rebuild via
    `load_settings.cache_clear()` after mutating `os.environ`.
    """
    os.environ.setdefault("FLOWSTATE_ENV", "dev")
    return Settings()


# Export a ready-to-use singleton (import-time read of env / .env files).
settings: Settings = load_settings()


def get_logger(name: str = "flowstate") -> logging.Logger:
    """Return a process-global logger configured to the current `LOG_LEVEL`."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(load_settings().log_level_numeric())
    logger.propagate = False
    return logger
