"""Typed smoke tests for the settings loader.

These tests verify three guarantees:
1) Importing the module-level `settings` yields a `Settings` instance.
2) Environment variables override defaults after clearing the loader cache.
3) `get_logger()` respects the configured LOG_LEVEL when constructing loggers.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from flowstate.core.settings import (
    Settings,
    get_logger,
    load_settings,
    settings,
)


def test_settings_instance_type() -> None:
    """`settings` should be an instance of the typed `Settings` model."""
    assert isinstance(settings, Settings)


def test_engine_defaults() -> None:
    s = Settings()
    assert s.history_limit == 50
    assert s.cache_ttl == 30.0
    assert s.persist_debounce == 1.0
    assert s.storage_prefix.endswith("_")


def test_env_overrides_with_cache_clear(monkeypatch: Any) -> None:
    """Changing env vars should take effect after `load_settings.cache_clear()`."""
    monkeypatch.setenv("FLOWSTATE_ENV", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("FLOWSTATE_CACHE_TTL", "5")
    monkeypatch.setenv("FLOWSTATE_STATE_DIR", "/tmp/flowstate-state")

    load_settings.cache_clear()
    s = load_settings()

    assert s.environment == "test"
    assert s.is_test
    assert s.log_level == "DEBUG"
    assert s.cache_ttl == 5.0
    assert s.state_dir == Path("/tmp/flowstate-state")
    load_settings.cache_clear()


def test_get_logger_respects_level(monkeypatch: Any) -> None:
    """`get_logger()` should apply the numeric level derived from `LOG_LEVEL`."""
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    load_settings.cache_clear()

    logger = get_logger("flowstate.tests.settings")

    assert logger.level == logging.ERROR
    assert logger.handlers, "Expected at least one StreamHandler to be attached."
    load_settings.cache_clear()
