from __future__ import annotations

import logging

import pytest

from progress_cache.config import Settings, get_settings
from progress_cache.logging_config import configure_logging


def test_defaults_match_progress_service_layout(monkeypatch) -> None:
    for name in ("PROGRESS_SERVICE_URL", "PROGRESS_STORAGE_SLOT", "PROGRESS_PERSISTENCE_MODE"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings()  # type: ignore[call-arg]

    assert settings.service_url == "http://localhost:3001"
    assert settings.storage_slot == "auth-storage"
    assert settings.persistence_mode == "file"
    assert settings.post_login_sync_delay == 1.0


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("PROGRESS_PERSISTENCE_MODE", "database")
    monkeypatch.setenv("PROGRESS_DATABASE_URL", "sqlite:///progress.db")
    monkeypatch.setenv("PROGRESS_MAX_BACKGROUND_TASKS", "4")

    settings = Settings()  # type: ignore[call-arg]

    assert settings.persistence_mode == "database"
    assert settings.database_url == "sqlite:///progress.db"
    assert settings.max_background_tasks == 4


def test_invalid_configuration_raises_runtime_error(monkeypatch) -> None:
    monkeypatch.setenv("PROGRESS_PERSISTENCE_MODE", "carrier-pigeon")
    get_settings.cache_clear()
    try:
        with pytest.raises(RuntimeError):
            get_settings()
    finally:
        get_settings.cache_clear()


def test_configure_logging_honours_level(monkeypatch) -> None:
    monkeypatch.setenv("PROGRESS_LOG_LEVEL", "debug")
    configure_logging()

    assert logging.getLogger("progress_cache").level == logging.DEBUG
