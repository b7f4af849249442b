"""Pytest configuration and fixtures for contentstore.

Settings and the storage singleton are cached per process; every test starts
with both caches cleared so environment overrides take effect.
"""

import os

import pytest

from contentstore.core.config import Settings, get_settings
from contentstore.infrastructure.external.storage.factory import get_storage

_STORAGE_ENV_PREFIXES = ("STORAGE_", "BACKBLAZE_", "APP_ABBREVIATION", "TELEMETRY_")


@pytest.fixture(autouse=True)
def _clear_settings_cache(monkeypatch: pytest.MonkeyPatch):
    """Isolate tests from the developer's environment and cached settings."""
    for name in list(os.environ):
        if name.upper().startswith(_STORAGE_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    get_storage.cache_clear()
    yield
    get_settings.cache_clear()
    get_storage.cache_clear()


@pytest.fixture
def make_settings(tmp_path):
    """Build Settings without reading .env; keyword overrides win."""

    def _make(**overrides) -> Settings:
        values = {
            "storage_local_path": str(tmp_path / "uploads"),
            "storage_local_base_url": "http://localhost:3000/uploads",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make
