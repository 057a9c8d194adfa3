from __future__ import annotations

import pytest

from salespro.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_read_salespro_environment(monkeypatch) -> None:
    monkeypatch.setenv("SALESPRO_DATABASE_URL", "sqlite://")
    monkeypatch.setenv("SALESPRO_STORAGE_QUOTA_BYTES", "2048")
    monkeypatch.setenv("SALESPRO_HEALTH_AUTO_FIX", "false")

    settings = get_settings()

    assert settings.database_url == "sqlite://"
    assert settings.storage_quota_bytes == 2048
    assert settings.health_auto_fix is False
    assert settings.storage_prefix == "salesPro_"
    assert settings.leaderboard_limit == 50
    assert settings.init_data_max_age_seconds == 14400


def test_invalid_settings_raise_runtime_error(monkeypatch) -> None:
    monkeypatch.setenv("SALESPRO_OUTBOX_MAX_ATTEMPTS", "many")

    with pytest.raises(RuntimeError):
        get_settings()
