from __future__ import annotations

import types

import pytest
from sqlalchemy import create_engine, inspect

from scripts import run_migrations as runner


def _config(url: str = runner.URL_PLACEHOLDER):
    config = runner.get_alembic_config(str(runner.BACKEND_ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return config


def test_resolve_database_url_prefers_env(monkeypatch) -> None:
    monkeypatch.setenv("SALESPRO_DATABASE_URL", "sqlite://")
    config = _config()

    assert runner.resolve_database_url(config) == "sqlite://"
    assert config.get_main_option("sqlalchemy.url") == "sqlite://"


def test_resolve_database_url_requires_configuration(monkeypatch) -> None:
    monkeypatch.delenv("SALESPRO_DATABASE_URL", raising=False)

    with pytest.raises(RuntimeError):
        runner.resolve_database_url(_config())


def test_wait_for_database_succeeds_with_sqlite(tmp_path) -> None:
    runner.wait_for_database(f"sqlite:///{tmp_path / 'probe.sqlite'}", timeout=2, poll_interval=0.1)


def test_wait_for_database_times_out(monkeypatch) -> None:
    class DummyEngine:
        def connect(self) -> types.SimpleNamespace:
            raise runner.OperationalError("SELECT 1", {}, Exception("boom"))

        def dispose(self) -> None:
            pass

    monkeypatch.setattr(runner, "create_engine", lambda *_, **__: DummyEngine())
    with pytest.raises(RuntimeError):
        runner.wait_for_database("postgresql://example", timeout=0, poll_interval=0)


def test_run_migrations_invokes_upgrade(monkeypatch) -> None:
    recorded: dict[str, object] = {}

    def fake_wait(url: str, *, timeout: int, poll_interval: float) -> None:
        recorded["wait"] = (url, timeout, poll_interval)

    def fake_upgrade(cfg, revision: str) -> None:
        recorded["revision"] = revision

    monkeypatch.setenv("SALESPRO_DATABASE_URL", "sqlite://")
    monkeypatch.setattr(runner, "wait_for_database", fake_wait)
    monkeypatch.setattr(runner.command, "upgrade", fake_upgrade)

    runner.run_migrations("head", timeout=5, poll_interval=0.1, config=_config())

    assert recorded["revision"] == "head"
    assert recorded["wait"] == ("sqlite://", 5, 0.1)


def test_upgrade_creates_profiles_table(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'profiles.sqlite'}"

    runner.run_migrations("head", timeout=2, poll_interval=0.1, config=_config(url))

    engine = create_engine(url)
    try:
        inspector = inspect(engine)
        assert "profiles" in inspector.get_table_names()
        columns = {column["name"] for column in inspector.get_columns("profiles")}
        assert {"telegram_id", "username", "role", "xp", "level", "data"} <= columns
        indexes = {index["name"] for index in inspector.get_indexes("profiles")}
        assert "ix_profiles_telegram_id" in indexes
    finally:
        engine.dispose()


def test_main_returns_error_code_without_database(monkeypatch) -> None:
    monkeypatch.delenv("SALESPRO_DATABASE_URL", raising=False)
    assert runner.main(["--timeout", "0"]) == 1
