from __future__ import annotations

from typing import Iterator, List

import pytest

from salespro.config import Settings
from salespro.db import Base, Database
from salespro.diagnostics import DiagnosticLog
from salespro.outbox import Outbox
from salespro.reconciliation import ReconciliationService
from salespro.remote_store import RemoteProfileStore
from salespro.storage import DurableLocalStore, MemoryStorage
from salespro.telemetry import TelemetryEvent, clear_listeners, listening


def make_settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "database_url": None,
        "local_store_path": None,
        "health_enabled": False,
        "telegram_bot_token": None,
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture(autouse=True)
def _reset_telemetry() -> Iterator[None]:
    yield
    clear_listeners()


@pytest.fixture
def telemetry_events() -> Iterator[List[TelemetryEvent]]:
    events: List[TelemetryEvent] = []
    with listening(events.append):
        yield events


@pytest.fixture
def diagnostics() -> DiagnosticLog:
    return DiagnosticLog()


@pytest.fixture
def store(diagnostics: DiagnosticLog) -> DurableLocalStore:
    return DurableLocalStore(MemoryStorage(), diagnostics)


@pytest.fixture
def database() -> Iterator[Database]:
    db = Database(make_settings(database_url="sqlite://"))
    Base.metadata.create_all(db.engine)
    yield db
    db.dispose()


@pytest.fixture
def remote(database: Database, diagnostics: DiagnosticLog) -> RemoteProfileStore:
    return RemoteProfileStore(database, diagnostics)


@pytest.fixture
def offline_remote(diagnostics: DiagnosticLog) -> RemoteProfileStore:
    return RemoteProfileStore(None, diagnostics)


@pytest.fixture
def outbox(store: DurableLocalStore, remote: RemoteProfileStore, diagnostics: DiagnosticLog) -> Outbox:
    return Outbox(store, remote, diagnostics)


@pytest.fixture
def reconciliation(
    store: DurableLocalStore,
    remote: RemoteProfileStore,
    outbox: Outbox,
    diagnostics: DiagnosticLog,
) -> ReconciliationService:
    return ReconciliationService(store, remote, outbox, diagnostics)
