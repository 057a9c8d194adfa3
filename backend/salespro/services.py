"""Wires the profile subsystem together from a ``Settings`` instance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .auth import AuthService
from .config import Settings
from .db.session import Database
from .diagnostics import DiagnosticLog
from .health import SystemHealthMonitor
from .host import HostEnvironment
from .leaderboard import LeaderboardProjector
from .oracle import AIOracle
from .outbox import Outbox
from .reconciliation import ReconciliationService
from .remote_store import RemoteProfileStore
from .storage.backends import JsonFileStorage, MemoryStorage, StorageBackend
from .storage.local_store import DurableLocalStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    diagnostics: DiagnosticLog
    store: DurableLocalStore
    database: Optional[Database]
    remote: RemoteProfileStore
    outbox: Outbox
    reconciliation: ReconciliationService
    leaderboard: LeaderboardProjector
    health: SystemHealthMonitor
    auth: AuthService

    async def start(self) -> None:
        if self.remote.is_configured:
            self.outbox.start(self.settings.outbox_interval_seconds)
        self.health.start()

    async def stop(self) -> None:
        await self.health.stop()
        await self.reconciliation.flush()
        await self.outbox.stop()
        if self.database is not None:
            self.database.dispose()


def _build_backend(settings: Settings) -> StorageBackend:
    quota = settings.storage_quota_bytes or None
    if settings.local_store_path:
        return JsonFileStorage(settings.local_store_path, quota_bytes=quota)
    return MemoryStorage(quota_bytes=quota)


def build_services(
    settings: Settings,
    *,
    host: Optional[HostEnvironment] = None,
    oracle: Optional[AIOracle] = None,
) -> Services:
    diagnostics = DiagnosticLog(settings.diagnostic_capacity)
    store = DurableLocalStore(
        _build_backend(settings),
        diagnostics,
        prefix=settings.storage_prefix,
        avatar_inline_limit=settings.avatar_inline_limit,
    )
    database = Database(settings) if settings.database_url else None
    remote = RemoteProfileStore(database, diagnostics)
    outbox = Outbox(
        store,
        remote,
        diagnostics,
        max_attempts=settings.outbox_max_attempts,
        backoff_base=settings.outbox_backoff_base_seconds,
        backoff_max=settings.outbox_backoff_max_seconds,
    )
    reconciliation = ReconciliationService(store, remote, outbox, diagnostics)
    leaderboard = LeaderboardProjector(
        remote,
        reconciliation,
        diagnostics,
        default_limit=settings.leaderboard_limit,
    )
    health = SystemHealthMonitor(
        diagnostics,
        store,
        enabled=settings.health_enabled,
        auto_fix=settings.health_auto_fix,
        interval=settings.health_interval_seconds,
        error_window=settings.health_error_window_seconds,
        host=host,
        reset_remote=database.dispose if database is not None else None,
    )
    auth = AuthService(reconciliation, remote, diagnostics, oracle=oracle)
    logger.info(
        "SalesPro services ready (remote=%s, local_store=%s)",
        remote.is_configured,
        settings.local_store_path or "memory",
    )
    return Services(
        settings=settings,
        diagnostics=diagnostics,
        store=store,
        database=database,
        remote=remote,
        outbox=outbox,
        reconciliation=reconciliation,
        leaderboard=leaderboard,
        health=health,
        auth=auth,
    )


__all__ = ["Services", "build_services"]
