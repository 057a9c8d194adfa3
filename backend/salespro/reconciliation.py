"""Keeps the local profile and its remote copy in agreement.

The local store is the source of truth the caller can always trust
synchronously; every remote operation is best-effort. On session start the
remote row, when one exists, is merged over the local candidate. Afterwards
every mutation is written locally first and then queued for a remote push.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from pydantic import ValidationError

from .diagnostics import DiagnosticLog
from .merge import find_diverged_collections, merge_profiles
from .outbox import Outbox
from .profile import ProfileRecord, apply_update, default_profile
from .remote_store import RemoteProfileStore, RemoteStatus
from .storage.local_store import DurableLocalStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)

PROGRESS_KEY = "progress"
ALL_USERS_KEY = "allUsers"


class SyncState(str, Enum):
    START = "start"
    NO_REMOTE = "no_remote"
    FETCHING = "fetching"
    CREATING = "creating"
    MERGING = "merging"


@dataclass
class Reconciliation:
    record: ProfileRecord
    state: SyncState
    remote_status: Optional[RemoteStatus] = None
    diverged: Dict[str, int] = field(default_factory=dict)


class ReconciliationService:
    """Sole writer of the profile record to both the local and remote stores."""

    def __init__(
        self,
        store: DurableLocalStore,
        remote: RemoteProfileStore,
        outbox: Outbox,
        diagnostics: DiagnosticLog,
    ) -> None:
        self._store = store
        self._remote = remote
        self._outbox = outbox
        self._diagnostics = diagnostics
        self._pushes: Set[asyncio.Task[Any]] = set()

    @property
    def outbox(self) -> Outbox:
        return self._outbox

    # === Session start ===

    async def reconcile(self, candidate: ProfileRecord) -> ProfileRecord:
        return (await self.reconcile_detailed(candidate)).record

    async def reconcile_detailed(self, candidate: ProfileRecord) -> Reconciliation:
        if not self._remote.is_configured or not candidate.telegram_id:
            self._diagnostics.info("Backend: Offline mode or no Telegram ID. Using local storage.")
            return self._finish(Reconciliation(candidate, SyncState.NO_REMOTE))

        result = await self._remote.fetch_by_telegram_id(candidate.telegram_id)

        if result.status is RemoteStatus.NOT_FOUND:
            self._diagnostics.info("Backend: User not found, creating.", {"telegram_id": candidate.telegram_id})
            self._store.set(PROGRESS_KEY, candidate)
            self._push(candidate)
            return self._finish(Reconciliation(candidate, SyncState.CREATING, result.status))

        if result.status is not RemoteStatus.FOUND or result.profile is None:
            self._diagnostics.warn(
                "Backend: remote profile unavailable, continuing with local data",
                {"status": result.status.value, "error": result.error},
            )
            return self._finish(Reconciliation(candidate, SyncState.NO_REMOTE, result.status))

        try:
            merged = merge_profiles(candidate, result.profile)
        except ValidationError as exc:
            self._diagnostics.error("Backend: remote profile failed validation during merge", str(exc))
            return self._finish(Reconciliation(candidate, SyncState.NO_REMOTE, RemoteStatus.TRANSPORT_ERROR))

        diverged = find_diverged_collections(candidate, result.profile)
        if diverged:
            self._diagnostics.warn("Local collections replaced by the remote profile", diverged)

        self._diagnostics.info("Backend: User found, syncing down.", {"telegram_id": merged.telegram_id})
        self._store.set(PROGRESS_KEY, merged)
        self.remember_user(merged)
        return self._finish(Reconciliation(merged, SyncState.MERGING, result.status, diverged))

    def _finish(self, outcome: Reconciliation) -> Reconciliation:
        emit_event(
            "profile_reconciled",
            state=outcome.state,
            remote_status=outcome.remote_status,
            telegram_id=outcome.record.telegram_id,
            diverged=outcome.diverged,
        )
        return outcome

    # === Mutation path ===

    def save(self, record: ProfileRecord) -> ProfileRecord:
        """Persist ``record`` locally, then queue it for a best-effort remote push."""
        persisted = self._store.set(PROGRESS_KEY, record)
        if record.is_authenticated:
            self.remember_user(record)

        queued = record.is_authenticated and self._push(record)
        emit_event("profile_saved", telegram_id=record.telegram_id, persisted=persisted, queued=queued)
        return record

    def update(self, record: ProfileRecord, changes: Mapping[str, Any]) -> ProfileRecord:
        return self.save(apply_update(record, changes))

    def _push(self, record: ProfileRecord) -> bool:
        if not record.is_syncable or not self._remote.is_configured:
            return False
        self._outbox.enqueue(record)
        self._schedule_push()
        return True

    def _schedule_push(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop in this thread; the background drainer will push it
            return
        task = loop.create_task(self._outbox.drain())
        self._pushes.add(task)
        task.add_done_callback(self._pushes.discard)

    async def flush(self) -> None:
        """Wait for every scheduled push to settle."""
        while self._pushes:
            await asyncio.gather(*list(self._pushes), return_exceptions=True)

    # === Local state ===

    def load_local(self) -> ProfileRecord:
        raw = self._store.get(PROGRESS_KEY, None)
        if not raw:
            return default_profile()
        try:
            return ProfileRecord.model_validate(raw)
        except ValidationError as exc:
            self._diagnostics.warn("Stored progress is invalid; using a fresh profile", str(exc))
            return default_profile()

    def logout(self) -> ProfileRecord:
        """Reset the local session; the remote row is left untouched."""
        fresh = default_profile()
        self._store.set(PROGRESS_KEY, fresh)
        return fresh

    def cached_users(self) -> List[ProfileRecord]:
        raw = self._store.get(ALL_USERS_KEY, [])
        if not isinstance(raw, list):
            return []
        users: List[ProfileRecord] = []
        for item in raw:
            try:
                users.append(ProfileRecord.model_validate(item))
            except ValidationError:
                logger.warning("Skipping invalid cached user entry")
        return users

    def remember_user(self, record: ProfileRecord) -> None:
        users = self.cached_users()
        kept = [user for user in users if not _same_user(user, record)]
        kept.append(record)
        self._store.set(ALL_USERS_KEY, [user.model_dump(mode="json") for user in kept])


def _same_user(left: ProfileRecord, right: ProfileRecord) -> bool:
    if left.telegram_id and right.telegram_id:
        return left.telegram_id == right.telegram_id
    if left.id and right.id:
        return left.id == right.id
    if left.telegram_username and right.telegram_username:
        return left.telegram_username.lower() == right.telegram_username.lower()
    return False


__all__ = [
    "ALL_USERS_KEY",
    "PROGRESS_KEY",
    "Reconciliation",
    "ReconciliationService",
    "SyncState",
]
