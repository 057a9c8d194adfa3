"""Durable outbox of pending remote profile writes.

Entries live in the local store under ``outbox`` so a queued push survives a
restart. There is at most one pending entry per ``telegram_id``: a newer
mutation replaces the queued payload (the remote upsert is overwrite-wins, so
only the latest state matters). Failed pushes are retried with exponential
backoff and moved to ``outbox_dead`` after ``max_attempts``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .diagnostics import DiagnosticLog
from .profile import ProfileRecord
from .remote_store import RemoteProfileStore, RemoteStatus
from .storage.local_store import DurableLocalStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)

OUTBOX_KEY = "outbox"
DEAD_LETTER_KEY = "outbox_dead"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OutboxEntry(BaseModel):
    entry_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    telegram_id: str
    payload: Dict[str, Any]
    attempts: int = 0
    queued_at: datetime = Field(default_factory=_now)
    next_attempt_at: datetime = Field(default_factory=_now)
    last_error: Optional[str] = None


@dataclass
class DrainResult:
    pushed: int = 0
    failed: int = 0
    dead_lettered: int = 0
    remaining: int = 0
    skipped_unconfigured: bool = False


class Outbox:
    def __init__(
        self,
        store: DurableLocalStore,
        remote: RemoteProfileStore,
        diagnostics: DiagnosticLog,
        *,
        max_attempts: int = 5,
        backoff_base: float = 2.0,
        backoff_max: float = 300.0,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._remote = remote
        self._diagnostics = diagnostics
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._clock = clock
        self._drain_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task[None]] = None
        self._stopping: Optional[asyncio.Event] = None

    # === Queue state ===

    def _load(self, key: str) -> List[OutboxEntry]:
        raw = self._store.get(key, [])
        if not isinstance(raw, list):
            self._diagnostics.warn(f"Outbox key {key} is not a list; resetting it")
            return []
        entries: List[OutboxEntry] = []
        for item in raw:
            try:
                entries.append(OutboxEntry.model_validate(item))
            except ValidationError as exc:
                self._diagnostics.warn("Dropping malformed outbox entry", str(exc))
        return entries

    def _save(self, key: str, entries: List[OutboxEntry]) -> bool:
        return self._store.set(key, [entry.model_dump(mode="json") for entry in entries])

    def pending(self) -> List[OutboxEntry]:
        return self._load(OUTBOX_KEY)

    def dead_letters(self) -> List[OutboxEntry]:
        return self._load(DEAD_LETTER_KEY)

    def __len__(self) -> int:
        return len(self.pending())

    def enqueue(self, record: ProfileRecord) -> OutboxEntry:
        if not record.telegram_id:
            raise ValueError("Only records with a telegram_id can be queued for remote sync.")
        now = self._clock()
        entry = OutboxEntry(
            telegram_id=record.telegram_id,
            payload=record.model_dump(mode="json"),
            queued_at=now,
            next_attempt_at=now,
        )
        entries = [existing for existing in self.pending() if existing.telegram_id != entry.telegram_id]
        entries.append(entry)
        if not self._save(OUTBOX_KEY, entries):
            self._diagnostics.error("Storage Error: outbox entry could not be persisted", {"telegram_id": entry.telegram_id})
        return entry

    def backoff_for(self, attempts: int) -> timedelta:
        delay = self._backoff_base * (2 ** max(attempts - 1, 0))
        return timedelta(seconds=min(delay, self._backoff_max))

    def requeue_dead(self) -> int:
        dead = self.dead_letters()
        if not dead:
            return 0
        now = self._clock()
        pending = {entry.telegram_id: entry for entry in self.pending()}
        for entry in dead:
            # a newer pending write for the same user supersedes the dead one
            pending.setdefault(
                entry.telegram_id,
                entry.model_copy(update={"attempts": 0, "next_attempt_at": now, "last_error": None}),
            )
        self._save(OUTBOX_KEY, list(pending.values()))
        self._save(DEAD_LETTER_KEY, [])
        return len(dead)

    # === Draining ===

    async def drain(self, now: Optional[datetime] = None) -> DrainResult:
        async with self._drain_lock:
            return await self._drain_unlocked(now)

    async def _drain_unlocked(self, now: Optional[datetime]) -> DrainResult:
        result = DrainResult()
        reference = now or self._clock()
        if not self._remote.is_configured:
            result.skipped_unconfigured = True
            result.remaining = len(self.pending())
            return result

        for entry in [item for item in self.pending() if item.next_attempt_at <= reference]:
            try:
                record = ProfileRecord.model_validate(entry.payload)
            except ValidationError as exc:
                self._dead_letter(entry, f"invalid payload: {exc}")
                result.dead_lettered += 1
                continue

            outcome = await self._remote.upsert(record)
            if outcome.status is RemoteStatus.OK:
                self._remove_if_unchanged(entry)
                result.pushed += 1
                continue
            if outcome.status is RemoteStatus.UNCONFIGURED:
                result.skipped_unconfigured = True
                break

            result.failed += 1
            if self._record_failure(entry, outcome.error or outcome.status.value, reference):
                result.dead_lettered += 1

        result.remaining = len(self.pending())
        if result.pushed or result.failed or result.dead_lettered:
            emit_event(
                "outbox_drained",
                pushed=result.pushed,
                failed=result.failed,
                dead_lettered=result.dead_lettered,
                remaining=result.remaining,
            )
        return result

    def _remove_if_unchanged(self, pushed: OutboxEntry) -> None:
        # a save() during the await may have replaced the entry with a newer payload
        entries = self.pending()
        kept = [entry for entry in entries if entry.entry_id != pushed.entry_id]
        if len(kept) != len(entries):
            self._save(OUTBOX_KEY, kept)

    def _record_failure(self, failed: OutboxEntry, error: str, now: datetime) -> bool:
        entries = self.pending()
        for index, entry in enumerate(entries):
            if entry.entry_id != failed.entry_id:
                continue
            attempts = entry.attempts + 1
            if attempts >= self._max_attempts:
                del entries[index]
                self._save(OUTBOX_KEY, entries)
                self._dead_letter(entry.model_copy(update={"attempts": attempts, "last_error": error}), error)
                return True
            entries[index] = entry.model_copy(
                update={
                    "attempts": attempts,
                    "last_error": error,
                    "next_attempt_at": now + self.backoff_for(attempts),
                }
            )
            self._save(OUTBOX_KEY, entries)
            self._diagnostics.warn(
                "Backend: push failed, retry scheduled",
                {"telegram_id": entry.telegram_id, "attempts": attempts},
            )
            return False
        return False

    def _dead_letter(self, entry: OutboxEntry, error: str) -> None:
        pending = [item for item in self.pending() if item.entry_id != entry.entry_id]
        self._save(OUTBOX_KEY, pending)
        dead = self.dead_letters()
        dead.append(entry.model_copy(update={"last_error": error}))
        self._save(DEAD_LETTER_KEY, dead)
        self._diagnostics.error(
            "Backend: outbox entry dead-lettered after repeated failures",
            {"telegram_id": entry.telegram_id, "attempts": entry.attempts, "error": error},
        )
        emit_event("outbox_dead_lettered", telegram_id=entry.telegram_id, attempts=entry.attempts)

    # === Background task ===

    async def run(self, interval: float) -> None:
        stopping = self._stopping or asyncio.Event()
        self._stopping = stopping
        while not stopping.is_set():
            try:
                await self.drain()
            except Exception:  # noqa: BLE001
                logger.exception("Outbox drain pass failed")
            try:
                await asyncio.wait_for(stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    def start(self, interval: float) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._stopping = asyncio.Event()
            self._task = asyncio.create_task(self.run(interval))
        return self._task

    async def stop(self) -> None:
        if self._stopping is not None:
            self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None


__all__ = ["DEAD_LETTER_KEY", "DrainResult", "OUTBOX_KEY", "Outbox", "OutboxEntry"]
