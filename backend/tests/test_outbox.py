from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import OperationalError

from salespro.outbox import Outbox
from salespro.profile import ProfileRecord, new_profile
from salespro.remote_store import RemoteStatus
from salespro.repositories import profile_rows

START = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _failing_upsert(session, record):
    raise OperationalError("INSERT", {}, Exception("network down"))


def test_enqueue_keeps_one_entry_per_user(outbox) -> None:
    record = new_profile("Ivan", telegram_id="T1")
    outbox.enqueue(record)
    outbox.enqueue(record.model_copy(update={"xp": 300}))

    pending = outbox.pending()
    assert len(pending) == 1
    assert pending[0].payload["xp"] == 300


def test_drain_pushes_and_clears_entry(outbox, remote) -> None:
    outbox.enqueue(new_profile("Ivan", telegram_id="T1"))

    result = asyncio.run(outbox.drain())

    assert result.pushed == 1
    assert result.remaining == 0
    fetched = asyncio.run(remote.fetch_by_telegram_id("T1"))
    assert fetched.status is RemoteStatus.FOUND
    assert fetched.profile.name == "Ivan"


def test_failed_push_backs_off_exponentially(store, remote, diagnostics, monkeypatch) -> None:
    monkeypatch.setattr(profile_rows, "upsert", _failing_upsert)
    box = Outbox(store, remote, diagnostics, max_attempts=5, backoff_base=2.0, backoff_max=5.0, clock=lambda: START)
    box.enqueue(new_profile("Ivan", telegram_id="T1"))

    first = asyncio.run(box.drain(now=START))
    assert first.failed == 1
    entry = box.pending()[0]
    assert entry.attempts == 1
    assert entry.next_attempt_at == START + timedelta(seconds=2)

    skipped = asyncio.run(box.drain(now=START + timedelta(seconds=1)))
    assert skipped.failed == 0
    assert box.pending()[0].attempts == 1

    asyncio.run(box.drain(now=START + timedelta(seconds=2)))
    assert box.pending()[0].next_attempt_at == START + timedelta(seconds=6)
    assert box.backoff_for(3) == timedelta(seconds=5)


def test_entry_is_dead_lettered_after_max_attempts(store, remote, diagnostics, telemetry_events, monkeypatch) -> None:
    monkeypatch.setattr(profile_rows, "upsert", _failing_upsert)
    box = Outbox(store, remote, diagnostics, max_attempts=2, backoff_base=1.0, clock=lambda: START)
    box.enqueue(new_profile("Ivan", telegram_id="T1"))

    asyncio.run(box.drain(now=START))
    result = asyncio.run(box.drain(now=START + timedelta(hours=1)))

    assert result.dead_lettered == 1
    assert box.pending() == []
    dead = box.dead_letters()
    assert dead[0].telegram_id == "T1"
    assert dead[0].attempts == 2
    assert "outbox_dead_lettered" in [event.name for event in telemetry_events]


def test_requeue_dead_letters(store, remote, diagnostics, monkeypatch) -> None:
    monkeypatch.setattr(profile_rows, "upsert", _failing_upsert)
    box = Outbox(store, remote, diagnostics, max_attempts=1, clock=lambda: START)
    box.enqueue(new_profile("Ivan", telegram_id="T1"))
    asyncio.run(box.drain(now=START))
    assert len(box.dead_letters()) == 1

    monkeypatch.undo()
    assert box.requeue_dead() == 1
    result = asyncio.run(box.drain(now=START))

    assert result.pushed == 1
    assert box.dead_letters() == []


def test_drain_skips_when_remote_is_unconfigured(store, offline_remote, diagnostics) -> None:
    box = Outbox(store, offline_remote, diagnostics)
    box.enqueue(ProfileRecord(telegram_id="T1", name="Offline"))

    result = asyncio.run(box.drain())

    assert result.skipped_unconfigured is True
    assert result.remaining == 1
    assert offline_remote.calls == 0


def test_outbox_survives_process_restart(store, remote, diagnostics) -> None:
    Outbox(store, remote, diagnostics).enqueue(new_profile("Ivan", telegram_id="T1"))

    reopened = Outbox(store, remote, diagnostics)
    assert [entry.telegram_id for entry in reopened.pending()] == ["T1"]
