from __future__ import annotations

import json

from salespro.diagnostics import DiagnosticLevel, DiagnosticLog
from salespro.profile import ProfileRecord
from salespro.storage import DurableLocalStore, JsonFileStorage, MemoryStorage, backends


def _heavy_record() -> ProfileRecord:
    return ProfileRecord(
        telegram_id="T1",
        name="Quota",
        xp=120,
        completed_lesson_ids=["l1", "l2"],
        original_photo_base64="A" * 6000,
        avatar_url="data:image/png;base64," + "B" * 3000,
        about_me="closer",
    )


def test_set_and_get_use_prefixed_keys() -> None:
    backend = MemoryStorage()
    store = DurableLocalStore(backend, DiagnosticLog())

    assert store.set("progress", {"name": "Ivan"}) is True
    assert backend.get_item("salesPro_progress") == json.dumps({"name": "Ivan"})
    assert store.get("progress", None) == {"name": "Ivan"}
    assert store.keys() == ["progress"]


def test_get_returns_default_for_missing_or_corrupt_keys() -> None:
    backend = MemoryStorage()
    diagnostics = DiagnosticLog()
    store = DurableLocalStore(backend, diagnostics)
    backend.set_item("salesPro_broken", "{not json")

    assert store.get("missing", []) == []
    assert store.get("broken", {"fallback": True}) == {"fallback": True}
    assert diagnostics.recent(DiagnosticLevel.ERROR)


def test_quota_recovery_strips_heavy_fields_only() -> None:
    diagnostics = DiagnosticLog()
    store = DurableLocalStore(MemoryStorage(quota_bytes=4000), diagnostics)

    assert store.set("progress", _heavy_record()) is True

    restored = store.get("progress", None)
    assert "original_photo_base64" not in restored
    assert "avatar_url" not in restored
    assert restored["name"] == "Quota"
    assert restored["xp"] == 120
    assert restored["completed_lesson_ids"] == ["l1", "l2"]
    assert restored["about_me"] == "closer"

    warnings = diagnostics.recent(DiagnosticLevel.WARN)
    assert warnings[0].message == "Storage Quota Exceeded for key: progress. Attempting clean save."


def test_short_avatar_url_survives_quota_recovery() -> None:
    store = DurableLocalStore(MemoryStorage(quota_bytes=2000), DiagnosticLog())
    record = {"name": "A", "avatar_url": "https://cdn.example/a.png", "original_photo": "X" * 3000}

    assert store.set("progress", record) is True
    assert store.get("progress", None) == {"name": "A", "avatar_url": "https://cdn.example/a.png"}


def test_quota_failure_after_cleaning_returns_false() -> None:
    diagnostics = DiagnosticLog()
    store = DurableLocalStore(MemoryStorage(quota_bytes=50), diagnostics)

    assert store.set("progress", {"about_me": "x" * 500}) is False
    errors = diagnostics.recent(DiagnosticLevel.ERROR)
    assert errors[0].message == "Critical storage failure even after cleaning"


def test_unserializable_value_is_reported_not_raised() -> None:
    diagnostics = DiagnosticLog()
    store = DurableLocalStore(MemoryStorage(), diagnostics)

    assert store.set("progress", {"when": object()}) is False
    assert diagnostics.recent(DiagnosticLevel.ERROR)


def test_clear_only_touches_namespaced_keys() -> None:
    backend = MemoryStorage()
    backend.set_item("otherApp_token", "keep")
    store = DurableLocalStore(backend, DiagnosticLog())
    store.set("progress", {"name": "a"})
    store.set("allUsers", [])

    store.clear()

    assert store.keys() == []
    assert backend.get_item("otherApp_token") == "keep"


def test_json_file_storage_survives_reopen(tmp_path) -> None:
    path = tmp_path / "local" / "store.json"
    first = DurableLocalStore(JsonFileStorage(path), DiagnosticLog())
    first.set("progress", ProfileRecord(name="Durable", xp=10))

    second = DurableLocalStore(JsonFileStorage(path), DiagnosticLog())
    restored = ProfileRecord.model_validate(second.get("progress", None))
    assert restored.name == "Durable"
    assert restored.level == 1


def test_json_file_storage_treats_corrupt_file_as_empty(tmp_path) -> None:
    path = tmp_path / "store.json"
    path.write_text("not json", encoding="utf-8")
    store = DurableLocalStore(JsonFileStorage(path), DiagnosticLog())

    assert store.get("progress", "default") == "default"
    assert store.set("progress", {"name": "fresh"}) is True
    assert json.loads(path.read_text(encoding="utf-8")) == {"salesPro_progress": json.dumps({"name": "fresh"})}


class _StuckKeyStorage(MemoryStorage):
    def remove_item(self, key: str) -> None:
        if key == "salesPro_progress":
            raise OSError("read-only file system")
        super().remove_item(key)


def test_clear_logs_failed_removals_and_keeps_going() -> None:
    log = DiagnosticLog()
    store = DurableLocalStore(_StuckKeyStorage(), log)
    store.set("progress", {"name": "a"})
    store.set("allUsers", [])

    store.clear()

    assert store.keys() == ["progress"]
    errors = [event.message for event in log.entries() if event.level is DiagnosticLevel.ERROR]
    assert errors == ["Storage Error removing key: salesPro_progress"]


def test_failed_file_write_leaves_no_temp_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / "store.json"
    store = DurableLocalStore(JsonFileStorage(path), DiagnosticLog())
    store.set("progress", {"name": "before"})

    def _disk_full(*_args, **_kwargs) -> None:
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(backends.json, "dump", _disk_full)

    assert store.set("progress", {"name": "after"}) is False
    assert sorted(p.name for p in tmp_path.iterdir()) == ["store.json"]
    assert store.get("progress", None) == {"name": "before"}
