from __future__ import annotations

from salespro.merge import FieldOwner, RemoteProfile, find_diverged_collections, merge_profiles, owner_of
from salespro.profile import ProfileRecord, UserRole


def _remote(**cold: object) -> RemoteProfile:
    return RemoteProfile(
        telegram_id="T1",
        name="Remote",
        xp=500,
        role=UserRole.CURATOR,
        cold_fields=dict(cold),
    )


def test_remote_hot_and_cold_fields_win_and_local_extras_survive() -> None:
    local = ProfileRecord.model_validate(
        {"telegram_id": "T1", "name": "Local", "xp": 0, "dossier_only_local_field": "X"}
    )
    notebook = [{"id": "n1", "text": "Call leads", "is_checked": False, "type": "GOAL"}]

    merged = merge_profiles(local, _remote(notebook=notebook))

    assert merged.name == "Remote"
    assert merged.xp == 500
    assert merged.level == 1
    assert merged.role is UserRole.CURATOR
    assert merged.model_extra["dossier_only_local_field"] == "X"
    assert [entry.model_dump(mode="json") for entry in merged.notebook] == notebook
    assert merged.is_authenticated is True


def test_local_identity_fields_are_kept() -> None:
    local = ProfileRecord(telegram_id="T1", telegram_username="ivan", local_password="pw", id="local-id")
    merged = merge_profiles(local, _remote(local_password="other", id="remote-id"))

    assert merged.local_password == "pw"
    assert merged.id == "local-id"
    assert merged.telegram_username == "ivan"


def test_blank_remote_name_falls_back_to_local() -> None:
    remote = RemoteProfile(telegram_id="T1", name="", xp=10, role=UserRole.STUDENT)
    merged = merge_profiles(ProfileRecord(telegram_id="T1", name="Local"), remote)
    assert merged.name == "Local"


def test_ownership_table_declares_every_field() -> None:
    assert owner_of("xp") is FieldOwner.REMOTE_HOT
    assert owner_of("level") is FieldOwner.REMOTE_HOT
    assert owner_of("notebook") is FieldOwner.REMOTE_COLD
    assert owner_of("is_authenticated") is FieldOwner.LOCAL
    assert owner_of("telegram_id") is FieldOwner.LOCAL
    assert owner_of("something_new") is FieldOwner.REMOTE_COLD


def test_diverged_collections_report_local_only_items() -> None:
    local = ProfileRecord.model_validate(
        {
            "telegram_id": "T1",
            "completed_lesson_ids": ["l1", "l2", "l3"],
            "notebook": [{"id": "offline", "text": "Draft"}],
        }
    )
    remote = _remote(completed_lesson_ids=["l1"], notebook=[])

    assert find_diverged_collections(local, remote) == {"completed_lesson_ids": 2, "notebook": 1}
    assert find_diverged_collections(local, _remote()) == {}
