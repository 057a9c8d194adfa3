from __future__ import annotations

import pytest

from salespro.errors import BlobVersionError
from salespro.profile import ProfileRecord, new_profile
from salespro.profile_blob import CURRENT_BLOB_VERSION, decode_cold_fields, encode_cold_fields


def test_encoded_blob_is_versioned_and_excludes_hot_and_identity_fields() -> None:
    record = new_profile("Ivan", telegram_id="T1", local_password="secret")
    blob = encode_cold_fields(record)

    assert blob["schema_version"] == CURRENT_BLOB_VERSION
    fields = blob["fields"]
    for excluded in ("name", "xp", "level", "role", "telegram_id", "local_password", "is_authenticated", "id"):
        assert excluded not in fields
    assert fields["completed_lesson_ids"] == []
    assert fields["theme"] == "LIGHT"


def test_unversioned_camel_case_blob_is_migrated() -> None:
    legacy = {
        "completedLessonIds": ["l1"],
        "chatHistory": [{"id": "m1", "role": "user", "text": "hi", "timestamp": "2024-01-01T00:00:00+00:00"}],
        "notifications": {"pushEnabled": True},
        "password": "leaked",
        "xp": 999,
        "instagram": "@closer",
    }

    fields = decode_cold_fields(legacy)

    assert fields["completed_lesson_ids"] == ["l1"]
    assert fields["chat_history"][0]["text"] == "hi"
    assert fields["notifications"] == {"push_enabled": True}
    assert fields["instagram"] == "@closer"
    assert "local_password" not in fields
    assert "xp" not in fields

    record = ProfileRecord.model_validate(fields)
    assert record.notifications.push_enabled is True


def test_empty_blob_decodes_to_no_fields() -> None:
    assert decode_cold_fields(None) == {}
    assert decode_cold_fields({}) == {}


def test_newer_blob_version_is_refused() -> None:
    with pytest.raises(BlobVersionError):
        decode_cold_fields({"schema_version": CURRENT_BLOB_VERSION + 1, "fields": {}})


def test_non_object_blob_is_refused() -> None:
    with pytest.raises(BlobVersionError):
        decode_cold_fields(["not", "a", "blob"])
