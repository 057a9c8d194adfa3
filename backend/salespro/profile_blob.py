"""Versioned encoding of the cold (non-column) part of a profile.

Remote rows keep every cold field inside one JSON column. The payload is
wrapped as ``{"schema_version": N, "fields": {...}}`` so older rows can be
migrated forward instead of being silently misread.

Version 1 is the unversioned flat camelCase object written by the legacy
browser client, e.g. ``{"completedLessonIds": [...], "chatHistory": [...]}``.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict

from .errors import BlobVersionError
from .profile import HOT_FIELDS, IDENTITY_FIELDS, SESSION_FIELDS, ProfileRecord

CURRENT_BLOB_VERSION = 2

BLOB_EXCLUDED_FIELDS = frozenset(IDENTITY_FIELDS) | frozenset(HOT_FIELDS) | frozenset(SESSION_FIELDS)
_LEGACY_ALIASES = {"password": "local_password"}
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _snake_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {_snake(str(key)): _snake_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_snake_keys(item) for item in value]
    return value


def _migrate_v1(blob: Dict[str, Any]) -> Dict[str, Any]:
    converted = _snake_keys(blob)
    fields: Dict[str, Any] = {}
    for key, value in converted.items():
        key = _LEGACY_ALIASES.get(key, key)
        if key in BLOB_EXCLUDED_FIELDS:
            continue
        fields[key] = value
    return {"schema_version": 2, "fields": fields}


_MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    1: _migrate_v1,
}


def blob_version(blob: Dict[str, Any]) -> int:
    if "schema_version" not in blob:
        return 1
    version = blob["schema_version"]
    if not isinstance(version, int) or isinstance(version, bool) or version < 1:
        raise BlobVersionError(f"Invalid cold blob schema version: {version!r}")
    return version


def encode_cold_fields(record: ProfileRecord) -> Dict[str, Any]:
    dumped = record.model_dump(mode="json")
    fields = {key: value for key, value in dumped.items() if key not in BLOB_EXCLUDED_FIELDS}
    return {"schema_version": CURRENT_BLOB_VERSION, "fields": fields}


def decode_cold_fields(blob: Any) -> Dict[str, Any]:
    """Return the cold fields of ``blob`` migrated to the current version."""
    if blob is None:
        return {}
    if not isinstance(blob, dict):
        raise BlobVersionError(f"Cold blob must be an object, got {type(blob).__name__}")
    if not blob:
        return {}

    version = blob_version(blob)
    if version > CURRENT_BLOB_VERSION:
        raise BlobVersionError(
            f"Cold blob schema version {version} is newer than supported version {CURRENT_BLOB_VERSION}"
        )
    migrated = blob
    while version < CURRENT_BLOB_VERSION:
        migrated = _MIGRATIONS[version](migrated)
        version = migrated["schema_version"]

    fields = migrated.get("fields") or {}
    if not isinstance(fields, dict):
        raise BlobVersionError("Cold blob 'fields' must be an object")
    return {key: value for key, value in fields.items() if key not in BLOB_EXCLUDED_FIELDS}


__all__ = [
    "BLOB_EXCLUDED_FIELDS",
    "CURRENT_BLOB_VERSION",
    "blob_version",
    "decode_cold_fields",
    "encode_cold_fields",
]
