"""Namespaced JSON persistence over a quota-limited storage backend."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, TypeVar

from pydantic import BaseModel

from ..diagnostics import DiagnosticLog
from ..errors import StorageQuotaExceeded
from .backends import StorageBackend

T = TypeVar("T")

DEFAULT_PREFIX = "salesPro_"
DEFAULT_AVATAR_INLINE_LIMIT = 1000

# Embedded image payloads are the largest and most disposable part of a record.
HEAVY_FIELDS = ("original_photo", "original_photo_base64")
AVATAR_FIELD = "avatar_url"


def strip_heavy_fields(payload: Mapping[str, Any], avatar_inline_limit: int = DEFAULT_AVATAR_INLINE_LIMIT) -> Dict[str, Any]:
    """Return a shallow copy of ``payload`` without its heavy image fields.

    ``avatar_url`` survives only when it is short enough to be a real URL
    rather than an inlined data URI.
    """
    cleaned = {key: value for key, value in payload.items() if key not in HEAVY_FIELDS}
    avatar = cleaned.get(AVATAR_FIELD)
    if isinstance(avatar, str) and len(avatar) > avatar_inline_limit:
        cleaned.pop(AVATAR_FIELD)
    return cleaned


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


class DurableLocalStore:
    """Key-value store that never raises to its callers.

    Every key is written as ``{prefix}{key}``. Writes that hit the backend
    quota get one recovery attempt with heavy fields stripped; reads of
    missing or corrupt keys return the caller's default.
    """

    def __init__(
        self,
        backend: StorageBackend,
        diagnostics: DiagnosticLog,
        *,
        prefix: str = DEFAULT_PREFIX,
        avatar_inline_limit: int = DEFAULT_AVATAR_INLINE_LIMIT,
    ) -> None:
        self._backend = backend
        self._diagnostics = diagnostics
        self._prefix = prefix
        self._avatar_inline_limit = avatar_inline_limit

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def set(self, key: str, value: Any) -> bool:
        payload = _to_jsonable(value)
        try:
            serialized = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            self._diagnostics.error(f"Storage Error for key: {key}", str(exc))
            return False

        try:
            self._backend.set_item(self._key(key), serialized)
            return True
        except StorageQuotaExceeded as exc:
            self._diagnostics.warn(
                f"Storage Quota Exceeded for key: {key}. Attempting clean save.",
                {"required": exc.required, "quota": exc.quota},
            )
        except OSError as exc:
            self._diagnostics.error(f"Storage Error for key: {key}", str(exc))
            return False

        if not isinstance(payload, dict):
            self._diagnostics.error(f"Storage Quota Exceeded for key: {key}; nothing to strip")
            return False

        cleaned = strip_heavy_fields(payload, self._avatar_inline_limit)
        try:
            self._backend.set_item(self._key(key), json.dumps(cleaned))
            return True
        except (StorageQuotaExceeded, OSError) as exc:
            self._diagnostics.error("Critical storage failure even after cleaning", {"key": key, "error": str(exc)})
            return False

    def get(self, key: str, default: T) -> Any:
        try:
            item = self._backend.get_item(self._key(key))
        except OSError as exc:
            self._diagnostics.error(f"Error reading key: {key}", str(exc))
            return default
        if not item:
            return default
        try:
            return json.loads(item)
        except ValueError as exc:
            self._diagnostics.error(f"Error reading key: {key}", str(exc))
            return default

    def remove(self, key: str) -> None:
        try:
            self._backend.remove_item(self._key(key))
        except OSError as exc:
            self._diagnostics.error(f"Storage Error removing key: {key}", str(exc))

    def keys(self) -> List[str]:
        return [key[len(self._prefix):] for key in self._backend.keys() if key.startswith(self._prefix)]

    def clear(self) -> None:
        for key in list(self._backend.keys()):
            if not key.startswith(self._prefix):
                continue
            try:
                self._backend.remove_item(key)
            except OSError as exc:
                self._diagnostics.error(f"Storage Error removing key: {key}", str(exc))
        self._diagnostics.info("Storage cleared")


__all__ = ["AVATAR_FIELD", "DurableLocalStore", "HEAVY_FIELDS", "strip_heavy_fields"]
