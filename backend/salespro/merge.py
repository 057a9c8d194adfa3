"""Field ownership and the merge applied when a remote profile is found at login.

Precedence is declared in ``FIELD_OWNERSHIP`` rather than implied by the
order of dictionary updates:

* ``REMOTE_HOT``  - typed remote columns; the remote value always wins.
* ``REMOTE_COLD`` - fields carried in the remote blob; the remote blob
  replaces local values wholesale for every key it contains.
* ``LOCAL``       - identity and session fields the remote schema does not
  track; the local value is kept.

Fields that are neither declared nor present in the remote blob (extras a
newer local client wrote) stay local.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .profile import HOT_FIELDS, IDENTITY_FIELDS, SESSION_FIELDS, ProfileRecord, UserRole


class FieldOwner(str, Enum):
    REMOTE_HOT = "remote_hot"
    REMOTE_COLD = "remote_cold"
    LOCAL = "local"


def _build_ownership() -> Dict[str, FieldOwner]:
    table: Dict[str, FieldOwner] = {}
    for name in ProfileRecord.model_fields:
        if name in IDENTITY_FIELDS or name in SESSION_FIELDS:
            table[name] = FieldOwner.LOCAL
        elif name in HOT_FIELDS:
            table[name] = FieldOwner.REMOTE_HOT
        else:
            table[name] = FieldOwner.REMOTE_COLD
    table["level"] = FieldOwner.REMOTE_HOT
    return table


FIELD_OWNERSHIP: Mapping[str, FieldOwner] = _build_ownership()

# Collections that can grow independently on two devices between syncs.
MERGEABLE_COLLECTIONS = ("notebook", "chat_history", "completed_lesson_ids", "submitted_homeworks")


def owner_of(field_name: str) -> FieldOwner:
    return FIELD_OWNERSHIP.get(field_name, FieldOwner.REMOTE_COLD)


@dataclass
class RemoteProfile:
    """A row of the remote ``profiles`` table, decoded but not yet merged."""

    telegram_id: str
    name: str
    xp: int
    role: UserRole
    level: int = 1
    cold_fields: Dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    def to_record(self) -> ProfileRecord:
        payload: Dict[str, Any] = dict(self.cold_fields)
        payload.update(
            telegram_id=self.telegram_id,
            name=self.name,
            xp=self.xp,
            role=self.role,
            is_authenticated=True,
        )
        return ProfileRecord.model_validate(payload)


def merge_profiles(local: ProfileRecord, remote: RemoteProfile) -> ProfileRecord:
    """Merge ``remote`` into ``local`` according to ``FIELD_OWNERSHIP``."""
    merged: Dict[str, Any] = local.model_dump()

    for key, value in remote.cold_fields.items():
        if owner_of(key) is FieldOwner.LOCAL:
            continue
        merged[key] = value

    merged["xp"] = remote.xp
    merged["role"] = remote.role
    merged["name"] = remote.name or local.name
    merged["telegram_id"] = local.telegram_id or remote.telegram_id
    merged["is_authenticated"] = True
    return ProfileRecord.model_validate(merged)


def _item_key(item: Any) -> Any:
    if isinstance(item, Mapping):
        return item.get("id", repr(sorted(item.items(), key=lambda pair: pair[0])))
    if hasattr(item, "id"):
        return getattr(item, "id")
    return item


def find_diverged_collections(local: ProfileRecord, remote: RemoteProfile) -> Dict[str, int]:
    """Count local collection items the remote blob would overwrite.

    The merge lets the remote blob win wholesale, so entries created on this
    device while offline disappear. The result lets callers surface that.
    """
    diverged: Dict[str, int] = {}
    for name in MERGEABLE_COLLECTIONS:
        if name not in remote.cold_fields:
            continue
        remote_items = remote.cold_fields.get(name) or []
        remote_keys = {_item_key(item) for item in remote_items}
        missing = [item for item in getattr(local, name) if _item_key(item) not in remote_keys]
        if missing:
            diverged[name] = len(missing)
    return diverged


__all__ = [
    "FIELD_OWNERSHIP",
    "FieldOwner",
    "MERGEABLE_COLLECTIONS",
    "RemoteProfile",
    "find_diverged_collections",
    "merge_profiles",
    "owner_of",
]
