"""Raw string storage backends with a byte quota, modelled on browser localStorage."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterator, Optional, Protocol

from ..errors import StorageQuotaExceeded

logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    """Minimal string-to-string storage surface used by DurableLocalStore."""

    def get_item(self, key: str) -> Optional[str]:  # pragma: no cover - protocol definition
        ...

    def set_item(self, key: str, value: str) -> None:  # pragma: no cover - protocol definition
        ...

    def remove_item(self, key: str) -> None:  # pragma: no cover - protocol definition
        ...

    def keys(self) -> Iterator[str]:  # pragma: no cover - protocol definition
        ...


def _entry_size(key: str, value: str) -> int:
    return len(key) + len(value)


def _check_quota(items: Dict[str, str], key: str, value: str, quota: Optional[int]) -> None:
    if not quota:
        return
    required = sum(_entry_size(k, v) for k, v in items.items() if k != key) + _entry_size(key, value)
    if required > quota:
        raise StorageQuotaExceeded(key, required, quota)


class MemoryStorage:
    """Process-local storage; contents vanish with the process."""

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self._items: Dict[str, str] = {}
        self._lock = threading.RLock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            _check_quota(self._items, key, value, self.quota_bytes)
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._items))

    def used_bytes(self) -> int:
        with self._lock:
            return sum(_entry_size(k, v) for k, v in self._items.items())


class JsonFileStorage:
    """Single JSON file holding every key; writes are atomic whole-file replaces."""

    def __init__(self, path: Path | str, quota_bytes: Optional[int] = None) -> None:
        self._path = Path(path)
        self.quota_bytes = quota_bytes
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, ValueError):
            logger.exception("Local storage file %s is unreadable; treating it as empty", self._path)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Local storage file %s does not hold an object; ignoring it", self._path)
            return {}
        return {str(key): value for key, value in raw.items() if isinstance(value, str)}

    def _write_unlocked(self, items: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = tempfile.NamedTemporaryFile(
            "w", dir=self._path.parent, delete=False, suffix=".json", encoding="utf-8"
        )
        try:
            with tmp:
                json.dump(items, tmp)
            os.replace(tmp.name, self._path)
        except Exception:
            with contextlib.suppress(OSError):
                os.unlink(tmp.name)
            raise

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load_unlocked().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._load_unlocked()
            _check_quota(items, key, value, self.quota_bytes)
            items[key] = value
            self._write_unlocked(items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._load_unlocked()
            if items.pop(key, None) is not None:
                self._write_unlocked(items)

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._load_unlocked()))


__all__ = ["JsonFileStorage", "MemoryStorage", "StorageBackend"]
