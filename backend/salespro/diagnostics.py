"""Bounded in-memory diagnostic event ring.

The ring is the only place failures of the sync subsystem become visible to
the health monitor. Events are mirrored to the standard ``logging`` tree so
operators see them too, but the ring itself never outlives the process.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from threading import RLock
from typing import Any, Deque, List, Optional

logger = logging.getLogger("salespro.diagnostics")

DEFAULT_CAPACITY = 100


class DiagnosticLevel(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    DEBUG = "DEBUG"


_LOGGING_LEVELS = {
    DiagnosticLevel.INFO: logging.INFO,
    DiagnosticLevel.WARN: logging.WARNING,
    DiagnosticLevel.ERROR: logging.ERROR,
    DiagnosticLevel.DEBUG: logging.DEBUG,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DiagnosticEvent:
    level: DiagnosticLevel
    message: str
    timestamp: datetime = field(default_factory=_now)
    data: Any = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "level": self.level.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.data is not None:
            payload["data"] = self.data if isinstance(self.data, (dict, list, str, int, float, bool)) else str(self.data)
        return payload


class DiagnosticLog:
    """Fixed-capacity ring of diagnostic events, newest first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("Diagnostic ring capacity must be positive.")
        self._capacity = capacity
        self._events: Deque[DiagnosticEvent] = deque(maxlen=capacity)
        self._lock = RLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def log(self, level: DiagnosticLevel, message: str, data: Any = None) -> DiagnosticEvent:
        event = DiagnosticEvent(level=DiagnosticLevel(level), message=message, data=data)
        with self._lock:
            # appendleft on a bounded deque drops the oldest entry from the right
            self._events.appendleft(event)
        if data is None:
            logger.log(_LOGGING_LEVELS[event.level], message)
        else:
            logger.log(_LOGGING_LEVELS[event.level], "%s | %s", message, data)
        return event

    def info(self, message: str, data: Any = None) -> DiagnosticEvent:
        return self.log(DiagnosticLevel.INFO, message, data)

    def warn(self, message: str, data: Any = None) -> DiagnosticEvent:
        return self.log(DiagnosticLevel.WARN, message, data)

    def error(self, message: str, data: Any = None) -> DiagnosticEvent:
        return self.log(DiagnosticLevel.ERROR, message, data)

    def debug(self, message: str, data: Any = None) -> DiagnosticEvent:
        return self.log(DiagnosticLevel.DEBUG, message, data)

    def entries(self) -> List[DiagnosticEvent]:
        with self._lock:
            return list(self._events)

    def recent(
        self,
        level: Optional[DiagnosticLevel] = None,
        *,
        window: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> List[DiagnosticEvent]:
        """Return events matching ``level`` that are younger than ``window``."""
        reference = now or _now()
        cutoff = reference - window if window is not None else None
        matched: List[DiagnosticEvent] = []
        for event in self.entries():
            if level is not None and event.level != level:
                continue
            if cutoff is not None and event.timestamp <= cutoff:
                continue
            matched.append(event)
        return matched

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


__all__ = [
    "DEFAULT_CAPACITY",
    "DiagnosticEvent",
    "DiagnosticLevel",
    "DiagnosticLog",
]
