"""Watches the diagnostic ring and applies a remediation when errors pile up.

Each ``check()`` looks for ERROR events in a trailing window. With
``auto_fix`` on, the monitor classifies them by message, runs the matching
remediation and nudges the host with a ``warning`` haptic; otherwise it only
raises an alert. The monitor is heuristic: it keeps no incident history and
has no retry limit.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from .diagnostics import DiagnosticEvent, DiagnosticLevel, DiagnosticLog
from .host import HostEnvironment, NullHost
from .storage.local_store import DurableLocalStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)

# Cached content keys that are safe to drop; the app refetches them.
DISPOSABLE_CACHE_KEYS = ("materials", "streams")

_STORAGE_MARKERS = ("quota", "storage")
_NETWORK_MARKERS = ("network", "fetch", "remote", "backend")

Remediation = Callable[[], None]


class AgentStatus(str, Enum):
    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    REPAIRING = "REPAIRING"
    ALERT = "ALERT"


@dataclass
class HealthReport:
    status: AgentStatus
    error_count: int = 0
    action: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, object]:
        return {
            "status": self.status.value,
            "error_count": self.error_count,
            "action": self.action,
            "checked_at": self.checked_at.isoformat(),
        }


def classify(errors: List[DiagnosticEvent]) -> str:
    """Name the remediation for a batch of ERROR events."""
    messages = [event.message.lower() for event in errors]
    if any(marker in message for message in messages for marker in _STORAGE_MARKERS):
        return "clear_heavy_caches"
    if any(marker in message for message in messages for marker in _NETWORK_MARKERS):
        return "reset_remote_connection"
    return "optimize"


class SystemHealthMonitor:
    def __init__(
        self,
        diagnostics: DiagnosticLog,
        store: DurableLocalStore,
        *,
        enabled: bool = True,
        auto_fix: bool = True,
        interval: float = 15.0,
        error_window: float = 30.0,
        host: Optional[HostEnvironment] = None,
        reset_remote: Optional[Remediation] = None,
    ) -> None:
        self._diagnostics = diagnostics
        self._store = store
        self.enabled = enabled
        self.auto_fix = auto_fix
        self._interval = interval
        self._error_window = timedelta(seconds=error_window)
        self._host: HostEnvironment = host or NullHost()
        self._remediations: Dict[str, Remediation] = {
            "clear_heavy_caches": self._clear_heavy_caches,
            "reset_remote_connection": reset_remote or (lambda: None),
            "optimize": lambda: None,
        }
        self._latest = HealthReport(AgentStatus.IDLE)
        self._task: Optional[asyncio.Task[None]] = None
        self._stopping: Optional[asyncio.Event] = None

    @property
    def latest(self) -> HealthReport:
        return self._latest

    def register_remediation(self, name: str, action: Remediation) -> None:
        self._remediations[name] = action

    def check(self, now: Optional[datetime] = None) -> HealthReport:
        errors = self._diagnostics.recent(DiagnosticLevel.ERROR, window=self._error_window, now=now)
        if not errors:
            self._latest = HealthReport(AgentStatus.IDLE)
            return self._latest

        self._latest = HealthReport(AgentStatus.ANALYZING, error_count=len(errors))
        if not self.auto_fix:
            self._latest = HealthReport(AgentStatus.ALERT, error_count=len(errors))
            return self._latest

        action = classify(errors)
        try:
            self._remediations[action]()
        except Exception:  # noqa: BLE001
            logger.exception("Health remediation %s failed", action)
        self._host.haptic("warning")
        emit_event("health_remediation", action=action, error_count=len(errors))
        self._latest = HealthReport(AgentStatus.REPAIRING, error_count=len(errors), action=action)
        return self._latest

    def _clear_heavy_caches(self) -> None:
        for key in DISPOSABLE_CACHE_KEYS:
            self._store.remove(key)

    async def run(self) -> None:
        stopping = self._stopping or asyncio.Event()
        self._stopping = stopping
        while not stopping.is_set():
            try:
                self.check()
            except Exception:  # noqa: BLE001
                logger.exception("Health check failed")
            try:
                await asyncio.wait_for(stopping.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue

    def start(self) -> Optional[asyncio.Task[None]]:
        if not self.enabled:
            return None
        if self._task is None or self._task.done():
            self._stopping = asyncio.Event()
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._stopping is not None:
            self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None


__all__ = [
    "AgentStatus",
    "DISPOSABLE_CACHE_KEYS",
    "HealthReport",
    "SystemHealthMonitor",
    "classify",
]
