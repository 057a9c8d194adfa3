"""Async adapter over the hosted ``profiles`` table.

Callers never see an exception for transport, auth or decoding failures:
every call resolves to a ``RemoteResult`` whose ``status`` tells the caller
whether data came back, the row does not exist, or the store is unavailable.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, TypeVar

from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .db.session import Database
from .diagnostics import DiagnosticLog
from .errors import BlobVersionError, RemoteUnavailable
from .merge import RemoteProfile
from .profile import ProfileRecord
from .repositories.profiles import ProfileRepository, profile_rows
from .telemetry import emit_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSPORT_ERRORS = (SQLAlchemyError, OSError, RuntimeError, BlobVersionError, ValidationError)


class RemoteStatus(str, Enum):
    OK = "ok"
    FOUND = "found"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"
    UNCONFIGURED = "unconfigured"


@dataclass(frozen=True)
class RemoteResult:
    status: RemoteStatus
    profile: Optional[RemoteProfile] = None
    profiles: List[RemoteProfile] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.status not in (RemoteStatus.TRANSPORT_ERROR, RemoteStatus.UNCONFIGURED)

    def raise_for_status(self) -> None:
        if not self.available:
            raise RemoteUnavailable(self.status.value, self.error or "")


_UNCONFIGURED = RemoteResult(RemoteStatus.UNCONFIGURED, error="remote profile store is not configured")


class RemoteProfileStore:
    def __init__(
        self,
        database: Optional[Database],
        diagnostics: DiagnosticLog,
        *,
        repository: ProfileRepository = profile_rows,
    ) -> None:
        self._database = database
        self._diagnostics = diagnostics
        self._repository = repository
        self.calls = 0

    @property
    def is_configured(self) -> bool:
        return self._database is not None and self._database.is_configured

    async def fetch_by_telegram_id(self, telegram_id: str) -> RemoteResult:
        def _fetch() -> Optional[RemoteProfile]:
            assert self._database is not None
            with self._database.session_scope(commit=False) as session:
                return self._repository.get(session, telegram_id)

        outcome = await self._run("fetch", _fetch)
        if isinstance(outcome, RemoteResult):
            return outcome
        if outcome is None:
            return RemoteResult(RemoteStatus.NOT_FOUND)
        return RemoteResult(RemoteStatus.FOUND, profile=outcome)

    async def upsert(self, record: ProfileRecord) -> RemoteResult:
        if not record.telegram_id:
            raise ValueError("Cannot upsert a profile without a telegram_id.")

        def _upsert() -> RemoteProfile:
            assert self._database is not None
            with self._database.session_scope() as session:
                return self._repository.upsert(session, record)

        outcome = await self._run("save", _upsert)
        if isinstance(outcome, RemoteResult):
            return outcome
        logger.debug("Remote profile %s saved", record.telegram_id)
        return RemoteResult(RemoteStatus.OK, profile=outcome)

    async def fetch_top_by_xp(self, limit: int) -> RemoteResult:
        def _top() -> List[RemoteProfile]:
            assert self._database is not None
            with self._database.session_scope(commit=False) as session:
                return self._repository.top_by_xp(session, limit)

        outcome = await self._run("leaderboard", _top)
        if isinstance(outcome, RemoteResult):
            return outcome
        return RemoteResult(RemoteStatus.OK, profiles=outcome)

    async def ping(self) -> RemoteResult:
        def _ping() -> None:
            assert self._database is not None
            with self._database.engine.connect() as connection:
                connection.execute(text("SELECT 1"))

        outcome = await self._run("ping", _ping)
        if isinstance(outcome, RemoteResult):
            return outcome
        return RemoteResult(RemoteStatus.OK)

    async def _run(self, operation: str, func: Callable[[], T]) -> T | RemoteResult:
        if not self.is_configured:
            return _UNCONFIGURED
        self.calls += 1
        try:
            return await asyncio.to_thread(func)
        except _TRANSPORT_ERRORS as exc:
            self._diagnostics.error(
                f"Backend: {operation} failed (remote network error)",
                {"operation": operation, "error": str(exc)},
            )
            emit_event("remote_call_failed", operation=operation, error=type(exc).__name__)
            return RemoteResult(RemoteStatus.TRANSPORT_ERROR, error=str(exc))


__all__ = ["RemoteProfileStore", "RemoteResult", "RemoteStatus"]
