"""Read-only ranking of profiles by XP."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal

from pydantic import ValidationError

from .diagnostics import DiagnosticLog
from .profile import ProfileRecord
from .reconciliation import ReconciliationService
from .remote_store import RemoteProfileStore, RemoteStatus

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


@dataclass
class Leaderboard:
    entries: List[ProfileRecord] = field(default_factory=list)
    source: Literal["remote", "local"] = "remote"
    approximate: bool = False


class LeaderboardProjector:
    """Serves the top profiles, preferring the remote ranking.

    When the remote store cannot answer, the locally cached user list is
    returned as stored. That list is neither ranked nor complete, so the
    result is flagged ``approximate``.
    """

    def __init__(
        self,
        remote: RemoteProfileStore,
        reconciliation: ReconciliationService,
        diagnostics: DiagnosticLog,
        *,
        default_limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._remote = remote
        self._reconciliation = reconciliation
        self._diagnostics = diagnostics
        self._default_limit = default_limit

    async def get_top(self, limit: int | None = None) -> Leaderboard:
        size = self._default_limit if limit is None else limit
        if size <= 0:
            return Leaderboard()

        result = await self._remote.fetch_top_by_xp(size)
        if result.status is RemoteStatus.OK:
            entries: List[ProfileRecord] = []
            for row in result.profiles:
                try:
                    entries.append(row.to_record())
                except ValidationError as exc:
                    logger.warning("Skipping leaderboard row %s: %s", row.telegram_id, exc)
            return Leaderboard(entries=entries, source="remote")

        if result.status is RemoteStatus.TRANSPORT_ERROR:
            self._diagnostics.error("Backend: Leaderboard error", result.error)
        return self._local_fallback(size)

    def _local_fallback(self, limit: int) -> Leaderboard:
        cached = self._reconciliation.cached_users()
        return Leaderboard(entries=cached[:limit], source="local", approximate=True)


__all__ = ["DEFAULT_LIMIT", "Leaderboard", "LeaderboardProjector"]
