"""Capability interface of the AI Oracle collaborator.

The oracle (chat coach, homework grader, avatar generator) is hosted
elsewhere. This module only declares what the profile layer may ask of it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol, Sequence

from .profile import ChatMessage

SubmissionKind = Literal["TEXT", "PHOTO", "VIDEO", "FILE"]


@dataclass(frozen=True)
class GradingResult:
    passed: bool
    feedback: str


class AIOracle(Protocol):
    async def send_chat(self, history: Sequence[ChatMessage], message: str) -> str:
        ...

    async def grade_submission(self, content: str, kind: SubmissionKind, rubric: str) -> GradingResult:
        ...

    async def generate_avatar(self, photo_base64: str, style: str) -> str:
        """Return an avatar URL (or data URI) rendered from ``photo_base64``."""
        ...


__all__ = ["AIOracle", "GradingResult", "SubmissionKind"]
