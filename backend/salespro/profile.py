"""Profile record model and the pure mutations applied to it during a session."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

XP_PER_LEVEL = 1000

IDENTITY_FIELDS = ("id", "telegram_id", "telegram_username", "local_password")
HOT_FIELDS = ("name", "xp", "level", "role")
SESSION_FIELDS = ("is_authenticated",)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def level_for_xp(xp: int) -> int:
    return xp // XP_PER_LEVEL + 1


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    CURATOR = "CURATOR"
    ADMIN = "ADMIN"


class AppTheme(str, Enum):
    LIGHT = "LIGHT"
    DARK = "DARK"


class NotebookEntryType(str, Enum):
    HABIT = "HABIT"
    GOAL = "GOAL"
    IDEA = "IDEA"
    NOTE = "NOTE"


class NotebookEntry(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    text: str
    is_checked: bool = False
    type: NotebookEntryType = NotebookEntryType.NOTE


class ChatMessage(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    role: Literal["user", "model"]
    text: str
    timestamp: datetime = Field(default_factory=_now)


class NotificationSettings(BaseModel):
    push_enabled: bool = False
    telegram_sync: bool = False
    deadline_reminders: bool = True
    chat_notifications: bool = True


class UserDossier(BaseModel):
    """Onboarding questionnaire answers."""

    height: Optional[str] = None
    weight: Optional[str] = None
    birth_date: Optional[str] = None
    location: Optional[str] = None
    living_situation: Optional[Literal["ALONE", "DORM", "PARENTS", "FAMILY", "OTHER"]] = None
    work_experience: Optional[str] = None
    income_goal: Optional[str] = None
    course_expectations: Optional[str] = None
    course_goals: Optional[str] = None
    motivation: Optional[str] = None


class ProfileRecord(BaseModel):
    """A user's progress and profile.

    ``level`` is always derived from ``xp``; any level supplied on input is
    discarded. Unknown fields are kept as extras so nothing written by a newer
    client is lost on a round trip.
    """

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    telegram_id: Optional[str] = None
    telegram_username: Optional[str] = None
    local_password: Optional[str] = None

    name: str = ""
    role: UserRole = UserRole.STUDENT
    xp: int = Field(default=0, ge=0)
    is_authenticated: bool = False
    registration_date: Optional[str] = None

    completed_lesson_ids: List[str] = Field(default_factory=list)
    submitted_homeworks: List[str] = Field(default_factory=list)
    chat_history: List[ChatMessage] = Field(default_factory=list)

    original_photo_base64: Optional[str] = None
    avatar_url: Optional[str] = None
    armor_style: Optional[str] = None
    background_style: Optional[str] = None
    theme: AppTheme = AppTheme.LIGHT

    instagram: Optional[str] = None
    about_me: Optional[str] = None
    invite_link: Optional[str] = None
    dossier: Optional[UserDossier] = None

    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    notebook: List[NotebookEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _drop_stored_level(cls, data: Any) -> Any:
        if isinstance(data, dict) and "level" in data:
            data = {key: value for key, value in data.items() if key != "level"}
        return data

    @field_validator("telegram_id", mode="before")
    @classmethod
    def _coerce_telegram_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("completed_lesson_ids")
    @classmethod
    def _unique_lessons(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def level(self) -> int:
        return level_for_xp(self.xp)

    @property
    def is_syncable(self) -> bool:
        return bool(self.telegram_id)


def default_profile() -> ProfileRecord:
    """The signed-out record the app falls back to on first launch and logout."""
    return ProfileRecord()


def new_profile(
    name: str,
    *,
    telegram_id: Optional[str] = None,
    telegram_username: Optional[str] = None,
    local_password: Optional[str] = None,
    role: UserRole = UserRole.STUDENT,
    dossier: Optional[UserDossier] = None,
    avatar_url: Optional[str] = None,
    original_photo_base64: Optional[str] = None,
    armor_style: Optional[str] = None,
) -> ProfileRecord:
    return ProfileRecord(
        id=uuid.uuid4().hex,
        telegram_id=telegram_id,
        telegram_username=telegram_username,
        local_password=local_password,
        name=name.strip(),
        role=role,
        is_authenticated=True,
        registration_date=_now().isoformat(),
        dossier=dossier,
        avatar_url=avatar_url,
        original_photo_base64=original_photo_base64,
        armor_style=armor_style,
    )


def apply_update(record: ProfileRecord, changes: Mapping[str, Any]) -> ProfileRecord:
    """Return a validated copy of ``record`` with ``changes`` merged field by field."""
    payload: Dict[str, Any] = record.model_dump()
    payload.update(changes)
    return ProfileRecord.model_validate(payload)


def complete_lesson(record: ProfileRecord, lesson_id: str, xp_reward: int) -> ProfileRecord:
    if xp_reward < 0:
        raise ValueError("Lesson XP reward cannot be negative.")
    lessons = list(record.completed_lesson_ids)
    if lesson_id in lessons:
        return record
    lessons.append(lesson_id)
    return apply_update(record, {"xp": record.xp + xp_reward, "completed_lesson_ids": lessons})


def submit_homework(record: ProfileRecord, lesson_id: str) -> ProfileRecord:
    if lesson_id in record.submitted_homeworks:
        return record
    return apply_update(record, {"submitted_homeworks": [*record.submitted_homeworks, lesson_id]})


def append_chat_message(record: ProfileRecord, role: Literal["user", "model"], text: str) -> ProfileRecord:
    message = ChatMessage(role=role, text=text)
    return apply_update(record, {"chat_history": [*record.chat_history, message]})


def add_notebook_entry(
    record: ProfileRecord,
    text: str,
    entry_type: NotebookEntryType = NotebookEntryType.NOTE,
) -> ProfileRecord:
    entry = NotebookEntry(text=text, type=entry_type)
    return apply_update(record, {"notebook": [*record.notebook, entry]})


__all__ = [
    "AppTheme",
    "ChatMessage",
    "HOT_FIELDS",
    "IDENTITY_FIELDS",
    "NotebookEntry",
    "NotebookEntryType",
    "NotificationSettings",
    "ProfileRecord",
    "SESSION_FIELDS",
    "UserDossier",
    "UserRole",
    "XP_PER_LEVEL",
    "add_notebook_entry",
    "append_chat_message",
    "apply_update",
    "complete_lesson",
    "default_profile",
    "level_for_xp",
    "new_profile",
    "submit_homework",
]
