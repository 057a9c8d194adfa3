"""ORM models backing the remote profile store."""

from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class ProfileRowModel(TimestampMixin, Base):
    __tablename__ = "profiles"
    __table_args__ = (
        Index("ix_profiles_telegram_id", "telegram_id", unique=True),
        Index("ix_profiles_xp", "xp"),
        CheckConstraint("xp >= 0", name="ck_profiles_xp_non_negative"),
        CheckConstraint("level >= 1", name="ck_profiles_level_positive"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    telegram_id: Mapped[str] = mapped_column(String(64), nullable=False)
    username: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    role: Mapped[str] = mapped_column(String(16), default="STUDENT", nullable=False)
    xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    data: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)


__all__ = ["ProfileRowModel"]
