"""Database-backed repository for the remote ``profiles`` table."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ..db.models import ProfileRowModel
from ..merge import RemoteProfile
from ..profile import ProfileRecord, UserRole
from ..profile_blob import decode_cold_fields, encode_cold_fields


_DIALECT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _normalize_telegram_id(telegram_id: str) -> str:
    normalized = str(telegram_id).strip()
    if not normalized:
        raise ValueError("Telegram id cannot be empty.")
    return normalized


class ProfileRepository:
    """Row-level access keyed by ``telegram_id``; one row per id."""

    def get(self, session: Session, telegram_id: str) -> RemoteProfile | None:
        normalized = _normalize_telegram_id(telegram_id)
        stmt = select(ProfileRowModel).where(ProfileRowModel.telegram_id == normalized)
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            return None
        return self._to_domain(model)

    def upsert(self, session: Session, record: ProfileRecord) -> RemoteProfile:
        """Insert or overwrite the row for ``record.telegram_id`` in one statement."""
        if not record.telegram_id:
            raise ValueError("Only records with a telegram_id can be stored remotely.")
        normalized = _normalize_telegram_id(record.telegram_id)
        values = {
            "username": record.name,
            "role": record.role.value,
            "xp": record.xp,
            "level": record.level,
            "data": encode_cold_fields(record),
            "updated_at": datetime.now(timezone.utc),
        }

        insert = _DIALECT_INSERTS.get(session.get_bind().dialect.name)
        if insert is None:
            return self._upsert_orm(session, normalized, values)

        stmt = insert(ProfileRowModel).values(telegram_id=normalized, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ProfileRowModel.telegram_id],
            set_={name: stmt.excluded[name] for name in values},
        )
        session.execute(stmt)
        model = session.execute(
            select(ProfileRowModel)
            .where(ProfileRowModel.telegram_id == normalized)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return self._to_domain(model)

    def _upsert_orm(self, session: Session, telegram_id: str, values: Dict[str, Any]) -> RemoteProfile:
        stmt = select(ProfileRowModel).where(ProfileRowModel.telegram_id == telegram_id)
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            model = ProfileRowModel(telegram_id=telegram_id)
            session.add(model)
        for name, value in values.items():
            setattr(model, name, value)
        session.flush()
        return self._to_domain(model)

    def top_by_xp(self, session: Session, limit: int) -> List[RemoteProfile]:
        if limit <= 0:
            return []
        stmt = (
            select(ProfileRowModel)
            .order_by(ProfileRowModel.xp.desc(), ProfileRowModel.telegram_id.asc())
            .limit(limit)
        )
        return [self._to_domain(model) for model in session.execute(stmt).scalars().all()]

    def delete(self, session: Session, telegram_id: str) -> bool:
        normalized = _normalize_telegram_id(telegram_id)
        stmt = select(ProfileRowModel).where(ProfileRowModel.telegram_id == normalized)
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            return False
        session.delete(model)
        session.flush()
        return True

    def count(self, session: Session) -> int:
        return session.execute(select(func.count()).select_from(ProfileRowModel)).scalar_one()

    def _to_domain(self, model: ProfileRowModel) -> RemoteProfile:
        return RemoteProfile(
            telegram_id=model.telegram_id,
            name=model.username or "",
            xp=max(int(model.xp or 0), 0),
            role=UserRole(model.role) if model.role in UserRole.__members__ else UserRole.STUDENT,
            level=model.level,
            cold_fields=decode_cold_fields(model.data),
            updated_at=model.updated_at,
        )


profile_rows = ProfileRepository()

__all__ = ["ProfileRepository", "profile_rows"]
