"""Engine and session helpers for the hosted Postgres profile store."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings


def build_engine(settings: Settings) -> Engine:
    database_url = settings.database_url
    if not database_url:
        raise RuntimeError("SALESPRO_DATABASE_URL must be configured before using the remote store.")

    kwargs: dict[str, object] = {
        "echo": settings.database_echo,
        "future": True,
        "pool_pre_ping": True,
    }

    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # worker threads must share the single in-memory database
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow

    return create_engine(database_url, **kwargs)


class Database:
    """Lazily built engine plus session factory for one configured database."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker[Session]] = None

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.database_url)

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = build_engine(self._settings)
            self._session_factory = sessionmaker(
                bind=self._engine,
                autoflush=False,
                autocommit=False,
                expire_on_commit=False,
                future=True,
            )
        return self._engine

    def session_factory(self) -> sessionmaker[Session]:
        if self._session_factory is None:
            _ = self.engine
        assert self._session_factory is not None
        return self._session_factory

    @contextmanager
    def session_scope(self, *, commit: bool = True) -> Generator[Session, None, None]:
        session = self.session_factory()()
        try:
            yield session
            if commit:
                session.commit()
        except Exception:  # noqa: BLE001
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None


__all__ = ["Database", "build_engine"]
