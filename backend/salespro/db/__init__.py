"""Database utilities for the remote profile store."""

from .base import Base, TimestampMixin
from .models import ProfileRowModel
from .session import Database, build_engine

__all__ = [
    "Base",
    "Database",
    "ProfileRowModel",
    "TimestampMixin",
    "build_engine",
]
