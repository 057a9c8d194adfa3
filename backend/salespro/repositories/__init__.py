"""SQLAlchemy repositories."""

from .profiles import ProfileRepository, profile_rows

__all__ = ["ProfileRepository", "profile_rows"]
