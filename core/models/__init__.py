"""Core ORM models for FeedImpact."""

from core.models.base import Base, TimestampMixin
from core.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
]
