"""Core module for FeedImpact."""

from core.database import init_db, close_db

__all__ = [
    "init_db",
    "close_db",
]
