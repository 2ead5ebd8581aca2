"""Database utilities."""

from novura.db.base import Base, JSONType
from novura.db.session import get_db, engine, async_session_maker

__all__ = ["Base", "JSONType", "get_db", "engine", "async_session_maker"]
