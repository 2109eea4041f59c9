"""Database package initialization."""

from .base import Base
from .config import get_database_url
from .session import SessionLocal, create_engine, create_session_factory, engine, init_db

__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "create_engine",
    "create_session_factory",
    "get_database_url",
    "init_db",
]
