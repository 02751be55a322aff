"""Database utilities for the SQL-backed session slot."""

from .base import Base
from .models import StorageSlotModel
from .session import build_engine, create_session_factory, session_scope

__all__ = [
    "Base",
    "StorageSlotModel",
    "build_engine",
    "create_session_factory",
    "session_scope",
]
