"""
Database layer — message persistence.

Backends:
  - SQL (PostgreSQL / SQLite via SQLAlchemy async)
  - In-memory (dict-based, for development/testing)

Quick start:
  from database import create_store
  store = create_store({"store_backend": "memory"})
  pending = await store.fetch_pending(limit=2)
"""
from database.models import Base, MessageRow
from database.session import get_engine, get_session, init_db, close_db
from database.store_base import BaseMessageStore
from database.store import SqlMessageStore
from database.store_memory import InMemoryMessageStore
from database.store_factory import create_store, get_store, reset_store

__all__ = [
    # ORM models
    "Base", "MessageRow",
    # Session management
    "get_engine", "get_session", "init_db", "close_db",
    # Store interface
    "BaseMessageStore",
    # Store backends
    "SqlMessageStore", "InMemoryMessageStore",
    # Factory
    "create_store", "get_store", "reset_store",
]
