"""
Database module for vaultfactory.

Store contracts consumed by the auth and vault cores, plus two adapters:
SQLite (WAL mode, one file) and in-memory.

Usage:
    # Startup
    stores = SQLiteStores("data/vault.db")

    # Use repositories
    await stores.users.create(user)
    user = await stores.users.get_by_email("a@x.com")
"""

from .connection import Database, connect
from .migrations import initialize_schema
from .memory_store import (
    MemoryDataItemStore,
    MemoryDataVersionStore,
    MemorySessionStore,
    MemoryStores,
    MemoryUserStore,
)
from .repositories import (
    DataItemStore,
    DataVersionStore,
    SessionStore,
    UserStore,
)
from .sqlite_store import (
    SQLiteDataItemStore,
    SQLiteDataVersionStore,
    SQLiteSessionStore,
    SQLiteStores,
    SQLiteUserStore,
)

__all__ = [
    "Database",
    "connect",
    "initialize_schema",
    "UserStore",
    "SessionStore",
    "DataItemStore",
    "DataVersionStore",
    "SQLiteUserStore",
    "SQLiteSessionStore",
    "SQLiteDataItemStore",
    "SQLiteDataVersionStore",
    "SQLiteStores",
    "MemoryUserStore",
    "MemorySessionStore",
    "MemoryDataItemStore",
    "MemoryDataVersionStore",
    "MemoryStores",
]
