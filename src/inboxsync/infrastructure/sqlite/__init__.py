"""SQLite infrastructure for message metadata and sync cursors."""

from inboxsync.infrastructure.sqlite.client import (
    SQLiteMailStore,
    get_sqlite_store,
)

__all__ = [
    "SQLiteMailStore",
    "get_sqlite_store",
]
