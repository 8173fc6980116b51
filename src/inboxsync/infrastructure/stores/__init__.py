"""Store implementations."""

from inboxsync.infrastructure.settings import Settings, get_settings
from inboxsync.infrastructure.sqlite.client import SQLiteMailStore, get_sqlite_store
from inboxsync.infrastructure.stores.postgres_store import PostgresMailStore


def get_mail_store(settings: Settings | None = None) -> PostgresMailStore | SQLiteMailStore:
    """Build the configured metadata + checkpoint store."""
    settings = settings or get_settings()
    if settings.metadata_backend == "sqlite":
        return get_sqlite_store(settings.sqlite_db_path)

    from inboxsync.infrastructure.postgres_client import get_postgres_client
    return PostgresMailStore(get_postgres_client())


__all__ = [
    "PostgresMailStore",
    "SQLiteMailStore",
    "get_mail_store",
]
