"""PostgreSQL client for message metadata and sync-state persistence."""

import psycopg
from loguru import logger

from inboxsync.infrastructure.settings import Settings, get_settings


class PostgresClientWrapper:
    """Wrapper for PostgreSQL connection lifecycle and schema bootstrap."""

    def __init__(self, settings: Settings | None = None):
        """Initialize PostgreSQL client wrapper."""
        self.settings = settings or get_settings()
        self._connection: psycopg.Connection | None = None

    def connect(self) -> psycopg.Connection:
        """Establish connection to PostgreSQL."""
        if self._connection is None or self._connection.closed:
            logger.info(f"Connecting to PostgreSQL at {self.settings.postgres_host}:{self.settings.postgres_port}")
            self._connection = psycopg.connect(self.settings.postgres_dsn)
            logger.info("PostgreSQL connection established")
        return self._connection

    @property
    def connection(self) -> psycopg.Connection:
        """Get or create PostgreSQL connection."""
        if self._connection is None or self._connection.closed:
            return self.connect()
        return self._connection

    def setup_schema(self) -> None:
        """Set up database schema for the application."""
        conn = self.connect()
        with conn.cursor() as cur:
            cur.execute("""
                CREATE TABLE IF NOT EXISTS imap_sync_state (
                    connection_id TEXT PRIMARY KEY,
                    last_synced_uid BIGINT NOT NULL DEFAULT 0,
                    uid_validity BIGINT NOT NULL DEFAULT 0,
                    last_synced_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS imported_messages (
                    id TEXT PRIMARY KEY,
                    thread_id TEXT NOT NULL,
                    connection_id TEXT NOT NULL,
                    remote_identity BIGINT NOT NULL,
                    identity_space BIGINT NOT NULL,
                    message_id TEXT NOT NULL,
                    in_reply_to TEXT,
                    "references" TEXT,
                    subject TEXT,
                    "from" JSONB NOT NULL,
                    "to" JSONB NOT NULL DEFAULT '[]'::jsonb,
                    cc JSONB NOT NULL DEFAULT '[]'::jsonb,
                    bcc JSONB NOT NULL DEFAULT '[]'::jsonb,
                    reply_to JSONB NOT NULL DEFAULT '[]'::jsonb,
                    snippet TEXT,
                    body_content_key TEXT NOT NULL,
                    internal_date TIMESTAMP WITH TIME ZONE NOT NULL,
                    is_read BOOLEAN NOT NULL DEFAULT FALSE,
                    is_starred BOOLEAN NOT NULL DEFAULT FALSE,
                    labels JSONB NOT NULL DEFAULT '[]'::jsonb,
                    attachments JSONB NOT NULL DEFAULT '[]'::jsonb,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_imported_messages_conn_space
                    ON imported_messages(connection_id, identity_space);
            """)
            conn.commit()
            logger.info("Database schema setup complete")


# Singleton instance
_postgres_client: PostgresClientWrapper | None = None


def get_postgres_client() -> PostgresClientWrapper:
    """Get singleton PostgreSQL client instance."""
    global _postgres_client
    if _postgres_client is None:
        _postgres_client = PostgresClientWrapper()
    return _postgres_client
