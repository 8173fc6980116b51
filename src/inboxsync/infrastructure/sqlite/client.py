"""SQLite store for imported message metadata and sync cursors (local runs and tests)."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

from loguru import logger

from inboxsync.application.ports.email_source import SyncCursor
from inboxsync.domain.entities.email_message import ImportedMessage
from inboxsync.domain.errors import CheckpointWriteError, MetadataStoreError
from inboxsync.infrastructure.records import JSON_COLUMNS, message_to_row, row_to_message


class SQLiteMailStore:
    """Implements both the message store and the checkpoint store on one SQLite file."""

    def __init__(self, db_path: str | Path = "/app/data/inboxsync.db"):
        self.db_path = Path(db_path)
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connection() as conn:
            conn.executescript("""
                PRAGMA journal_mode=WAL;

                CREATE TABLE IF NOT EXISTS sync_state (
                    connection_id TEXT PRIMARY KEY,
                    last_synced_uid INTEGER NOT NULL DEFAULT 0,
                    uid_validity INTEGER NOT NULL DEFAULT 0,
                    last_synced_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    thread_id TEXT NOT NULL,
                    connection_id TEXT NOT NULL,
                    remote_identity INTEGER NOT NULL,
                    identity_space INTEGER NOT NULL,
                    message_id TEXT NOT NULL,
                    in_reply_to TEXT,
                    "references" TEXT,
                    subject TEXT,
                    "from" TEXT NOT NULL,
                    "to" TEXT NOT NULL,
                    cc TEXT NOT NULL,
                    bcc TEXT NOT NULL,
                    reply_to TEXT NOT NULL,
                    snippet TEXT,
                    body_content_key TEXT NOT NULL,
                    internal_date TEXT NOT NULL,
                    is_read INTEGER NOT NULL DEFAULT 0,
                    is_starred INTEGER NOT NULL DEFAULT 0,
                    labels TEXT NOT NULL,
                    attachments TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_messages_conn_space
                    ON messages(connection_id, identity_space);
            """)
            logger.info(f"SQLite database initialized at {self.db_path}")

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # -- message store -----------------------------------------------------

    def upsert_message(self, record: ImportedMessage) -> None:
        row = message_to_row(record)
        for col in JSON_COLUMNS:
            row[col] = json.dumps(row[col])
        row["internal_date"] = record.internal_date.isoformat()
        now = datetime.now(timezone.utc).isoformat()

        columns = list(row)
        quoted = ", ".join(f'"{c}"' for c in columns)
        placeholders = ", ".join(f":{c}" for c in columns)
        updates = ", ".join(f'"{c}" = excluded."{c}"' for c in columns if c != "id")

        try:
            with self._connection() as conn:
                conn.execute(
                    f"""INSERT INTO messages ({quoted}, created_at, updated_at)
                        VALUES ({placeholders}, :now, :now)
                        ON CONFLICT(id) DO UPDATE SET {updates}, updated_at = :now""",
                    {**row, "now": now},
                )
        except sqlite3.Error as e:
            raise MetadataStoreError(f"Failed to upsert {record.id}: {e}") from e

        logger.debug(f"Upserted message {record.id}")

    def get_message(self, record_id: str) -> Optional[ImportedMessage]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (record_id,)).fetchone()
        if row is None:
            return None
        data = {k: row[k] for k in row.keys() if k not in ("created_at", "updated_at")}
        return row_to_message(data)

    def count_messages(self, connection_id: str) -> int:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE connection_id = ?",
                (connection_id,),
            ).fetchone()
        return row[0]

    def purge_stale(self, connection_id: str, identity_space: int) -> int:
        """Delete records imported under any other identity space for this connection."""
        try:
            with self._connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM messages WHERE connection_id = ? AND identity_space != ?",
                    (connection_id, identity_space),
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            raise MetadataStoreError(f"Failed to purge stale messages for {connection_id}: {e}") from e

    # -- checkpoint store --------------------------------------------------

    def get(self, connection_id: str) -> Optional[SyncCursor]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM sync_state WHERE connection_id = ?",
                (connection_id,),
            ).fetchone()

        if not row:
            logger.debug(f"No checkpoint found for {connection_id}")
            return None

        return SyncCursor(
            connection_id=row["connection_id"],
            last_synced_identity=row["last_synced_uid"],
            identity_space=row["uid_validity"],
            last_synced_at=datetime.fromisoformat(row["last_synced_at"]),
        )

    def set(self, connection_id: str, last_synced_identity: int, identity_space: int) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._connection() as conn:
                conn.execute(
                    """INSERT INTO sync_state (connection_id, last_synced_uid, uid_validity, last_synced_at)
                       VALUES (?, ?, ?, ?)
                       ON CONFLICT(connection_id) DO UPDATE SET
                           last_synced_uid = excluded.last_synced_uid,
                           uid_validity = excluded.uid_validity,
                           last_synced_at = excluded.last_synced_at""",
                    (connection_id, last_synced_identity, identity_space, now),
                )
        except sqlite3.Error as e:
            raise CheckpointWriteError(f"Failed to save checkpoint for {connection_id}: {e}") from e
        logger.info(f"Saved checkpoint for {connection_id}: UID {last_synced_identity}")

    def reset(self, connection_id: str) -> None:
        try:
            with self._connection() as conn:
                conn.execute("DELETE FROM sync_state WHERE connection_id = ?", (connection_id,))
        except sqlite3.Error as e:
            raise CheckpointWriteError(f"Failed to reset checkpoint for {connection_id}: {e}") from e
        logger.info(f"Reset checkpoint for {connection_id}")


# Singleton instance
_client: SQLiteMailStore | None = None


def get_sqlite_store(db_path: str | None = None) -> SQLiteMailStore:
    """Get or create SQLite store singleton."""
    global _client
    if _client is None:
        from inboxsync.infrastructure.settings import get_settings
        settings = get_settings()
        _client = SQLiteMailStore(db_path=db_path or settings.sqlite_db_path)
    return _client
