"""PostgreSQL-backed message store and checkpoint store."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Generator, Optional

import psycopg
from loguru import logger
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from inboxsync.application.ports.email_source import SyncCursor
from inboxsync.domain.entities.email_message import ImportedMessage
from inboxsync.domain.errors import CheckpointWriteError, MetadataStoreError
from inboxsync.infrastructure.postgres_client import PostgresClientWrapper
from inboxsync.infrastructure.records import JSON_COLUMNS, message_to_row, row_to_message


MESSAGES_TABLE = "imported_messages"
SYNC_STATE_TABLE = "imap_sync_state"


class PostgresMailStore:
    """Store imported message metadata and IMAP sync cursors in PostgreSQL."""

    def __init__(self, client: PostgresClientWrapper):
        self.client = client
        # One connection is shared by concurrent mailbox passes
        self._lock = threading.RLock()
        self.client.setup_schema()

    @contextmanager
    def _cursor(self) -> Generator[psycopg.Cursor, None, None]:
        with self._lock:
            conn = self.client.connection
            try:
                with conn.cursor(row_factory=dict_row) as cur:
                    yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    # -- message store -----------------------------------------------------

    def upsert_message(self, record: ImportedMessage) -> None:
        """Insert or update a message keyed by its deterministic id."""
        row = message_to_row(record)
        for col in JSON_COLUMNS:
            row[col] = Jsonb(row[col])

        columns = list(row)
        quoted = ", ".join(f'"{c}"' for c in columns)
        placeholders = ", ".join(f"%({c})s" for c in columns)
        updates = ", ".join(f'"{c}" = EXCLUDED."{c}"' for c in columns if c != "id")

        try:
            with self._cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {MESSAGES_TABLE} ({quoted}, created_at, updated_at)
                    VALUES ({placeholders}, NOW(), NOW())
                    ON CONFLICT (id) DO UPDATE SET {updates}, updated_at = NOW()
                    """,
                    row,
                )
        except psycopg.Error as e:
            raise MetadataStoreError(f"Failed to upsert {record.id}: {e}") from e
        logger.debug(f"Upserted message {record.id}")

    def get_message(self, record_id: str) -> Optional[ImportedMessage]:
        with self._cursor() as cur:
            cur.execute(f"SELECT * FROM {MESSAGES_TABLE} WHERE id = %s", (record_id,))
            row = cur.fetchone()
        if row is None:
            return None
        row.pop("created_at", None)
        row.pop("updated_at", None)
        return row_to_message(row)

    def count_messages(self, connection_id: str) -> int:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT COUNT(*) AS n FROM {MESSAGES_TABLE} WHERE connection_id = %s",
                (connection_id,),
            )
            return cur.fetchone()["n"]

    def purge_stale(self, connection_id: str, identity_space: int) -> int:
        """Delete records imported under any other identity space for this connection."""
        try:
            with self._cursor() as cur:
                cur.execute(
                    f"DELETE FROM {MESSAGES_TABLE} WHERE connection_id = %s AND identity_space <> %s",
                    (connection_id, identity_space),
                )
                return cur.rowcount
        except psycopg.Error as e:
            raise MetadataStoreError(f"Failed to purge stale messages for {connection_id}: {e}") from e

    # -- checkpoint store --------------------------------------------------

    def get(self, connection_id: str) -> Optional[SyncCursor]:
        """Load checkpoint for a connection."""
        with self._cursor() as cur:
            cur.execute(
                f"SELECT * FROM {SYNC_STATE_TABLE} WHERE connection_id = %s",
                (connection_id,),
            )
            row = cur.fetchone()

        if not row:
            logger.debug(f"No checkpoint found for {connection_id}")
            return None

        logger.debug(f"Loaded checkpoint for {connection_id}: UID {row['last_synced_uid']}")
        return SyncCursor(
            connection_id=row["connection_id"],
            last_synced_identity=row["last_synced_uid"],
            identity_space=row["uid_validity"],
            last_synced_at=row["last_synced_at"],
        )

    def set(self, connection_id: str, last_synced_identity: int, identity_space: int) -> None:
        """Save checkpoint for a connection."""
        try:
            with self._cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {SYNC_STATE_TABLE} (connection_id, last_synced_uid, uid_validity, last_synced_at)
                    VALUES (%s, %s, %s, NOW())
                    ON CONFLICT (connection_id) DO UPDATE SET
                        last_synced_uid = EXCLUDED.last_synced_uid,
                        uid_validity = EXCLUDED.uid_validity,
                        last_synced_at = NOW()
                    """,
                    (connection_id, last_synced_identity, identity_space),
                )
        except psycopg.Error as e:
            raise CheckpointWriteError(f"Failed to save checkpoint for {connection_id}: {e}") from e
        logger.info(f"Saved checkpoint for {connection_id}: UID {last_synced_identity}")

    def reset(self, connection_id: str) -> None:
        """Delete the checkpoint, forcing a full resync."""
        try:
            with self._cursor() as cur:
                cur.execute(f"DELETE FROM {SYNC_STATE_TABLE} WHERE connection_id = %s", (connection_id,))
        except psycopg.Error as e:
            raise CheckpointWriteError(f"Failed to reset checkpoint for {connection_id}: {e}") from e
        logger.info(f"Reset checkpoint for {connection_id}")
