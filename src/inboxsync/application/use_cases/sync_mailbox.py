"""Resumable, incremental synchronization of one monitored mailbox."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from loguru import logger

from inboxsync.application.ports.checkpoint_store import CheckpointStore
from inboxsync.application.ports.email_source import MailboxClient, MailboxSession, RawMessage, SyncCursor
from inboxsync.application.use_cases.import_message import ImportMessageUseCase
from inboxsync.domain.entities.mailbox import MailboxConnection
from inboxsync.domain.errors import MessageImportError, MetadataStoreError


@dataclass(frozen=True)
class MessageError:
    """A message that was fetched but not imported during a pass."""

    uid: int
    kind: str  # missing_source | missing_date | parse | persist | internal
    detail: str


@dataclass
class SyncResult:
    connection_id: str
    start_identity: int = 1
    identity_space: int = 0
    imported_count: int = 0
    skipped_count: int = 0
    highest_identity: int = 0
    cursor_written: bool = False
    purged_count: int = 0
    errors: list[MessageError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class BoundaryTracker:
    """Works out how far the cursor may advance after a pass.

    By default the boundary stops below the lowest UID that failed, so that
    message is fetched again next pass. With ``advance_past_failures`` every
    seen UID counts, and a failing message is attempted only once.
    """

    def __init__(self, previous: int, advance_past_failures: bool = False) -> None:
        self.previous = previous
        self.advance_past_failures = advance_past_failures
        self.imported: set[int] = set()
        self.failed: set[int] = set()

    def mark_imported(self, uid: int) -> None:
        self.imported.add(uid)

    def mark_failed(self, uid: int) -> None:
        self.failed.add(uid)

    @property
    def boundary(self) -> int:
        if self.advance_past_failures:
            return max(self.imported | self.failed | {self.previous})
        if not self.failed:
            return max(self.imported | {self.previous})
        lowest_failure = min(self.failed)
        return max({uid for uid in self.imported if uid < lowest_failure} | {self.previous})


class SyncMailboxUseCase:
    """One synchronization pass for one mailbox connection.

    Flow:
    1. Load the cursor; no cursor means start at UID 1
    2. Connect, lock the mailbox and read UIDVALIDITY
    3. UIDVALIDITY changed -> reset the cursor and resync from UID 1
    4. Fetch UIDs >= start, import each one, collect per-message errors
    5. Write the cursor once, at the end; release the lock; log out

    The cursor is never written mid-pass, so a crash leaves the previous one
    in place and the next pass redoes the same (idempotent) work.
    """

    def __init__(
        self,
        connection: MailboxConnection,
        client: MailboxClient,
        checkpoints: CheckpointStore,
        importer: ImportMessageUseCase,
        advance_past_failures: bool = False,
        purge_stale: bool = True,
    ) -> None:
        self.connection = connection
        self.client = client
        self.checkpoints = checkpoints
        self.importer = importer
        self.advance_past_failures = advance_past_failures
        self.purge_stale = purge_stale

    def run(self) -> SyncResult:
        conn_id = self.connection.id
        logger.info(f"Syncing connection {conn_id} ({self.connection.email})")

        cursor = self.checkpoints.get(conn_id)
        session = self.client.connect()
        try:
            with session.lock(self.connection.mailbox):
                result = self._sync(session, cursor)
        finally:
            session.logout()

        if result.imported_count == 0:
            logger.info(f"No new messages to sync for connection {conn_id}")
        else:
            logger.info(f"Synced {result.imported_count} new messages for connection {conn_id}")
        if result.errors:
            logger.warning(f"{len(result.errors)} message(s) failed for connection {conn_id}")
        return result

    def _sync(self, session: MailboxSession, cursor: Optional[SyncCursor]) -> SyncResult:
        conn_id = self.connection.id
        identity_space = session.status().identity_space

        if cursor is not None and cursor.identity_space != identity_space:
            logger.warning(
                f"UIDVALIDITY changed for {conn_id} (was {cursor.identity_space}, "
                f"now {identity_space}). Performing full resync."
            )
            self.checkpoints.reset(conn_id)
            cursor = None

        first_sync = cursor is None
        previous = cursor.last_synced_identity if cursor else 0
        start = previous + 1
        if first_sync:
            logger.info(f"First sync for connection {conn_id}, starting from UID 1")
        else:
            logger.info(f"Resuming sync from UID {start} for connection {conn_id}")

        result = SyncResult(
            connection_id=conn_id,
            start_identity=start,
            identity_space=identity_space,
            highest_identity=previous,
        )
        tracker = BoundaryTracker(previous, self.advance_past_failures)

        for raw in self._new_messages(session.fetch(start), previous, result):
            error = self._import_one(raw, identity_space)
            if error is None:
                tracker.mark_imported(raw.uid)
                result.imported_count += 1
            else:
                tracker.mark_failed(raw.uid)
                result.errors.append(error)

        boundary = tracker.boundary
        if boundary > previous or (first_sync and identity_space > 0):
            self.checkpoints.set(conn_id, boundary, identity_space)
            result.cursor_written = True
            result.highest_identity = boundary
            logger.info(f"Updated sync state: lastSyncedUid={boundary}, uidValidity={identity_space}")

        if first_sync and result.cursor_written and self.purge_stale:
            result.purged_count = self._purge_stale(identity_space)

        return result

    def _new_messages(
        self, fetched: Iterable[RawMessage], previous: int, result: SyncResult
    ) -> Iterator[RawMessage]:
        # n:* always returns the newest message, even when it is below n
        for raw in fetched:
            if raw.uid <= previous:
                logger.debug(f"Skipping already synced UID {raw.uid}")
                result.skipped_count += 1
                continue
            yield raw

    def _import_one(self, raw: RawMessage, identity_space: int) -> Optional[MessageError]:
        if not raw.source:
            logger.warning(f"UID {raw.uid} has no source; skipping")
            return MessageError(raw.uid, "missing_source", "fetch returned no message source")
        if raw.envelope is None or raw.envelope.date is None:
            logger.warning(f"UID {raw.uid} has no date; skipping")
            return MessageError(raw.uid, "missing_date", "message has no date")

        try:
            self.importer.run(raw, identity_space)
        except MessageImportError as e:
            logger.error(f"Failed to import UID {raw.uid}: {e}")
            return MessageError(raw.uid, e.kind, e.detail)
        except Exception as e:
            logger.exception(f"Unexpected error importing UID {raw.uid}")
            return MessageError(raw.uid, "internal", str(e))
        return None

    def _purge_stale(self, identity_space: int) -> int:
        conn_id = self.connection.id
        try:
            purged = self.importer.message_store.purge_stale(conn_id, identity_space)
        except MetadataStoreError as e:
            logger.error(f"Failed to purge stale messages for {conn_id}: {e}")
            return 0
        if purged:
            logger.info(f"Purged {purged} messages from old UIDVALIDITY generations for {conn_id}")
        return purged
