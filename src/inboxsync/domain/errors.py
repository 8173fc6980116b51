"""Exception hierarchy for mailbox synchronization."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every error raised by inboxsync."""


class MailboxConnectionError(SyncError):
    """The mailbox session could not be opened, locked or inspected.

    Fatal for the whole pass: nothing is imported and the cursor is left as is.
    """


class MessageImportError(SyncError):
    """A single message could not be imported. The pass carries on."""

    kind = "import"

    def __init__(self, detail: str, uid: int | None = None) -> None:
        super().__init__(f"UID {uid}: {detail}" if uid is not None else detail)
        self.uid = uid
        self.detail = detail


class MessageParseError(MessageImportError):
    """Raw message bytes could not be decomposed."""

    kind = "parse"


class MessagePersistError(MessageImportError):
    """Body document or metadata record could not be written."""

    kind = "persist"


class ContentStoreError(SyncError):
    """A write to the content store failed."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Failed to store {key}: {reason}")
        self.key = key


class MetadataStoreError(SyncError):
    """The metadata store rejected a read or write."""


class CheckpointWriteError(SyncError):
    """The end-of-pass cursor update failed.

    Work done during the pass is already persisted and idempotent, so the only
    consequence is reprocessing on the next pass.
    """
