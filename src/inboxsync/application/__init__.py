"""Application layer - sync orchestration and the per-message import pipeline."""

from inboxsync.application.use_cases.import_message import ImportMessageUseCase
from inboxsync.application.use_cases.sync_mailbox import (
    MessageError,
    SyncMailboxUseCase,
    SyncResult,
)

__all__ = [
    "ImportMessageUseCase",
    "MessageError",
    "SyncMailboxUseCase",
    "SyncResult",
]
