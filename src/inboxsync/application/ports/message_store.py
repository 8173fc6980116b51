from __future__ import annotations
from typing import Optional, Protocol
from inboxsync.domain.entities.email_message import ImportedMessage

class MessageStore(Protocol):
    def upsert_message(self, record: ImportedMessage) -> None: ...
    def get_message(self, record_id: str) -> Optional[ImportedMessage]: ...
    def count_messages(self, connection_id: str) -> int: ...
    def purge_stale(self, connection_id: str, identity_space: int) -> int: ...
