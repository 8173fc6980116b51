from __future__ import annotations
from typing import Optional, Protocol
from inboxsync.application.ports.email_source import SyncCursor

class CheckpointStore(Protocol):
    def get(self, connection_id: str) -> Optional[SyncCursor]: ...
    def set(self, connection_id: str, last_synced_identity: int, identity_space: int) -> None: ...
    def reset(self, connection_id: str) -> None: ...
