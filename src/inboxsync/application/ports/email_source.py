from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional, Protocol

from inboxsync.domain.entities.email_message import Participant

@dataclass(frozen=True)
class SyncCursor:
    # IMAP cursor: UIDVALIDITY + last confirmed UID for the connection
    connection_id: str
    last_synced_identity: int
    identity_space: int
    last_synced_at: Optional[datetime] = None

@dataclass(frozen=True)
class MailboxStatus:
    identity_space: int
    exists: int = 0

@dataclass(frozen=True)
class Envelope:
    date: Optional[datetime]
    subject: str = ""
    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None
    sender: Optional[Participant] = None
    to: list[Participant] = field(default_factory=list)
    cc: list[Participant] = field(default_factory=list)
    bcc: list[Participant] = field(default_factory=list)
    reply_to: list[Participant] = field(default_factory=list)

@dataclass(frozen=True)
class RawMessage:
    uid: int
    envelope: Optional[Envelope]
    source: Optional[bytes]
    flags: frozenset[str] = frozenset()
    internal_date: Optional[datetime] = None

class MailboxLock(Protocol):
    def release(self) -> None: ...
    def __enter__(self) -> "MailboxLock": ...
    def __exit__(self, *exc) -> None: ...

class MailboxSession(Protocol):
    def lock(self, mailbox: str) -> MailboxLock: ...
    def status(self) -> MailboxStatus: ...
    def fetch(self, start_identity: int) -> Iterator[RawMessage]: ...
    def logout(self) -> None: ...

class MailboxClient(Protocol):
    def connect(self) -> MailboxSession: ...
