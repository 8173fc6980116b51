from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from inboxsync.domain.entities.attachment import AttachmentRef


@dataclass(frozen=True)
class Participant:
    name: str
    address: str

    def to_dict(self) -> dict:
        return {"name": self.name, "address": self.address}

    @classmethod
    def from_dict(cls, data: dict) -> "Participant":
        return cls(name=data.get("name", ""), address=data.get("address", ""))


UNKNOWN_SENDER = Participant(name="Unknown", address="unknown")


def message_record_id(connection_id: str, uid: int) -> str:
    """Deterministic metadata id: same connection + same UID, same record."""
    return f"{connection_id}#{uid}"


@dataclass(frozen=True)
class ImportedMessage:
    id: str
    thread_id: str
    connection_id: str
    remote_identity: int
    identity_space: int
    message_id: str
    in_reply_to: Optional[str]
    references: Optional[str]
    subject: str
    sender: Participant
    to: list[Participant]
    cc: list[Participant]
    bcc: list[Participant]
    reply_to: list[Participant]
    snippet: str
    body_content_key: str
    internal_date: datetime
    is_read: bool = False
    is_starred: bool = False
    labels: list[str] = field(default_factory=list)
    attachments: list[AttachmentRef] = field(default_factory=list)
