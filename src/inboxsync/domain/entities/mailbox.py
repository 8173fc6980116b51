from __future__ import annotations
from dataclasses import dataclass, field

from pydantic import SecretStr


@dataclass(frozen=True)
class MailboxConnection:
    """One remote mailbox endpoint plus credentials.

    Owned by the connection registry; the sync engine only reads it.
    """
    id: str
    email: str
    host: str
    password: SecretStr = field(repr=False)
    port: int = 993
    use_ssl: bool = True
    username: str | None = None
    mailbox: str = "INBOX"

    @property
    def login(self) -> str:
        return self.username or self.email
