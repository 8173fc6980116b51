"""Shared fixtures: fake mailbox, fake content store, and a recording SQLite store."""

from __future__ import annotations

from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import format_datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

import pytest
from pydantic import SecretStr

from inboxsync.application.ports.email_source import Envelope, MailboxStatus, RawMessage
from inboxsync.application.use_cases.import_message import ImportMessageUseCase
from inboxsync.application.use_cases.sync_mailbox import SyncMailboxUseCase
from inboxsync.domain.entities.attachment import AttachmentRef
from inboxsync.domain.entities.email_message import ImportedMessage, Participant
from inboxsync.domain.entities.mailbox import MailboxConnection
from inboxsync.domain.errors import (
    CheckpointWriteError,
    ContentStoreError,
    MailboxConnectionError,
    MetadataStoreError,
)
from inboxsync.infrastructure.email.providers.imap.mapper import envelope_from_source
from inboxsync.infrastructure.sqlite.client import SQLiteMailStore

DEFAULT_DATE = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


# ============================================================================
# Message builders
# ============================================================================


def build_rfc822(
    subject: str = "Hello",
    body: str = "Hi there",
    html: Optional[str] = None,
    attachments: tuple = (),
    message_id: Optional[str] = "<msg@example.com>",
    date: Optional[datetime] = DEFAULT_DATE,
    headers: Optional[dict] = None,
) -> bytes:
    msg = EmailMessage()
    msg["From"] = "Alice Example <alice@example.com>"
    msg["To"] = "Bob <bob@example.com>, carol@example.com"
    msg["Subject"] = subject
    if date is not None:
        msg["Date"] = format_datetime(date)
    if message_id:
        msg["Message-ID"] = message_id
    for name, value in (headers or {}).items():
        msg[name] = value
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")
    for filename, data, ctype in attachments:
        maintype, subtype = ctype.split("/")
        msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=filename)
    return msg.as_bytes()


def make_raw(uid: int, flags: frozenset = frozenset(), **kwargs) -> RawMessage:
    if "message_id" not in kwargs:
        kwargs["message_id"] = f"<{uid}@example.com>"
    source = build_rfc822(**kwargs)
    return RawMessage(
        uid=uid,
        envelope=envelope_from_source(source),
        source=source,
        flags=flags,
    )


def make_undated(uid: int) -> RawMessage:
    source = build_rfc822(date=None)
    return RawMessage(uid=uid, envelope=envelope_from_source(source), source=source)


def make_unparseable(uid: int) -> RawMessage:
    return RawMessage(uid=uid, envelope=Envelope(date=DEFAULT_DATE), source=b"   \r\n")


def make_record(uid: int, identity_space: int = 1000, connection_id: str = "conn") -> ImportedMessage:
    record_id = f"{connection_id}#{uid}"
    return ImportedMessage(
        id=record_id,
        thread_id=str(uid),
        connection_id=connection_id,
        remote_identity=uid,
        identity_space=identity_space,
        message_id=f"<{uid}@example.com>",
        in_reply_to=None,
        references="<0@example.com>",
        subject=f"Message {uid}",
        sender=Participant("Alice", "alice@example.com"),
        to=[Participant("", "bob@example.com")],
        cc=[],
        bcc=[],
        reply_to=[],
        snippet="hello",
        body_content_key=f"{connection_id}/{uid}.json",
        internal_date=DEFAULT_DATE,
        is_read=True,
        labels=["INBOX"],
        attachments=[
            AttachmentRef(
                id=f"{record_id}-att-0",
                filename="a.pdf",
                content_type="application/pdf",
                size=10,
                content_key=None,
            )
        ],
    )


# ============================================================================
# Fakes
# ============================================================================


class FakeLock:
    def __init__(self, mailbox: "FakeMailbox", name: str) -> None:
        self.mailbox = mailbox
        self.name = name

    def release(self) -> None:
        self.mailbox.events.append("release")

    def __enter__(self) -> "FakeLock":
        return self

    def __exit__(self, *exc) -> None:
        self.release()


class FakeSession:
    def __init__(self, mailbox: "FakeMailbox") -> None:
        self.mailbox = mailbox

    def lock(self, name: str) -> FakeLock:
        self.mailbox.events.append(f"lock:{name}")
        return FakeLock(self.mailbox, name)

    def status(self) -> MailboxStatus:
        return MailboxStatus(identity_space=self.mailbox.identity_space, exists=len(self.mailbox.messages))

    def fetch(self, start_identity: int) -> Iterator[RawMessage]:
        self.mailbox.fetch_starts.append(start_identity)
        uids = sorted(uid for uid in self.mailbox.messages if uid >= start_identity)
        if not uids and self.mailbox.messages:
            # IMAP n:* always matches the highest UID
            uids = [max(self.mailbox.messages)]
        if self.mailbox.descending:
            uids.reverse()
        for count, uid in enumerate(uids):
            if self.mailbox.fail_after is not None and count >= self.mailbox.fail_after:
                raise MailboxConnectionError("connection reset during fetch")
            yield self.mailbox.messages[uid]

    def logout(self) -> None:
        self.mailbox.events.append("logout")


class FakeMailbox:
    """In-memory stand-in for a remote IMAP mailbox and its client."""

    def __init__(self, identity_space: int = 1000, messages: Optional[list[RawMessage]] = None) -> None:
        self.identity_space = identity_space
        self.messages: dict[int, RawMessage] = {m.uid: m for m in messages or []}
        self.events: list[str] = []
        self.fetch_starts: list[int] = []
        self.descending = False
        self.fail_after: Optional[int] = None
        self.refuse_connect = False

    def recreate(self, identity_space: int, messages: list[RawMessage]) -> None:
        self.identity_space = identity_space
        self.messages = {m.uid: m for m in messages}

    def connect(self) -> FakeSession:
        if self.refuse_connect:
            raise MailboxConnectionError("connection refused")
        self.events.append("connect")
        return FakeSession(self)


class FakeContentStore:
    def __init__(self, fail: Callable[[str], bool] = lambda key: False) -> None:
        self.fail = fail
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.puts: list[str] = []

    def put(self, key: str, data: bytes, content_type: str) -> str:
        self.puts.append(key)
        if self.fail(key):
            raise ContentStoreError(key, "bucket unreachable")
        self.objects[key] = (data, content_type)
        return key


class RecordingStore(SQLiteMailStore):
    """SQLite store that counts writes and can be told to fail them."""

    def __init__(self, db_path: Path) -> None:
        super().__init__(db_path)
        self.upserts: list[str] = []
        self.cursor_writes: list[tuple[int, int]] = []
        self.fail_cursor_write = False
        self.fail_upsert: Callable[[str], bool] = lambda record_id: False

    def upsert_message(self, record) -> None:
        self.upserts.append(record.id)
        if self.fail_upsert(record.id):
            raise MetadataStoreError(f"database unavailable for {record.id}")
        super().upsert_message(record)

    def set(self, connection_id: str, last_synced_identity: int, identity_space: int) -> None:
        if self.fail_cursor_write:
            raise CheckpointWriteError(f"cannot save checkpoint for {connection_id}")
        self.cursor_writes.append((last_synced_identity, identity_space))
        super().set(connection_id, last_synced_identity, identity_space)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def connection() -> MailboxConnection:
    return MailboxConnection(
        id="conn",
        email="me@example.com",
        host="imap.example.com",
        password=SecretStr("secret"),
    )


@pytest.fixture
def store(tmp_path: Path) -> RecordingStore:
    return RecordingStore(tmp_path / "inboxsync.db")


@pytest.fixture
def content_store() -> FakeContentStore:
    return FakeContentStore()


@pytest.fixture
def make_engine(connection, store, content_store):
    """Build a SyncMailboxUseCase against a fake mailbox."""

    def _make(mailbox: FakeMailbox, **kwargs) -> SyncMailboxUseCase:
        importer_kwargs = {k: kwargs.pop(k) for k in ("thread_strategy", "max_attachment_mb") if k in kwargs}
        importer = ImportMessageUseCase(
            connection=connection,
            content_store=kwargs.pop("content", content_store),
            message_store=store,
            **importer_kwargs,
        )
        return SyncMailboxUseCase(
            connection=connection,
            client=mailbox,
            checkpoints=store,
            importer=importer,
            **kwargs,
        )

    return _make
