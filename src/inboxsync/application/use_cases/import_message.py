"""Import one fetched message: decompose, store content, upsert metadata."""

from __future__ import annotations

import json
from typing import Callable

from loguru import logger

from inboxsync.application.ports.content_store import ContentStore
from inboxsync.application.ports.email_source import RawMessage
from inboxsync.application.ports.message_store import MessageStore
from inboxsync.domain.entities.attachment import AttachmentRef
from inboxsync.domain.entities.email_message import UNKNOWN_SENDER, ImportedMessage, message_record_id
from inboxsync.domain.entities.mailbox import MailboxConnection
from inboxsync.domain.errors import (
    ContentStoreError,
    MessageParseError,
    MessagePersistError,
    MetadataStoreError,
)
from inboxsync.infrastructure.email.rfc822 import DecomposedMessage, ExtractedAttachment, decompose

SNIPPET_LENGTH = 100
DEFAULT_CONTENT_TYPE = "application/octet-stream"

ThreadStrategy = Callable[[RawMessage], str]


def one_message_per_thread(raw: RawMessage) -> str:
    """Every UID is its own conversation until real threading lands."""
    return str(raw.uid)


def body_key(connection_id: str, thread_id: str) -> str:
    return f"{connection_id}/{thread_id}.json"


def attachment_key(connection_id: str, record_id: str, attachment_id: str) -> str:
    return f"{connection_id}/attachments/{record_id}/{attachment_id}"


class ImportMessageUseCase:
    """Turn a RawMessage into stored content plus one ImportedMessage record.

    Flow:
    1. Decompose raw RFC822 bytes
    2. Derive thread id (pluggable) and Message-ID (synthesized if absent)
    3. Store the body document
    4. Store each attachment; a failed attachment write is recorded as a
       null content key and never drops the message
    5. Upsert the metadata record under its deterministic id

    Re-running on the same message rewrites the same keys and the same record.
    """

    def __init__(
        self,
        connection: MailboxConnection,
        content_store: ContentStore,
        message_store: MessageStore,
        thread_strategy: ThreadStrategy = one_message_per_thread,
        max_attachment_mb: float = 25.0,
    ) -> None:
        self.connection = connection
        self.content_store = content_store
        self.message_store = message_store
        self.thread_strategy = thread_strategy
        self.max_attachment_bytes = int(max_attachment_mb * 1024 * 1024)

    def run(self, raw: RawMessage, identity_space: int) -> ImportedMessage:
        """Import a single message. Raises MessageImportError subclasses on failure."""
        conn_id = self.connection.id
        record_id = message_record_id(conn_id, raw.uid)

        try:
            parsed = decompose(raw.source or b"")
        except MessageParseError as e:
            raise MessageParseError(e.detail, uid=raw.uid) from e

        thread_id = self.thread_strategy(raw)
        envelope = raw.envelope
        message_id = (
            (envelope.message_id if envelope else None)
            or parsed.header("Message-ID")
            or f"{thread_id}@{self.connection.host}"
        )
        snippet = (parsed.text or "")[:SNIPPET_LENGTH]

        body_content_key = self._store_body(raw, parsed, thread_id, snippet)
        attachments = [
            self._store_attachment(record_id, idx, att)
            for idx, att in enumerate(parsed.attachments)
        ]

        record = ImportedMessage(
            id=record_id,
            thread_id=thread_id,
            connection_id=conn_id,
            remote_identity=raw.uid,
            identity_space=identity_space,
            message_id=message_id,
            in_reply_to=envelope.in_reply_to if envelope else parsed.header("In-Reply-To"),
            references=parsed.header("References"),
            subject=(envelope.subject if envelope else None) or parsed.header("Subject") or "",
            sender=(envelope.sender if envelope else None) or UNKNOWN_SENDER,
            to=list(envelope.to) if envelope else [],
            cc=list(envelope.cc) if envelope else [],
            bcc=list(envelope.bcc) if envelope else [],
            reply_to=list(envelope.reply_to) if envelope else [],
            snippet=snippet,
            body_content_key=body_content_key,
            internal_date=envelope.date if envelope and envelope.date else raw.internal_date,
            is_read="\\Seen" in raw.flags,
            is_starred="\\Flagged" in raw.flags,
            labels=[self.connection.mailbox],
            attachments=attachments,
        )

        try:
            self.message_store.upsert_message(record)
        except MetadataStoreError as e:
            raise MessagePersistError(f"metadata upsert failed: {e}", uid=raw.uid) from e

        logger.info(f"Saved email UID {raw.uid} as {record_id} ({len(attachments)} attachments)")
        return record

    def _store_body(self, raw: RawMessage, parsed: DecomposedMessage, thread_id: str, snippet: str) -> str:
        document = {
            "id": str(raw.uid),
            "threadId": thread_id,
            "snippet": snippet,
            "payload": {
                "headers": [{"name": k, "value": v} for k, v in parsed.headers],
                "body": parsed.best_body,
            },
        }
        key = body_key(self.connection.id, thread_id)
        try:
            return self.content_store.put(key, json.dumps(document).encode("utf-8"), "application/json")
        except ContentStoreError as e:
            raise MessagePersistError(f"body write failed: {e}", uid=raw.uid) from e

    def _store_attachment(self, record_id: str, idx: int, att: ExtractedAttachment) -> AttachmentRef:
        attachment_id = f"{record_id}-att-{idx}"
        filename = att.filename or f"attachment-{idx}"
        content_type = att.content_type or DEFAULT_CONTENT_TYPE

        content_key = None
        if not att.content_bytes:
            logger.debug(f"Attachment {attachment_id} has no payload")
        elif att.size > self.max_attachment_bytes:
            logger.warning(f"Skipping attachment {filename} ({att.size} bytes) - exceeds max")
        else:
            try:
                content_key = self.content_store.put(
                    attachment_key(self.connection.id, record_id, attachment_id),
                    att.content_bytes,
                    content_type,
                )
                logger.info(f"Saved attachment {attachment_id}: {content_key}")
            except Exception as e:
                logger.error(f"Failed to save attachment {attachment_id}: {e}")

        return AttachmentRef(
            id=attachment_id,
            filename=filename,
            content_type=content_type,
            size=att.size,
            content_id=att.content_id,
            content_key=content_key,
        )
