"""Row mapping shared by the SQL-backed message stores."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping

from inboxsync.domain.entities.attachment import AttachmentRef
from inboxsync.domain.entities.email_message import ImportedMessage, Participant

# JSON-encoded columns; psycopg hands JSONB back decoded, sqlite as text
JSON_COLUMNS = ("from", "to", "cc", "bcc", "reply_to", "labels", "attachments")


def message_to_row(record: ImportedMessage) -> dict[str, Any]:
    return {
        "id": record.id,
        "thread_id": record.thread_id,
        "connection_id": record.connection_id,
        "remote_identity": record.remote_identity,
        "identity_space": record.identity_space,
        "message_id": record.message_id,
        "in_reply_to": record.in_reply_to,
        "references": record.references,
        "subject": record.subject,
        "from": record.sender.to_dict(),
        "to": [p.to_dict() for p in record.to],
        "cc": [p.to_dict() for p in record.cc],
        "bcc": [p.to_dict() for p in record.bcc],
        "reply_to": [p.to_dict() for p in record.reply_to],
        "snippet": record.snippet,
        "body_content_key": record.body_content_key,
        "internal_date": record.internal_date,
        "is_read": record.is_read,
        "is_starred": record.is_starred,
        "labels": list(record.labels),
        "attachments": [a.to_dict() for a in record.attachments],
    }


def _decoded(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def row_to_message(row: Mapping[str, Any]) -> ImportedMessage:
    data = {k: row[k] for k in row.keys()}
    for col in JSON_COLUMNS:
        data[col] = _decoded(data[col])

    internal_date = data["internal_date"]
    if isinstance(internal_date, str):
        internal_date = datetime.fromisoformat(internal_date)

    return ImportedMessage(
        id=data["id"],
        thread_id=data["thread_id"],
        connection_id=data["connection_id"],
        remote_identity=data["remote_identity"],
        identity_space=data["identity_space"],
        message_id=data["message_id"],
        in_reply_to=data["in_reply_to"],
        references=data["references"],
        subject=data["subject"] or "",
        sender=Participant.from_dict(data["from"]),
        to=[Participant.from_dict(p) for p in data["to"]],
        cc=[Participant.from_dict(p) for p in data["cc"]],
        bcc=[Participant.from_dict(p) for p in data["bcc"]],
        reply_to=[Participant.from_dict(p) for p in data["reply_to"]],
        snippet=data["snippet"] or "",
        body_content_key=data["body_content_key"],
        internal_date=internal_date,
        is_read=bool(data["is_read"]),
        is_starred=bool(data["is_starred"]),
        labels=list(data["labels"]),
        attachments=[AttachmentRef.from_dict(a) for a in data["attachments"]],
    )
