"""Domain models and entities."""

from inboxsync.domain.entities.attachment import AttachmentRef
from inboxsync.domain.entities.email_message import ImportedMessage, Participant, message_record_id
from inboxsync.domain.entities.mailbox import MailboxConnection

__all__ = [
    "AttachmentRef",
    "ImportedMessage",
    "Participant",
    "MailboxConnection",
    "message_record_id",
]
