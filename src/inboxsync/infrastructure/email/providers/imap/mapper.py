from __future__ import annotations
import imaplib
import re
import time
from datetime import datetime, timezone
from email import policy
from email.parser import BytesParser
from typing import Optional

from loguru import logger

from inboxsync.application.ports.email_source import Envelope, RawMessage
from inboxsync.domain.entities.email_message import Participant

_UID_RE = re.compile(rb"UID (\d+)")


def _participants(em, name: str) -> list[Participant]:
    out: list[Participant] = []
    for header in em.get_all(name) or []:
        for addr in getattr(header, "addresses", ()):
            out.append(Participant(name=addr.display_name or "", address=addr.addr_spec or ""))
    return out


def _header_date(em) -> Optional[datetime]:
    # Date parsing can be messy; unparseable counts as absent
    dt = em.get("Date")
    try:
        date = dt.datetime if dt else None
    except (AttributeError, TypeError, ValueError):
        return None
    if date is not None and date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return date


def envelope_from_source(source: bytes, internal_date: Optional[datetime] = None) -> Envelope:
    """Build an envelope from the message headers; INTERNALDATE backs up a missing Date."""
    em = BytesParser(policy=policy.default).parsebytes(source, headersonly=True)

    senders = _participants(em, "From")
    return Envelope(
        date=_header_date(em) or internal_date,
        subject=str(em.get("Subject") or "").strip(),
        message_id=(str(em.get("Message-Id") or "").strip() or None),
        in_reply_to=(str(em.get("In-Reply-To") or "").strip() or None),
        sender=senders[0] if senders else None,
        to=_participants(em, "To"),
        cc=_participants(em, "Cc"),
        bcc=_participants(em, "Bcc"),
        reply_to=_participants(em, "Reply-To"),
    )


def _internal_date(meta: bytes) -> Optional[datetime]:
    tt = imaplib.Internaldate2tuple(meta)
    if tt is None:
        return None
    return datetime.fromtimestamp(time.mktime(tt), tz=timezone.utc)


def parse_fetch_response(msg_data: list) -> Optional[RawMessage]:
    """Turn one ``UID FETCH (UID FLAGS INTERNALDATE BODY.PEEK[])`` reply into a RawMessage.

    Servers may put FLAGS before or after the literal, so every non-literal
    fragment is scanned for metadata.
    """
    meta = b""
    source: Optional[bytes] = None
    for item in msg_data or []:
        if isinstance(item, tuple):
            meta += item[0] + b" "
            source = item[1]
        elif isinstance(item, bytes):
            meta += item + b" "

    m = _UID_RE.search(meta)
    if not m:
        return None

    uid = int(m.group(1))
    flags = frozenset(f.decode() for f in imaplib.ParseFlags(meta))
    internal_date = _internal_date(meta)

    envelope = None
    if source:
        try:
            envelope = envelope_from_source(source, internal_date)
        except Exception as e:
            # Malformed headers are reported per message by decompose()
            logger.warning(f"Unreadable headers for UID {uid}: {e!r}")
            envelope = Envelope(date=internal_date)

    return RawMessage(
        uid=uid,
        envelope=envelope,
        source=source or None,
        flags=flags,
        internal_date=internal_date,
    )
