from __future__ import annotations
import imaplib
import re
from typing import Iterator, Optional

from loguru import logger

from inboxsync.application.ports.email_source import MailboxStatus, RawMessage
from inboxsync.domain.entities.mailbox import MailboxConnection
from inboxsync.domain.errors import MailboxConnectionError
from inboxsync.infrastructure.email.providers.imap.auth import DEFAULT_TIMEOUT_SECONDS, ImapAuthenticator
from inboxsync.infrastructure.email.providers.imap.mapper import parse_fetch_response

FETCH_ITEMS = "(UID FLAGS INTERNALDATE BODY.PEEK[])"
_STATUS_RE = re.compile(rb"(UIDVALIDITY|MESSAGES) (\d+)")


class ImapMailboxLock:
    """Holds the EXAMINEd mailbox; release() CLOSEs it exactly once."""

    def __init__(self, conn: imaplib.IMAP4, mailbox: str) -> None:
        self._conn = conn
        self.mailbox = mailbox
        self._released = False

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            self._conn.close()
        except (imaplib.IMAP4.error, OSError) as e:
            # Connection may already be gone; logout will follow either way
            logger.warning(f"Failed to release lock on {self.mailbox}: {e}")

    def __enter__(self) -> "ImapMailboxLock":
        return self

    def __exit__(self, *exc) -> None:
        self.release()


class ImapMailboxSession:
    def __init__(self, conn: imaplib.IMAP4, mailbox: MailboxConnection) -> None:
        self._conn = conn
        self.mailbox = mailbox
        self._selected: Optional[str] = None
        self._status: Optional[MailboxStatus] = None

    def lock(self, mailbox: str) -> ImapMailboxLock:
        """EXAMINE the mailbox; the read-only selection is held for the whole pass.

        CLOSE after a read-write SELECT would expunge
        messages another client flagged \\Deleted.
        """
        try:
            typ, data = self._conn.select(mailbox, readonly=True)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxConnectionError(f"Failed to select {mailbox}: {e}") from e
        if typ != "OK":
            raise MailboxConnectionError(f"Failed to select folder {mailbox}")

        exists = int(data[0]) if data and data[0] else 0
        _, uv = self._conn.response("UIDVALIDITY")
        identity_space = int(uv[0]) if uv and uv[0] else None

        self._selected = mailbox
        self._status = MailboxStatus(identity_space=identity_space, exists=exists) if identity_space else None
        return ImapMailboxLock(self._conn, mailbox)

    def status(self) -> MailboxStatus:
        if self._selected is None:
            raise MailboxConnectionError("No mailbox selected")
        if self._status is None:
            # UIDVALIDITY was not announced on SELECT; ask explicitly
            try:
                typ, data = self._conn.status(self._selected, "(UIDVALIDITY MESSAGES)")
            except (imaplib.IMAP4.error, OSError) as e:
                raise MailboxConnectionError(f"STATUS failed for {self._selected}: {e}") from e
            if typ != "OK" or not data or not data[0]:
                raise MailboxConnectionError(f"STATUS failed for {self._selected}")
            values = {k.decode(): int(v) for k, v in _STATUS_RE.findall(data[0])}
            self._status = MailboxStatus(
                identity_space=values.get("UIDVALIDITY", 0),
                exists=values.get("MESSAGES", 0),
            )
        return self._status

    def _search_from(self, start_identity: int) -> list[int]:
        try:
            typ, uids_data = self._conn.uid("SEARCH", None, f"UID {start_identity}:*")
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxConnectionError(f"UID SEARCH failed: {e}") from e
        if typ != "OK":
            raise MailboxConnectionError("UID SEARCH failed")

        uids: list[int] = []
        if uids_data and uids_data[0]:
            uids = [int(x) for x in uids_data[0].split()]
        return sorted(uids)

    def fetch(self, start_identity: int) -> Iterator[RawMessage]:
        """Lazily fetch every message with UID >= start_identity, one UID at a time.

        Note that ``n:*`` always matches the highest UID in the mailbox, even
        when it is below n; callers must filter.
        """
        uids = self._search_from(start_identity)
        logger.info(f"Found {len(uids)} candidate UIDs from {start_identity} in {self._selected}")

        for uid in uids:
            try:
                typ, msg_data = self._conn.uid("FETCH", str(uid), FETCH_ITEMS)
            except (imaplib.IMAP4.error, OSError) as e:
                raise MailboxConnectionError(f"UID FETCH {uid} failed: {e}") from e
            if typ != "OK" or not msg_data or not msg_data[0]:
                # Expunged between SEARCH and FETCH
                logger.debug(f"UID {uid} vanished before fetch")
                continue

            raw = parse_fetch_response(msg_data)
            if raw is None:
                logger.warning(f"Could not parse FETCH response for UID {uid}")
                continue
            yield raw

    def logout(self) -> None:
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.warning(f"IMAP logout failed for {self.mailbox.id}: {e}")


class ImapMailboxClient:
    def __init__(self, mailbox: MailboxConnection, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.mailbox = mailbox
        self.authenticator = ImapAuthenticator(mailbox, timeout=timeout)

    def connect(self) -> ImapMailboxSession:
        conn = self.authenticator.login()
        return ImapMailboxSession(conn, self.mailbox)
