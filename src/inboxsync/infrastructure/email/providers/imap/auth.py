from __future__ import annotations
import imaplib

from loguru import logger

from inboxsync.domain.entities.mailbox import MailboxConnection
from inboxsync.domain.errors import MailboxConnectionError

DEFAULT_TIMEOUT_SECONDS = 60.0


class ImapAuthenticator:
    """
    Responsible ONLY for establishing an authenticated IMAP connection.
    No folder logic, no fetching, no parsing.
    """

    def __init__(self, mailbox: MailboxConnection, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.mailbox = mailbox
        self.timeout = timeout

    def _open(self) -> imaplib.IMAP4:
        if self.mailbox.use_ssl:
            return imaplib.IMAP4_SSL(host=self.mailbox.host, port=self.mailbox.port, timeout=self.timeout)
        return imaplib.IMAP4(host=self.mailbox.host, port=self.mailbox.port, timeout=self.timeout)

    def login(self) -> imaplib.IMAP4:
        """
        Returns an authenticated IMAP connection (IMAPS unless use_ssl is off).
        """
        try:
            conn = self._open()
        except (OSError, imaplib.IMAP4.error) as e:
            raise MailboxConnectionError(
                f"Cannot reach {self.mailbox.host}:{self.mailbox.port}: {e}"
            ) from e

        try:
            conn.login(self.mailbox.login, self.mailbox.password.get_secret_value())
        except imaplib.IMAP4.error as e:
            try:
                conn.shutdown()
            except OSError:
                pass
            raise MailboxConnectionError(f"Login failed for {self.mailbox.login}: {e}") from e

        logger.debug(f"Logged in to {self.mailbox.host} as {self.mailbox.login}")
        return conn
