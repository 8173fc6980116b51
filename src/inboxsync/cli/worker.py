"""Mailbox sync worker - polls multiple mailboxes at configurable intervals."""

from __future__ import annotations

import signal
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from inboxsync.application.ports.checkpoint_store import CheckpointStore
from inboxsync.application.ports.content_store import ContentStore
from inboxsync.application.ports.message_store import MessageStore
from inboxsync.application.use_cases.import_message import ImportMessageUseCase
from inboxsync.application.use_cases.sync_mailbox import SyncMailboxUseCase, SyncResult
from inboxsync.domain.entities.mailbox import MailboxConnection
from inboxsync.infrastructure import configure_logging, get_content_store, get_mail_store, get_settings
from inboxsync.infrastructure.email.providers.imap.client import ImapMailboxClient
from inboxsync.infrastructure.mailboxes import get_mailboxes_from_env
from inboxsync.infrastructure.settings import Settings


def build_sync_use_case(
    mailbox: MailboxConnection,
    settings: Settings,
    content_store: ContentStore,
    mail_store: MessageStore | CheckpointStore,
) -> SyncMailboxUseCase:
    """Wire one mailbox connection to the shared stores."""
    importer = ImportMessageUseCase(
        connection=mailbox,
        content_store=content_store,
        message_store=mail_store,
        max_attachment_mb=settings.attachments_max_mb,
    )
    return SyncMailboxUseCase(
        connection=mailbox,
        client=ImapMailboxClient(mailbox, timeout=settings.imap_timeout_seconds),
        checkpoints=mail_store,
        importer=importer,
        advance_past_failures=settings.sync_advance_past_failures,
        purge_stale=settings.sync_purge_stale,
    )


@dataclass
class WorkerStats:
    """Track worker statistics."""
    total_imported: int = 0
    total_message_errors: int = 0
    total_errors: int = 0
    last_poll: datetime | None = None
    polls_completed: int = 0
    by_mailbox: dict[str, int] = field(default_factory=dict)


class MailSyncWorker:
    """
    Multi-mailbox sync worker.

    Polls configured mailboxes at regular intervals and runs one sync pass per
    mailbox. Passes for different mailboxes are independent and may run
    concurrently; a single mailbox is never synced by two passes at once.
    """

    def __init__(
        self,
        mailboxes: list[MailboxConnection],
        settings: Settings,
        content_store: ContentStore,
        mail_store: MessageStore | CheckpointStore,
    ):
        self.mailboxes = mailboxes
        self.settings = settings
        self.poll_interval = settings.sync_poll_minutes * 60  # Convert to seconds
        self.max_concurrency = max(1, settings.sync_max_concurrency)
        self.content_store = content_store
        self.mail_store = mail_store
        self.running = False
        self.stats = WorkerStats()

    def _process_mailbox(self, mailbox: MailboxConnection) -> SyncResult:
        """Run one sync pass for a single mailbox."""
        uc = build_sync_use_case(mailbox, self.settings, self.content_store, self.mail_store)
        result = uc.run()
        logger.info(
            f"Mailbox {mailbox.id}: imported {result.imported_count}, "
            f"errors {len(result.errors)}, cursor at UID {result.highest_identity}"
        )
        return result

    def _record(self, mailbox: MailboxConnection, result: SyncResult) -> None:
        self.stats.total_imported += result.imported_count
        self.stats.total_message_errors += len(result.errors)
        self.stats.by_mailbox[mailbox.id] = (
            self.stats.by_mailbox.get(mailbox.id, 0) + result.imported_count
        )

    def poll_all_mailboxes(self) -> None:
        """Poll all configured mailboxes once."""
        self.stats.last_poll = datetime.now()
        logger.info(f"Starting poll cycle #{self.stats.polls_completed + 1}")

        if self.max_concurrency == 1:
            for mailbox in self.mailboxes:
                try:
                    self._record(mailbox, self._process_mailbox(mailbox))
                except Exception as e:
                    self.stats.total_errors += 1
                    logger.error(f"Error processing {mailbox.id}: {e}")
        else:
            with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="mailsync") as pool:
                futures = [(mb, pool.submit(self._process_mailbox, mb)) for mb in self.mailboxes]
                for mailbox, future in futures:
                    try:
                        self._record(mailbox, future.result())
                    except Exception as e:
                        self.stats.total_errors += 1
                        logger.error(f"Error processing {mailbox.id}: {e}")

        self.stats.polls_completed += 1
        self._log_stats()

    def _log_stats(self) -> None:
        """Log current worker statistics."""
        logger.info(
            f"Worker stats: "
            f"polls={self.stats.polls_completed}, "
            f"imported={self.stats.total_imported}, "
            f"message_errors={self.stats.total_message_errors}, "
            f"errors={self.stats.total_errors}, "
            f"by_mailbox={self.stats.by_mailbox}"
        )

    def _handle_shutdown(self, signum, frame) -> None:
        """Handle graceful shutdown."""
        logger.info(f"Received signal {signum}, shutting down...")
        self.running = False

    def run(self) -> int:
        """Run the worker loop."""
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        logger.info(f"Sync worker starting with {len(self.mailboxes)} mailbox(es)")
        logger.info(f"Poll interval: {self.poll_interval // 60} minutes")
        for mb in self.mailboxes:
            logger.info(f"  - {mb.id}: {mb.email} [{mb.mailbox}]")

        self.running = True

        # Initial poll
        self.poll_all_mailboxes()

        while self.running:
            logger.debug(f"Sleeping for {self.poll_interval} seconds...")

            # Sleep in small increments to respond to signals quickly
            sleep_remaining = self.poll_interval
            while sleep_remaining > 0 and self.running:
                sleep_time = min(sleep_remaining, 10)
                time.sleep(sleep_time)
                sleep_remaining -= sleep_time

            if self.running:
                self.poll_all_mailboxes()

        logger.info("Worker shutdown complete")
        self._log_stats()
        return 0


def main() -> int:
    """Entry point for the sync worker."""
    settings = get_settings()
    configure_logging(settings.effective_log_level)

    logger.info("=" * 60)
    logger.info(f"{settings.app_name} worker v{settings.app_version} ({settings.environment})")
    logger.info("=" * 60)

    mailboxes = get_mailboxes_from_env()
    if not mailboxes:
        logger.error("No mailboxes configured! Set IMAP_EMAIL/PASSWORD/HOST or IMAP_MAILBOXES")
        return 1

    try:
        content_store = get_content_store(settings)
        mail_store = get_mail_store(settings)
    except Exception as e:
        logger.error(f"Failed to initialize infrastructure: {e}")
        return 1

    worker = MailSyncWorker(
        mailboxes=mailboxes,
        settings=settings,
        content_store=content_store,
        mail_store=mail_store,
    )
    return worker.run()


if __name__ == "__main__":
    raise SystemExit(main())
