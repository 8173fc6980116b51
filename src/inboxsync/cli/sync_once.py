"""One-shot sync pass over the configured IMAP mailboxes."""

from __future__ import annotations

import argparse

from loguru import logger

from inboxsync.cli.worker import build_sync_use_case
from inboxsync.infrastructure import configure_logging, get_content_store, get_mail_store, get_settings
from inboxsync.infrastructure.mailboxes import get_mailboxes_from_env


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run one incremental sync pass per mailbox")
    parser.add_argument("--mailbox", default=None, help="Only sync this connection id")
    parser.add_argument("--reset", action="store_true", help="Delete the sync cursor to force a full resync")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.effective_log_level)

    mailboxes = get_mailboxes_from_env()
    if args.mailbox:
        mailboxes = [mb for mb in mailboxes if mb.id == args.mailbox]
    if not mailboxes:
        print("No matching mailboxes configured")
        return 1

    mail_store = get_mail_store(settings)

    # Handle reset flag
    if args.reset:
        for mb in mailboxes:
            mail_store.reset(mb.id)
            print(f"Reset sync cursor for {mb.id}; next pass resyncs from UID 1")
        return 0

    content_store = get_content_store(settings)

    failed = 0
    for mb in mailboxes:
        uc = build_sync_use_case(mb, settings, content_store, mail_store)
        try:
            result = uc.run()
        except Exception as e:
            logger.error(f"Failed to sync connection {mb.id}: {e}")
            failed += 1
            continue

        print(
            f"{mb.id}: imported {result.imported_count} from {mb.mailbox} "
            f"(cursor UID {result.highest_identity}, UIDVALIDITY {result.identity_space})"
        )
        for err in result.errors:
            print(f"  UID {err.uid} [{err.kind}]: {err.detail}")

    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
