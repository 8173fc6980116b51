"""Mailbox connection registry backed by environment variables."""

from __future__ import annotations

import os
from typing import Mapping

from loguru import logger
from pydantic import SecretStr

from inboxsync.domain.entities.mailbox import MailboxConnection


def _truthy(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _mailbox_from(env: Mapping[str, str], prefix: str, default_id: str) -> MailboxConnection | None:
    email = env.get(f"{prefix}EMAIL")
    password = env.get(f"{prefix}PASSWORD")
    host = env.get(f"{prefix}HOST")

    if not (email and password and host):
        logger.warning(f"Mailbox {prefix.rstrip('_')} missing email, password or host, skipping")
        return None

    use_ssl = _truthy(env.get(f"{prefix}SSL"), True)
    return MailboxConnection(
        id=env.get(f"{prefix}ID") or default_id,
        email=email,
        host=host,
        password=SecretStr(password),
        port=int(env.get(f"{prefix}PORT") or (993 if use_ssl else 143)),
        use_ssl=use_ssl,
        username=env.get(f"{prefix}USERNAME") or None,
        mailbox=env.get(f"{prefix}FOLDER", "INBOX"),
    )


def get_mailboxes_from_env(environ: Mapping[str, str] | None = None) -> list[MailboxConnection]:
    """
    Load mailbox connections from environment variables.

    Supports two formats:

    1. Single mailbox:
       IMAP_EMAIL=me@example.com
       IMAP_PASSWORD=xxx
       IMAP_HOST=imap.example.com
       IMAP_PORT=993              # Optional
       IMAP_SSL=true              # Optional
       IMAP_FOLDER=INBOX          # Optional: monitored mailbox
       IMAP_ID=me                 # Optional: connection id (default: local part)

    2. Multiple mailboxes:
       IMAP_MAILBOXES=support,billing
       IMAP_SUPPORT_EMAIL=support@example.com
       IMAP_SUPPORT_PASSWORD=xxx
       IMAP_SUPPORT_HOST=imap.example.com
       IMAP_BILLING_EMAIL=billing@example.com
       ...
    """
    env = os.environ if environ is None else environ
    mailboxes: list[MailboxConnection] = []

    names = env.get("IMAP_MAILBOXES", "").strip()
    if names:
        for name in names.split(","):
            name = name.strip()
            if not name:
                continue
            mailbox = _mailbox_from(env, f"IMAP_{name.upper()}_", name.lower())
            if mailbox:
                mailboxes.append(mailbox)
                logger.info(f"Configured mailbox: {mailbox.id} ({mailbox.email})")
    else:
        email = env.get("IMAP_EMAIL", "")
        mailbox = _mailbox_from(env, "IMAP_", email.split("@")[0]) if email else None
        if mailbox:
            mailboxes.append(mailbox)
            logger.info(f"Configured single mailbox: {mailbox.id} ({mailbox.email})")

    return mailboxes
