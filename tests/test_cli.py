"""Tests for the polling worker and the one-shot command."""

from __future__ import annotations

from unittest.mock import Mock, patch

import pytest
from loguru import logger
from pydantic import SecretStr

from inboxsync.application.use_cases.sync_mailbox import MessageError, SyncResult
from inboxsync.cli import sync_once
from inboxsync.cli.worker import MailSyncWorker, build_sync_use_case
from inboxsync.domain.entities.mailbox import MailboxConnection
from inboxsync.domain.errors import MailboxConnectionError
from inboxsync.infrastructure.email.providers.imap.client import ImapMailboxClient
from inboxsync.infrastructure.settings import Settings


def make_mailbox(conn_id: str) -> MailboxConnection:
    return MailboxConnection(
        id=conn_id,
        email=f"{conn_id}@example.com",
        host="imap.example.com",
        password=SecretStr("pw"),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, sync_advance_past_failures=True, sync_purge_stale=False)


def fake_use_cases(outcomes: dict):
    """Patch target for build_sync_use_case: each mailbox id maps to a result or an exception."""

    def build(mailbox, settings, content_store, mail_store):
        uc = Mock()
        outcome = outcomes[mailbox.id]
        if isinstance(outcome, Exception):
            uc.run.side_effect = outcome
        else:
            uc.run.return_value = outcome
        return uc

    return build


def test_build_sync_use_case_applies_settings(settings):
    mailbox = make_mailbox("a")
    uc = build_sync_use_case(mailbox, settings, content_store=Mock(), mail_store=Mock())

    assert isinstance(uc.client, ImapMailboxClient)
    assert uc.advance_past_failures is True
    assert uc.purge_stale is False
    assert uc.importer.max_attachment_bytes == 25 * 1024 * 1024


# ============================================================================
# Worker
# ============================================================================


@pytest.mark.parametrize("concurrency", [1, 3])
def test_poll_isolates_mailbox_failures(settings, concurrency):
    settings = settings.model_copy(update={"sync_max_concurrency": concurrency})
    mailboxes = [make_mailbox("a"), make_mailbox("b"), make_mailbox("c")]
    outcomes = {
        "a": SyncResult(connection_id="a", imported_count=2),
        "b": MailboxConnectionError("connection refused"),
        "c": SyncResult(connection_id="c", imported_count=1, errors=[MessageError(4, "parse", "bad")]),
    }
    worker = MailSyncWorker(mailboxes, settings, content_store=Mock(), mail_store=Mock())
    logged: list[str] = []
    sink_id = logger.add(lambda message: logged.append(message.record["message"]), level="ERROR")

    try:
        with patch("inboxsync.cli.worker.build_sync_use_case", side_effect=fake_use_cases(outcomes)):
            worker.poll_all_mailboxes()
    finally:
        logger.remove(sink_id)

    assert len([m for m in logged if "connection refused" in m]) == 1
    assert worker.stats.polls_completed == 1
    assert worker.stats.total_imported == 3
    assert worker.stats.total_errors == 1
    assert worker.stats.total_message_errors == 1
    assert worker.stats.by_mailbox == {"a": 2, "c": 1}


def test_worker_stops_after_shutdown_signal(settings):
    worker = MailSyncWorker([make_mailbox("a")], settings, content_store=Mock(), mail_store=Mock())

    def poll_once():
        worker.stats.polls_completed += 1
        worker._handle_shutdown(15, None)

    with patch.object(worker, "poll_all_mailboxes", side_effect=poll_once), patch(
        "inboxsync.cli.worker.signal.signal"
    ):
        assert worker.run() == 0

    assert worker.stats.polls_completed == 1
    assert worker.running is False


# ============================================================================
# One-shot command
# ============================================================================


@pytest.fixture
def once_env(settings):
    """Patch configuration lookups used by the one-shot command."""
    mail_store = Mock()
    with patch.object(sync_once, "get_settings", return_value=settings), patch.object(
        sync_once, "configure_logging"
    ), patch.object(
        sync_once, "get_mailboxes_from_env", return_value=[make_mailbox("a"), make_mailbox("b")]
    ), patch.object(sync_once, "get_mail_store", return_value=mail_store), patch.object(
        sync_once, "get_content_store", return_value=Mock()
    ):
        yield mail_store


def test_once_reset_only_clears_cursors(once_env):
    with patch.object(sync_once, "build_sync_use_case") as build:
        assert sync_once.main(["--reset", "--mailbox", "b"]) == 0

    once_env.reset.assert_called_once_with("b")
    build.assert_not_called()


def test_once_reports_failure(once_env, capsys):
    outcomes = {
        "a": SyncResult(connection_id="a", imported_count=1, errors=[MessageError(9, "missing_date", "no date")]),
        "b": MailboxConnectionError("login failed"),
    }
    with patch.object(sync_once, "build_sync_use_case", side_effect=fake_use_cases(outcomes)):
        assert sync_once.main([]) == 1

    out = capsys.readouterr().out
    assert "a: imported 1" in out
    assert "UID 9 [missing_date]: no date" in out


def test_once_unknown_mailbox(once_env):
    assert sync_once.main(["--mailbox", "nope"]) == 1


def test_once_debug_flag_overrides_log_level(settings):
    debug_settings = settings.model_copy(update={"debug": True})
    with patch.object(sync_once, "get_settings", return_value=debug_settings), patch.object(
        sync_once, "configure_logging"
    ) as configure, patch.object(sync_once, "get_mailboxes_from_env", return_value=[]):
        assert sync_once.main([]) == 1

    configure.assert_called_once_with("DEBUG")
