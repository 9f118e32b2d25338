"""Tests for mailbox_mcp.imap.session."""

from __future__ import annotations

import imaplib
from unittest.mock import MagicMock, patch

import pytest

from mailbox_mcp.auth import PasswordAuth
from mailbox_mcp.config import IMAPConfig
from mailbox_mcp.errors import (
    AuthError,
    ConfigError,
    IMAPConnectionError,
    IMAPError,
    MailboxError,
    ProtocolError,
)
from mailbox_mcp.imap.session import ConnectionSession, format_mailbox_arg


@pytest.mark.parametrize(
    "name, expected",
    [
        ("INBOX", "INBOX"),
        ("inbox", "INBOX"),
        ("Sent Items", '"Sent Items"'),
        ('"Already"', '"Already"'),
        ('Say "hi"', '"Say \\"hi\\""'),
    ],
)
def test_format_mailbox_arg(name, expected):
    assert format_mailbox_arg(name) == expected


class TestAcquire:
    async def test_open_logs_in_and_releases(self, fake_imap, imap_config):
        async with ConnectionSession.open(imap_config) as session:
            status = await session.open_mailbox("INBOX", readonly=True)
            assert status.total == 0
            assert fake_imap.readonly is True

        assert session.released
        assert fake_imap.logouts == 1

    async def test_ssl_connection_arguments(self, imap_config):
        with patch("mailbox_mcp.imap.session.imaplib.IMAP4_SSL") as MockSSL:
            conn = MagicMock()
            conn.login.return_value = ("OK", [b"Logged in"])
            MockSSL.return_value = conn

            session = await ConnectionSession.acquire(imap_config)

            MockSSL.assert_called_once_with("imap.test.com", 993, timeout=30.0)
            conn.login.assert_called_once_with("testuser", "testpass")
            await session.release()

    async def test_plain_connection_when_tls_disabled(self):
        cfg = IMAPConfig(host="imap.local", port=143, use_ssl=False, auth=PasswordAuth("u", "p"))
        with patch("mailbox_mcp.imap.session.imaplib.IMAP4") as MockIMAP:
            conn = MagicMock()
            conn.login.return_value = ("OK", [b""])
            MockIMAP.return_value = conn

            session = await ConnectionSession.acquire(cfg)

            MockIMAP.assert_called_once_with("imap.local", 143, timeout=30.0)
            await session.release()

    async def test_connect_failure(self, imap_config):
        with patch("mailbox_mcp.imap.session.imaplib.IMAP4_SSL", side_effect=OSError("refused")):
            with pytest.raises(IMAPConnectionError, match="refused"):
                await ConnectionSession.acquire(imap_config)

    async def test_login_failure_logs_out(self, fake_imap, imap_config):
        fake_imap.login_ok = False

        with pytest.raises(AuthError):
            await ConnectionSession.acquire(imap_config)
        assert fake_imap.logouts == 1

    async def test_missing_auth(self):
        with pytest.raises(ConfigError):
            await ConnectionSession.acquire(IMAPConfig(host="imap.test.com"))


class TestLifecycle:
    async def test_release_is_idempotent(self, session, fake_imap):
        await session.release()
        await session.release()

        assert fake_imap.logouts == 1
        with pytest.raises(IMAPError):
            session.conn

    async def test_released_on_error_path(self, fake_imap, imap_config):
        with pytest.raises(MailboxError):
            async with ConnectionSession.open(imap_config) as session:
                await session.open_mailbox("Missing")

        assert session.released
        assert fake_imap.logouts == 1

    async def test_logout_errors_are_swallowed(self, session, fake_imap, monkeypatch):
        def broken_logout():
            raise imaplib.IMAP4.abort("socket closed")

        monkeypatch.setattr(fake_imap, "logout", broken_logout)
        await session.release()
        assert session.released

    async def test_open_mailbox_records_state(self, session, fake_imap, make_eml):
        fake_imap.add_message("Drafts", make_eml())

        status = await session.open_mailbox("Drafts")

        assert (status.name, status.readonly, status.total) == ("Drafts", False, 1)
        assert session.mailbox == "Drafts"

    async def test_unencodable_command_is_protocol_error(self, session):
        def op(conn):
            return "é".encode("ascii")

        with pytest.raises(ProtocolError, match="could not be encoded"):
            await session.run(op)
