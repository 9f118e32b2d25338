"""Shared fixtures for mailbox_mcp tests."""

from __future__ import annotations

import imaplib
from datetime import datetime, timedelta, timezone
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import format_datetime
from typing import Callable, Optional, Sequence, Tuple

import pytest

from mailbox_mcp.auth import PasswordAuth
from mailbox_mcp.config import IMAPConfig, SMTPConfig
from mailbox_mcp.email_manager import EmailManager
from mailbox_mcp.imap.session import ConnectionSession

from fake_imap import FakeIMAPConnection

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def build_eml(
    *,
    subject: str = "Hello",
    from_addr: str = "alice@example.com",
    to_addr: str = "bob@example.com",
    body: str = "Plain body",
    html: Optional[str] = None,
    date: Optional[datetime] = None,
    message_id: Optional[str] = None,
    in_reply_to: Optional[str] = None,
    references: Optional[str] = None,
    attachments: Sequence[Tuple[str, bytes]] = (),
) -> bytes:
    """Build raw RFC 822 bytes with the stdlib MIME classes."""
    if attachments or html:
        msg = MIMEMultipart("mixed")
        if html:
            alt = MIMEMultipart("alternative")
            alt.attach(MIMEText(body, "plain", "utf-8"))
            alt.attach(MIMEText(html, "html", "utf-8"))
            msg.attach(alt)
        else:
            msg.attach(MIMEText(body, "plain", "utf-8"))
        for filename, payload in attachments:
            part = MIMEApplication(payload, Name=filename)
            part["Content-Disposition"] = f'attachment; filename="{filename}"'
            msg.attach(part)
    else:
        msg = MIMEText(body, "plain", "utf-8")

    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Date"] = format_datetime(date or NOW)
    if message_id:
        msg["Message-ID"] = message_id
    if in_reply_to:
        msg["In-Reply-To"] = in_reply_to
    if references:
        msg["References"] = references
    return msg.as_bytes()


@pytest.fixture
def make_eml() -> Callable[..., bytes]:
    return build_eml


@pytest.fixture
def days_ago() -> Callable[[int], datetime]:
    def _days_ago(n: int) -> datetime:
        return NOW - timedelta(days=n)

    return _days_ago


@pytest.fixture
def imap_config() -> IMAPConfig:
    return IMAPConfig(
        host="imap.test.com",
        port=993,
        use_ssl=True,
        auth=PasswordAuth(username="testuser", password="testpass"),
    )


@pytest.fixture
def smtp_config() -> SMTPConfig:
    return SMTPConfig(
        host="smtp.test.com",
        port=587,
        use_ssl=False,
        auth=PasswordAuth(username="testuser", password="testpass"),
        from_email="sender@test.com",
    )


@pytest.fixture
def fake_imap(monkeypatch: pytest.MonkeyPatch) -> FakeIMAPConnection:
    """A fake connection handed out by every ``imaplib.IMAP4_SSL(...)`` call."""
    fake = FakeIMAPConnection()
    monkeypatch.setattr(imaplib, "IMAP4_SSL", lambda *args, **kwargs: fake)
    return fake


@pytest.fixture
async def session(fake_imap: FakeIMAPConnection) -> ConnectionSession:
    s = ConnectionSession(fake_imap, host="imap.test.com")
    yield s
    await s.release()


@pytest.fixture
def manager(
    fake_imap: FakeIMAPConnection,
    imap_config: IMAPConfig,
    smtp_config: SMTPConfig,
) -> EmailManager:
    return EmailManager(imap=imap_config, smtp=smtp_config, clock=lambda: NOW)
