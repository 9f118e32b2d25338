from __future__ import annotations

import imaplib
import smtplib
from dataclasses import dataclass, field

from mailbox_mcp.auth.base import AuthContext
from mailbox_mcp.errors import AuthError, SendError


@dataclass(frozen=True)
class PasswordAuth:
    """
    Plain LOGIN auth for both sides.
    """
    username: str
    password: str = field(repr=False)

    def apply_imap(self, conn, ctx: AuthContext) -> None:
        try:
            typ, _ = conn.login(self.username, self.password)
        except imaplib.IMAP4.error as e:
            raise AuthError(f"IMAP login failed for {self.username}@{ctx.host}: {e}") from e
        if typ != "OK":
            raise AuthError(f"IMAP login failed for {self.username}@{ctx.host} (non-OK response)")

    def apply_smtp(self, server, ctx: AuthContext) -> None:
        try:
            server.login(self.username, self.password)
        except smtplib.SMTPException as e:
            raise SendError(f"SMTP login failed for {self.username}@{ctx.host}: {e}") from e
