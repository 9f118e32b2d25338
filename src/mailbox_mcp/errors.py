# mailbox_mcp/errors.py
from __future__ import annotations


class MailError(Exception):
    """Root of every error raised by mailbox_mcp."""


class ConfigError(MailError):
    pass


class IMAPError(MailError):
    pass


class IMAPConnectionError(IMAPError):
    """Network or authentication failure while opening a session. Never retried."""


class AuthError(IMAPConnectionError):
    pass


class MailboxError(IMAPError):
    """Mailbox missing or not accessible."""


class ProtocolError(IMAPError):
    """A SEARCH / FETCH / STORE / COPY / MOVE / APPEND round trip failed."""


class ParseError(MailError):
    """One message's raw bytes could not be parsed."""


class AttachmentNotFoundError(MailError):
    pass


class AttachmentIndexError(MailError, IndexError):
    pass


class SendError(MailError):
    pass
