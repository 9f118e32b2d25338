# src/mailbox_mcp/imap/session.py
"""One authenticated IMAP connection, owned by exactly one operation.

Blocking ``imaplib`` calls run through ``asyncio.to_thread`` so the event
loop stays free while the server answers.
"""
from __future__ import annotations

import asyncio
import imaplib
import re
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, TypeVar

import structlog

from mailbox_mcp.auth import AuthContext
from mailbox_mcp.config import IMAPConfig
from mailbox_mcp.errors import (
    ConfigError,
    IMAPConnectionError,
    IMAPError,
    MailboxError,
    ProtocolError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

EXISTS_RE = re.compile(rb"^\s*(\d+)")


def format_mailbox_arg(mailbox: str) -> str:
    if mailbox.upper() == "INBOX":
        return "INBOX"
    if mailbox.startswith('"') and mailbox.endswith('"'):
        return mailbox
    escaped = mailbox.replace("\\", "\\\\").replace('"', r"\"")
    return f'"{escaped}"'


@dataclass(frozen=True)
class MailboxStatus:
    name: str
    readonly: bool
    total: int


def _open_new_connection(cfg: IMAPConfig) -> imaplib.IMAP4:
    if not cfg.host:
        raise ConfigError("IMAP host required")
    if cfg.auth is None:
        raise ConfigError("IMAPConfig.auth is required")

    try:
        conn = (
            imaplib.IMAP4_SSL(cfg.host, cfg.port, timeout=cfg.timeout)
            if cfg.use_ssl
            else imaplib.IMAP4(cfg.host, cfg.port, timeout=cfg.timeout)
        )
    except (imaplib.IMAP4.error, OSError, ssl.SSLError) as e:
        raise IMAPConnectionError(f"IMAP connection to {cfg.host}:{cfg.port} failed: {e}") from e

    try:
        cfg.auth.apply_imap(conn, AuthContext(host=cfg.host, port=cfg.port))
    except BaseException:
        try:
            conn.logout()
        except (imaplib.IMAP4.error, OSError):
            pass
        raise
    return conn


class ConnectionSession:
    """
    Lifetime = one request. Use as ``async with ConnectionSession.open(cfg) as s``
    or call :meth:`release` yourself; releasing twice is a no-op.
    """

    def __init__(self, conn: imaplib.IMAP4, *, host: str = "") -> None:
        self._conn: Optional[imaplib.IMAP4] = conn
        self._host = host
        self.mailbox: Optional[str] = None
        self.readonly: Optional[bool] = None

    @classmethod
    async def acquire(cls, config: IMAPConfig) -> "ConnectionSession":
        conn = await asyncio.to_thread(_open_new_connection, config)
        logger.debug("imap_connected", host=config.host, port=config.port)
        return cls(conn, host=config.host)

    @classmethod
    @asynccontextmanager
    async def open(cls, config: IMAPConfig) -> AsyncIterator["ConnectionSession"]:
        session = await cls.acquire(config)
        try:
            yield session
        finally:
            await session.release()

    @property
    def released(self) -> bool:
        return self._conn is None

    @property
    def conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise IMAPError("session already released")
        return self._conn

    async def run(self, op: Callable[[imaplib.IMAP4], T]) -> T:
        """
        Run one blocking round trip against the connection in a worker thread.
        Protocol-level and encoding failures surface as ProtocolError;
        IMAPError subclasses raised by ``op`` pass through untouched.
        """
        conn = self.conn
        try:
            return await asyncio.to_thread(op, conn)
        except IMAPError:
            raise
        except imaplib.IMAP4.error as e:
            raise ProtocolError(f"IMAP operation failed: {e}") from e
        except UnicodeError as e:
            raise ProtocolError(f"IMAP command could not be encoded: {e}") from e
        except (OSError, ssl.SSLError) as e:
            raise ProtocolError(f"IMAP connection lost: {e}") from e

    async def open_mailbox(self, name: str, *, readonly: bool = False) -> MailboxStatus:
        imap_mailbox = format_mailbox_arg(name)

        def _impl(conn: imaplib.IMAP4) -> MailboxStatus:
            try:
                typ, data = conn.select(imap_mailbox, readonly=readonly)
            except imaplib.IMAP4.error as e:
                raise MailboxError(f"cannot open mailbox {name!r}: {e}") from e
            if typ != "OK":
                detail = data[0].decode(errors="ignore") if data and isinstance(data[0], bytes) else data
                raise MailboxError(f"cannot open mailbox {name!r}: {detail}")

            total = 0
            if data and isinstance(data[0], bytes):
                m = EXISTS_RE.match(data[0])
                if m:
                    total = int(m.group(1))
            return MailboxStatus(name=name, readonly=readonly, total=total)

        status = await self.run(_impl)
        self.mailbox = name
        self.readonly = readonly
        logger.info("mailbox_opened", mailbox=name, readonly=readonly, total=status.total)
        return status

    async def release(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return

        def _logout() -> None:
            try:
                conn.logout()
            except (imaplib.IMAP4.error, OSError) as e:
                logger.debug("imap_logout_failed", error=str(e))

        await asyncio.to_thread(_logout)
        logger.debug("imap_released", host=self._host, mailbox=self.mailbox)
