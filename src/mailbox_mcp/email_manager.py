# src/mailbox_mcp/email_manager.py
from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from mailbox_mcp.admin import Draft, MailboxAdminOps
from mailbox_mcp.attachments import AttachmentExtractor
from mailbox_mcp.auth import PasswordAuth
from mailbox_mcp.config import SMTP_IMPLICIT_TLS_PORT, IMAPConfig, SMTPConfig
from mailbox_mcp.errors import ConfigError
from mailbox_mcp.imap.fetch import FetchAggregator
from mailbox_mcp.imap.planner import SearchPlanner
from mailbox_mcp.imap.query import DateLike, SearchCriteria, SearchFilter
from mailbox_mcp.imap.session import ConnectionSession
from mailbox_mcp.models import AttachmentPayload, MailboxInfo, MessageRecord, SendResult
from mailbox_mcp.records import record_builder
from mailbox_mcp.smtp import OutgoingAttachment, SMTPClient, build_message
from mailbox_mcp.thread import ThreadResolver, ThreadResult

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[IMAPConfig], AbstractAsyncContextManager]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def newest_first(records: Sequence[MessageRecord]) -> List[MessageRecord]:
    return sorted(records, key=lambda r: r.sort_key, reverse=True)


def matches_text(record: MessageRecord, query: str) -> bool:
    q = query.lower()
    return (
        q in record.subject.lower()
        or q in record.from_email.lower()
        or q in record.text.lower()
    )


@dataclass(frozen=True)
class EmailManager:
    """
    Every public coroutine owns its own IMAP session for its whole lifetime;
    sessions are never shared or pooled.
    """
    imap: IMAPConfig
    smtp: SMTPConfig
    session_factory: SessionFactory = ConnectionSession.open
    clock: Callable[[], datetime] = field(default=_utcnow)

    # -----------------
    # Retrieval
    # -----------------

    async def _fetch_latest(
        self,
        session: ConnectionSession,
        flt: SearchFilter,
        *,
        limit: int,
        include_html: bool,
    ) -> List[MessageRecord]:
        await session.open_mailbox(flt.mailbox, readonly=False)

        planner = SearchPlanner(session, clock=self.clock)
        outcome = await planner.search(flt, limit=limit)
        uids = outcome.most_recent(limit)
        if not uids:
            return []

        logger.info("fetching_latest", mailbox=flt.mailbox, fetching=len(uids), matched=len(outcome.uids))
        aggregator = FetchAggregator(record_builder(include_html=include_html))
        records = await aggregator.fetch(session, uids)
        return newest_first(records)

    async def fetch_emails(
        self,
        *,
        mailbox: str = "INBOX",
        limit: int = 10,
        unseen: bool = False,
        since: Optional[DateLike] = None,
        include_html: bool = False,
    ) -> List[MessageRecord]:
        flt = SearchFilter(mailbox=mailbox, unseen_only=unseen, since=since)
        async with self.session_factory(self.imap) as session:
            return await self._fetch_latest(session, flt, limit=limit, include_html=include_html)

    async def search_emails(self, *, query: str, mailbox: str = "INBOX", limit: int = 10) -> List[MessageRecord]:
        """Latest ``limit`` messages, narrowed to those whose subject, sender or text contains ``query``."""
        records = await self.fetch_emails(mailbox=mailbox, limit=limit)
        return [r for r in records if matches_text(r, query)]

    async def advanced_search(
        self,
        criteria: SearchCriteria,
        *,
        mailbox: str = "INBOX",
        limit: int = 10,
    ) -> List[MessageRecord]:
        flt = SearchFilter(mailbox=mailbox, criteria=criteria)
        async with self.session_factory(self.imap) as session:
            return await self._fetch_latest(session, flt, limit=limit, include_html=True)

    async def get_thread(self, message_id: str, *, mailbox: str = "INBOX") -> ThreadResult:
        async with self.session_factory(self.imap) as session:
            await session.open_mailbox(mailbox, readonly=False)
            return await ThreadResolver(session).resolve(message_id)

    async def download_attachment(self, *, uid: int, attachment_index: int, mailbox: str = "INBOX") -> AttachmentPayload:
        async with self.session_factory(self.imap) as session:
            await session.open_mailbox(mailbox, readonly=False)
            return await AttachmentExtractor(session).extract(uid, attachment_index)

    # -----------------
    # Mailbox administration
    # -----------------

    async def list_mailboxes(self) -> List[MailboxInfo]:
        async with self.session_factory(self.imap) as session:
            return await MailboxAdminOps(session).list_mailboxes()

    async def mark_email(self, *, uid: int, flag: str, mailbox: str = "INBOX") -> None:
        async with self.session_factory(self.imap) as session:
            await MailboxAdminOps(session).mark(mailbox, uid, flag)

    async def create_mailbox(self, name: str) -> None:
        async with self.session_factory(self.imap) as session:
            await MailboxAdminOps(session).create_mailbox(name)

    async def delete_mailbox(self, name: str) -> None:
        async with self.session_factory(self.imap) as session:
            await MailboxAdminOps(session).delete_mailbox(name)

    async def move_message(self, *, uid: int, target_mailbox: str, source_mailbox: str = "INBOX") -> None:
        async with self.session_factory(self.imap) as session:
            await MailboxAdminOps(session).move(source_mailbox, target_mailbox, uid)

    async def copy_message(self, *, uid: int, target_mailbox: str, source_mailbox: str = "INBOX") -> None:
        async with self.session_factory(self.imap) as session:
            await MailboxAdminOps(session).copy(source_mailbox, target_mailbox, uid)

    async def save_draft(
        self,
        *,
        to: str,
        subject: str,
        text: Optional[str] = None,
        html: Optional[str] = None,
        from_email: Optional[str] = None,
        cc: Optional[str] = None,
        bcc: Optional[str] = None,
    ) -> None:
        draft = Draft(
            from_email=from_email or self.smtp.from_email or self.smtp.username,
            to=to,
            subject=subject,
            text=text,
            html=html,
            cc=cc,
            bcc=bcc,
        )
        async with self.session_factory(self.imap) as session:
            await MailboxAdminOps(session).append_draft(draft)

    # -----------------
    # Outbound
    # -----------------

    async def send_email(
        self,
        *,
        to: str,
        subject: str,
        text: Optional[str] = None,
        html: Optional[str] = None,
        from_email: Optional[str] = None,
        cc: Optional[str] = None,
        bcc: Optional[str] = None,
        attachments: Sequence[OutgoingAttachment] = (),
    ) -> SendResult:
        sender = from_email or self.smtp.from_email
        if not sender:
            raise ConfigError(
                "Sender email address must be provided via 'from' parameter "
                "or SMTP_FROM environment variable"
            )
        msg = build_message(
            from_email=sender,
            to=to,
            subject=subject,
            text=text,
            html=html,
            cc=cc,
            bcc=bcc,
            attachments=attachments,
        )
        client = SMTPClient.from_config(self.smtp)
        return await asyncio.to_thread(client.send, msg)

    async def verify_connection(self) -> None:
        client = SMTPClient.from_config(self.smtp)
        await asyncio.to_thread(client.verify)

    async def test_smtp_config(
        self,
        *,
        host: str,
        port: int,
        user: str,
        password: str,
        secure: Optional[bool] = None,
    ) -> SMTPConfig:
        cfg = SMTPConfig(
            host=host,
            port=port,
            use_ssl=secure if secure is not None else port == SMTP_IMPLICIT_TLS_PORT,
            auth=PasswordAuth(username=user, password=password),
        )
        await asyncio.to_thread(SMTPClient.from_config(cfg).verify)
        return cfg

    def smtp_info(self) -> Dict[str, Any]:
        return {
            "host": self.smtp.host,
            "port": self.smtp.port,
            "secure": self.smtp.use_ssl,
            "user": self.smtp.username,
            "defaultFrom": self.smtp.from_email or "Not set",
        }
