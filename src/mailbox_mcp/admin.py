# src/mailbox_mcp/admin.py
"""Single round-trip mailbox operations: list/create/delete, flags, move/copy, drafts."""
from __future__ import annotations

import imaplib
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import structlog

from mailbox_mcp.errors import ProtocolError
from mailbox_mcp.imap.session import ConnectionSession, format_mailbox_arg
from mailbox_mcp.models import MailboxInfo

logger = structlog.get_logger(__name__)

# RFC 3501 IMAP system flags
SEEN = r"\Seen"
FLAGGED = r"\Flagged"
DELETED = r"\Deleted"
DRAFT = r"\Draft"

DRAFTS_MAILBOX = "Drafts"

# logical flag -> (STORE mode, protocol flag)
FLAG_ACTIONS: Dict[str, Tuple[str, str]] = {
    "read": ("+FLAGS", SEEN),
    "unread": ("-FLAGS", SEEN),
    "flagged": ("+FLAGS", FLAGGED),
    "unflagged": ("-FLAGS", FLAGGED),
}

LIST_RE = re.compile(
    r'^\((?P<flags>[^)]*)\)\s+(?P<delim>"(?:[^"\\]|\\.)*"|NIL)\s+(?P<name>.*)$',
    re.IGNORECASE,
)


def _unquote(s: str) -> str:
    s = s.strip()
    if len(s) >= 2 and s[0] == '"' and s[-1] == '"':
        return re.sub(r"\\(.)", r"\1", s[1:-1])
    return s


def parse_list_line(raw) -> Optional[Tuple[str, Optional[str]]]:
    """
    One LIST response -> (name, delimiter). imaplib returns literal names as
    ``(meta, name_bytes)`` tuples.
    """
    literal: Optional[str] = None
    if isinstance(raw, tuple):
        meta = raw[0].decode(errors="ignore") if isinstance(raw[0], bytes) else str(raw[0])
        if len(raw) > 1 and isinstance(raw[1], bytes):
            literal = raw[1].decode(errors="ignore")
    else:
        meta = raw.decode(errors="ignore") if isinstance(raw, bytes) else str(raw)

    m = LIST_RE.match(meta.strip())
    if not m:
        return None

    delim_tok = m.group("delim")
    delimiter = None if delim_tok.upper() == "NIL" else _unquote(delim_tok)
    name = literal if literal is not None else _unquote(m.group("name"))
    return name, delimiter


def flatten_mailboxes(entries: List[Tuple[str, Optional[str]]]) -> List[MailboxInfo]:
    children: Dict[str, int] = {}
    for name, delim in entries:
        if delim and delim in name:
            parent = name.rsplit(delim, 1)[0]
            children[parent] = children.get(parent, 0) + 1

    return [
        MailboxInfo(name=name, delimiter=delim, children=children.get(name, 0))
        for name, delim in entries
    ]


@dataclass(frozen=True)
class Draft:
    from_email: str
    to: str
    subject: str
    text: Optional[str] = None
    html: Optional[str] = None
    cc: Optional[str] = None
    bcc: Optional[str] = None

    def as_bytes(self) -> bytes:
        headers = [
            f"From: {self.from_email}",
            f"To: {self.to}",
            f"Cc: {self.cc}" if self.cc else None,
            f"Bcc: {self.bcc}" if self.bcc else None,
            f"Subject: {self.subject}",
            "MIME-Version: 1.0",
            'Content-Type: text/html; charset="UTF-8"'
            if self.html
            else 'Content-Type: text/plain; charset="UTF-8"',
        ]
        head = "\r\n".join(h for h in headers if h)
        body = self.html or self.text or ""
        return (head + "\r\n\r\n" + body).encode("utf-8")


class MailboxAdminOps:
    def __init__(self, session: ConnectionSession) -> None:
        self._session = session

    async def list_mailboxes(self) -> List[MailboxInfo]:
        def _impl(conn: imaplib.IMAP4) -> List[Tuple[str, Optional[str]]]:
            typ, data = conn.list()
            if typ != "OK":
                raise ProtocolError(f"LIST failed: {data}")

            entries: List[Tuple[str, Optional[str]]] = []
            for raw in data or []:
                if not raw:
                    continue
                parsed = parse_list_line(raw)
                if parsed is not None:
                    entries.append(parsed)
            return entries

        entries = await self._session.run(_impl)
        return flatten_mailboxes(entries)

    async def mark(self, mailbox: str, uid: int, flag: str) -> None:
        try:
            mode, imap_flag = FLAG_ACTIONS[flag]
        except KeyError:
            raise ValueError(f"unknown flag {flag!r}; expected one of {sorted(FLAG_ACTIONS)}") from None

        await self._session.open_mailbox(mailbox, readonly=False)

        def _impl(conn: imaplib.IMAP4) -> None:
            typ, data = conn.uid("STORE", str(uid), mode, f"({imap_flag})")
            if typ != "OK":
                raise ProtocolError(f"STORE {mode} {imap_flag} uid={uid} failed: {data}")

        await self._session.run(_impl)
        logger.info("message_flagged", mailbox=mailbox, uid=uid, mode=mode, flag=imap_flag)

    async def create_mailbox(self, name: str) -> None:
        def _impl(conn: imaplib.IMAP4) -> None:
            typ, data = conn.create(format_mailbox_arg(name))
            if typ != "OK":
                raise ProtocolError(f"CREATE {name!r} failed: {data}")

        await self._session.run(_impl)
        logger.info("mailbox_created", name=name)

    async def delete_mailbox(self, name: str) -> None:
        def _impl(conn: imaplib.IMAP4) -> None:
            typ, data = conn.delete(format_mailbox_arg(name))
            if typ != "OK":
                raise ProtocolError(f"DELETE {name!r} failed: {data}")

        await self._session.run(_impl)
        logger.info("mailbox_deleted", name=name)

    async def move(self, src_mailbox: str, dst_mailbox: str, uid: int) -> None:
        await self._session.open_mailbox(src_mailbox, readonly=False)
        dst_arg = format_mailbox_arg(dst_mailbox)
        uid_arg = str(uid)

        def _impl(conn: imaplib.IMAP4) -> None:
            try:
                typ, _ = conn.uid("MOVE", uid_arg, dst_arg)
            except imaplib.IMAP4.error:
                # server without the MOVE extension
                typ = "BAD"
            if typ == "OK":
                return

            typ_copy, data_copy = conn.uid("COPY", uid_arg, dst_arg)
            if typ_copy != "OK":
                raise ProtocolError(f"COPY (for MOVE fallback) failed: {data_copy}")

            typ_store, data_store = conn.uid("STORE", uid_arg, "+FLAGS.SILENT", f"({DELETED})")
            if typ_store != "OK":
                raise ProtocolError(f"STORE +FLAGS.SILENT \\Deleted failed: {data_store}")

            typ_expunge, data_expunge = conn.expunge()
            if typ_expunge != "OK":
                raise ProtocolError(f"EXPUNGE (after MOVE fallback) failed: {data_expunge}")

        await self._session.run(_impl)
        logger.info("message_moved", uid=uid, src=src_mailbox, dst=dst_mailbox)

    async def copy(self, src_mailbox: str, dst_mailbox: str, uid: int) -> None:
        await self._session.open_mailbox(src_mailbox, readonly=False)
        dst_arg = format_mailbox_arg(dst_mailbox)

        def _impl(conn: imaplib.IMAP4) -> None:
            typ, data = conn.uid("COPY", str(uid), dst_arg)
            if typ != "OK":
                raise ProtocolError(f"COPY failed: {data}")

        await self._session.run(_impl)
        logger.info("message_copied", uid=uid, src=src_mailbox, dst=dst_mailbox)

    async def append_draft(self, draft: Draft) -> None:
        """Always lands in ``Drafts`` with the \\Draft flag."""
        raw = draft.as_bytes()
        mailbox_arg = format_mailbox_arg(DRAFTS_MAILBOX)

        def _impl(conn: imaplib.IMAP4) -> None:
            date_time = imaplib.Time2Internaldate(time.time())
            typ, data = conn.append(mailbox_arg, f"({DRAFT})", date_time, raw)
            if typ != "OK":
                raise ProtocolError(f"APPEND to {DRAFTS_MAILBOX!r} failed: {data}")

        await self._session.run(_impl)
        logger.info("draft_saved", mailbox=DRAFTS_MAILBOX, to=draft.to)
